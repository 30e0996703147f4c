"""
AI replies for chats that include the system assistant or automation-controlled accounts.

The provider is reached only through `LLMAdapter`. Replies are written back
with `SocialStore.send_message` like any other message, so a reply that
arrives after the user archived or left the chat simply lands in it.
"""

from __future__ import annotations

import logging
import random
from collections import deque
from dataclasses import dataclass, field
from threading import Event, Thread
from typing import Any, Callable, Deque, Dict, Iterable, List, Optional

from .commands import execute_tool, tool_catalog
from .models import Message, Post, User
from .store import SocialStore

logger = logging.getLogger(__name__)


@dataclass
class ToolCall:
    name: str
    args: Dict[str, Any] = field(default_factory=dict)


@dataclass
class LLMReply:
    text: str = ""
    tool_calls: List[ToolCall] = field(default_factory=list)


class LLMAdapter:
    def generate(self, prompt: str, tools: Optional[List[Dict[str, Any]]] = None) -> LLMReply:
        raise NotImplementedError


class ScriptedLLMSimulator(LLMAdapter):
    """Returns queued replies in order, then a canned acknowledgement."""

    def __init__(self, replies: Optional[Iterable[LLMReply]] = None) -> None:
        self.replies: Deque[LLMReply] = deque(replies or [])
        self.prompts: List[str] = []

    def generate(self, prompt: str, tools: Optional[List[Dict[str, Any]]] = None) -> LLMReply:
        self.prompts.append(prompt)
        if self.replies:
            return self.replies.popleft()
        first_line = prompt.splitlines()[0] if prompt else ""
        return LLMReply(text=f"Got it. {first_line[:120]}".strip())


class ChatResponder:
    """Builds prompts from chat history, runs tools and posts the reply."""

    def __init__(
        self,
        store: SocialStore,
        adapter: Optional[LLMAdapter] = None,
        history_window: Optional[int] = None,
    ) -> None:
        self.store = store
        self.adapter = adapter or ScriptedLLMSimulator()
        self.history_window = history_window or store.settings.RESPONDER_HISTORY_WINDOW

    def responders_for(self, chat_id: str, sender_id: str) -> List[User]:
        chat = self.store.chats.get(chat_id)
        if chat is None:
            return []
        responders = []
        for member_id in chat.members:
            user = self.store.get_user_by_id(member_id)
            if member_id != sender_id and user is not None and (user.is_ai or user.is_ai_controlled):
                responders.append(user)
        return responders

    def build_prompt(self, ai_user: User, chat_id: str, user_message: str) -> str:
        lines = []
        for msg in self.store.messages_for(chat_id)[-self.history_window:]:
            sender = self.store.get_user_by_id(msg.sender_id)
            lines.append(f"{sender.name if sender else 'Unknown'}: {msg.content}")
        history = "\n".join(lines)
        if ai_user.is_ai:
            persona = (
                "You are Nexus AI, the intelligent assistant for NexLink. You have system capabilities "
                "to manage the platform if requested, but otherwise, engage in a friendly, helpful manner "
                "without listing your powers."
            )
        else:
            persona = (
                f"You are playing the role of {ai_user.name}. You are a user on this platform. "
                "Reply naturally to the last message."
            )
        return f"User said: {user_message}\n{persona}\nCurrent Chat History:\n{history}"

    def respond(self, chat_id: str, ai_user_id: str, user_message: str) -> Optional[Message]:
        ai_user = self.store.get_user_by_id(ai_user_id)
        if ai_user is None:
            return None
        prompt = self.build_prompt(ai_user, chat_id, user_message)
        try:
            reply = self.adapter.generate(prompt, tool_catalog() if ai_user.is_ai else None)
        except Exception:
            logger.exception("AI response failed for chat %s", chat_id)
            return None

        text = reply.text or ""
        if ai_user.is_ai:
            for call in reply.tool_calls:
                result = execute_tool(self.store, call.name, call.args)
                text += f"\n[System Action: {result.message or 'Done'}]"
        text = text.strip()
        if not text:
            return None
        return self.store.send_message(chat_id, ai_user_id, text)

    def handle_message(self, message: Message) -> List[Message]:
        replies = []
        for responder in self.responders_for(message.chat_id, message.sender_id):
            reply = self.respond(message.chat_id, responder.id, message.content)
            if reply is not None:
                replies.append(reply)
        return replies

    def post_as_assistant(self) -> Optional[Post]:
        """Ask the adapter for a short feed post and publish it as the assistant."""
        assistant = self.store.ai_user()
        if assistant is None:
            return None
        try:
            reply = self.adapter.generate(
                "Generate a short, engaging, random social media post for 'Nexus AI'. "
                "Keep it under 20 words. Optionally include @Everyone."
            )
        except Exception:
            logger.exception("Assistant post generation failed")
            return None
        if not reply.text.strip():
            return None
        return self.store.add_post(assistant.id, reply.text.strip())


class AssistantPostLoop:
    """Occasionally publishes an assistant post while a session is open.

    Each interval rolls against `chance`; a hit calls
    `ChatResponder.post_as_assistant`.
    """

    def __init__(
        self,
        responder: ChatResponder,
        interval_seconds: Optional[float] = None,
        chance: Optional[float] = None,
        rng: Callable[[], float] = random.random,
    ) -> None:
        settings = responder.store.settings
        self.responder = responder
        self.interval = interval_seconds or settings.ASSISTANT_POST_INTERVAL_SECONDS
        self.chance = settings.ASSISTANT_POST_CHANCE if chance is None else chance
        self._rng = rng
        self._stop_event = Event()
        self._thread: Optional[Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def tick(self) -> Optional[Post]:
        if self.responder.store.current_user_id is None:
            return None
        if self._rng() >= self.chance:
            return None
        return self.responder.post_as_assistant()

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._thread = Thread(target=self._loop, name="nexlink-assistant-posts", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _loop(self) -> None:
        while not self._stop_event.wait(timeout=self.interval):
            self.tick()

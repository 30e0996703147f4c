import time

from NexLink.core.responder import (
    AssistantPostLoop,
    ChatResponder,
    LLMAdapter,
    LLMReply,
    ScriptedLLMSimulator,
    ToolCall,
)
from NexLink.core.store import AI_USER_ID


class FailingAdapter(LLMAdapter):
    def generate(self, prompt, tools=None):
        raise RuntimeError("provider unavailable")


def _chat_with_assistant(store, make_user):
    alice = make_user("Alice")
    chat = store.create_chat([alice.id, AI_USER_ID], "private")
    return alice, chat


def test_reply_lands_in_chat(store, make_user):
    alice, chat = _chat_with_assistant(store, make_user)
    adapter = ScriptedLLMSimulator([LLMReply(text="Hello Alice!")])
    message = store.send_message(chat.id, alice.id, "hi there")

    replies = ChatResponder(store, adapter).handle_message(message)

    assert [r.content for r in replies] == ["Hello Alice!"]
    assert replies[0].sender_id == AI_USER_ID
    assert chat.unread_counts[alice.id] == 1
    assert adapter.prompts[0].startswith("User said: hi there")
    assert "Alice: hi there" in adapter.prompts[0]


def test_no_reply_for_messages_from_the_assistant(store, make_user):
    _, chat = _chat_with_assistant(store, make_user)
    message = store.send_message(chat.id, AI_USER_ID, "announcement")
    assert ChatResponder(store).handle_message(message) == []


def test_assistant_tool_calls_run_and_are_reported(store, make_user):
    alice, chat = _chat_with_assistant(store, make_user)
    adapter = ScriptedLLMSimulator(
        [
            LLMReply(
                text="On it.",
                tool_calls=[
                    ToolCall("create_account", {"name": "Bob", "email": "bob@x.com"}),
                    ToolCall("self_destruct"),
                ],
            )
        ]
    )
    message = store.send_message(chat.id, alice.id, "make an account for Bob")

    reply = ChatResponder(store, adapter).handle_message(message)[0]

    bob = store.get_user_by_email("bob@x.com")
    assert bob is not None
    assert reply.content == (
        f"On it.\n[System Action: Account created. Pass: {bob.password}]\n[System Action: Unknown tool]"
    )


def test_ai_controlled_persona_gets_no_tools(store, make_user):
    alice = make_user("Alice")
    store.admin_create_user("Bot", "bot@x.com")
    bot = store.get_user_by_email("bot@x.com")
    chat = store.create_chat([alice.id, bot.id], "private")
    adapter = ScriptedLLMSimulator(
        [LLMReply(text="hey!", tool_calls=[ToolCall("force_logout_all")])]
    )
    message = store.send_message(chat.id, alice.id, "yo")

    reply = ChatResponder(store, adapter).handle_message(message)[0]

    assert reply.content == "hey!"
    assert reply.sender_id == bot.id
    assert store.current_user is alice
    assert "You are playing the role of Bot" in adapter.prompts[0]


def test_adapter_failure_produces_no_reply(store, make_user):
    alice, chat = _chat_with_assistant(store, make_user)
    message = store.send_message(chat.id, alice.id, "hi")

    assert ChatResponder(store, FailingAdapter()).handle_message(message) == []
    assert len(store.messages_for(chat.id)) == 1


def test_late_reply_unarchives_chat(store, make_user):
    alice, chat = _chat_with_assistant(store, make_user)
    message = store.send_message(chat.id, alice.id, "hi")
    store.archive_chat(chat.id, alice.id)

    ChatResponder(store, ScriptedLLMSimulator()).handle_message(message)

    assert chat.archived_by == set()
    assert store.chats_for(alice.id) == [chat]


def test_history_window_limits_prompt(store, make_user):
    alice, chat = _chat_with_assistant(store, make_user)
    for i in range(5):
        store.send_message(chat.id, alice.id, f"msg {i}")
    adapter = ScriptedLLMSimulator()

    ChatResponder(store, adapter, history_window=2).respond(chat.id, AI_USER_ID, "msg 4")

    assert "msg 2" not in adapter.prompts[0]
    assert "Alice: msg 3" in adapter.prompts[0]


def test_post_as_assistant(store):
    adapter = ScriptedLLMSimulator([LLMReply(text="  Good morning @Everyone  ")])

    post = ChatResponder(store, adapter).post_as_assistant()

    assert post.user_id == AI_USER_ID
    assert post.content == "Good morning @Everyone"


def test_post_as_assistant_skips_empty_text(store):
    adapter = ScriptedLLMSimulator([LLMReply(text="   ")])
    assert ChatResponder(store, adapter).post_as_assistant() is None
    assert store.posts == {}


def _poster(store, adapter, roll):
    return AssistantPostLoop(ChatResponder(store, adapter), interval_seconds=0.01, chance=0.2, rng=lambda: roll)


def test_assistant_post_loop_waits_for_a_session(store):
    adapter = ScriptedLLMSimulator([LLMReply(text="hello world")])
    assert _poster(store, adapter, roll=0.0).tick() is None
    assert adapter.prompts == []


def test_assistant_post_loop_posts_only_on_a_winning_roll(store, make_user):
    make_user("Alice")
    adapter = ScriptedLLMSimulator([LLMReply(text="hello world")])

    assert _poster(store, adapter, roll=0.5).tick() is None
    post = _poster(store, adapter, roll=0.1).tick()

    assert post.user_id == AI_USER_ID
    assert post.content == "hello world"


def test_assistant_post_loop_thread_publishes_and_stops(store, make_user):
    make_user("Alice")
    loop = _poster(store, ScriptedLLMSimulator([LLMReply(text="from the loop")]), roll=0.0)

    loop.start()
    deadline = time.time() + 2
    while not store.posts and time.time() < deadline:
        time.sleep(0.01)
    loop.stop(timeout=1)

    assert any(p.content == "from the loop" for p in store.posts.values())
    assert loop.running is False

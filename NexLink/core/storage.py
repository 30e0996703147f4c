"""
JSON-based persistence for the NexLink store.
The whole state is one document, written after every mutation and read once at startup.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from .models import Chat, ChatType, Comment, Message, Notification, NotificationType, Post, Story, StoryText, User

logger = logging.getLogger(__name__)

_DATETIME_FIELDS = {"timestamp", "created_at", "last_message_at", "last_active"}


@dataclass
class StoreState:
    users: List[dict] = field(default_factory=list)
    posts: List[dict] = field(default_factory=list)
    comments: List[dict] = field(default_factory=list)
    stories: List[dict] = field(default_factory=list)
    chats: List[dict] = field(default_factory=list)
    messages: List[dict] = field(default_factory=list)
    notifications: List[dict] = field(default_factory=list)
    current_user_id: Optional[str] = None


class PersistentStore:
    def __init__(self, path: str = "NexLink/state.json") -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def load(self) -> Optional[StoreState]:
        if not self.path.exists():
            return None
        data = json.loads(self.path.read_text(encoding="utf-8"))
        logger.debug("Loaded state snapshot from %s", self.path)
        return StoreState(
            users=data.get("users", []),
            posts=data.get("posts", []),
            comments=data.get("comments", []),
            stories=data.get("stories", []),
            chats=data.get("chats", []),
            messages=data.get("messages", []),
            notifications=data.get("notifications", []),
            current_user_id=data.get("current_user_id"),
        )

    def save(self, state: StoreState) -> None:
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(asdict(state), indent=2), encoding="utf-8")
        tmp_path.replace(self.path)


def to_record(entity: object) -> dict:
    """Flatten a dataclass entity into JSON-safe primitives."""
    return _jsonable(asdict(entity))


def _jsonable(value: Any) -> Any:
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    if isinstance(value, list):
        return [_jsonable(item) for item in value]
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (ChatType, NotificationType)):
        return value.value
    return value


def rehydrate_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value)


def _with_datetimes(payload: Dict[str, Any]) -> Dict[str, Any]:
    restored = dict(payload)
    for key in _DATETIME_FIELDS.intersection(restored):
        restored[key] = rehydrate_datetime(restored[key])
    return restored


def user_from_record(payload: Dict[str, Any]) -> User:
    data = _with_datetimes(payload)
    for key in ("friends", "friend_requests", "followers", "following", "blocked_users", "blocked_by"):
        data[key] = set(data.get(key) or [])
    return User(**data)


def post_from_record(payload: Dict[str, Any]) -> Post:
    data = _with_datetimes(payload)
    data["likes"] = set(data.get("likes") or [])
    return Post(**data)


def comment_from_record(payload: Dict[str, Any]) -> Comment:
    return Comment(**_with_datetimes(payload))


def story_from_record(payload: Dict[str, Any]) -> Story:
    data = _with_datetimes(payload)
    data["texts"] = [StoryText(**text) for text in data.get("texts") or []]
    data["viewers"] = set(data.get("viewers") or [])
    return Story(**data)


def chat_from_record(payload: Dict[str, Any]) -> Chat:
    data = _with_datetimes(payload)
    data["type"] = ChatType(data["type"])
    data["archived_by"] = set(data.get("archived_by") or [])
    data["admins"] = list(data.get("admins") or [])
    data["unread_counts"] = dict(data.get("unread_counts") or {})
    return Chat(**data)


def message_from_record(payload: Dict[str, Any]) -> Message:
    return Message(**_with_datetimes(payload))


def notification_from_record(payload: Dict[str, Any]) -> Notification:
    data = _with_datetimes(payload)
    data["type"] = NotificationType(data["type"])
    return Notification(**data)

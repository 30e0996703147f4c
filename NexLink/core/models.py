"""
Entity shapes for the NexLink social graph.

Relationship lists are sets; ordered membership (chat members and admins)
is kept in lists that the store only appends to after a membership check.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Set


class NotificationType(str, enum.Enum):
    FRIEND_REQUEST = "friend_request"
    MENTION = "mention"
    LIKE = "like"
    COMMENT = "comment"
    FOLLOW = "follow"
    SHARE = "share"
    EVERYONE = "everyone"


class ChatType(str, enum.Enum):
    PRIVATE = "private"
    GROUP = "group"


@dataclass
class User:
    id: str
    name: str
    email: str
    avatar: str
    password: Optional[str] = None
    bio: Optional[str] = None
    is_ai: bool = False
    is_ai_controlled: bool = False
    is_online: bool = False
    last_active: Optional[datetime] = None
    blocked: bool = False
    friends: Set[str] = field(default_factory=set)
    friend_requests: Set[str] = field(default_factory=set)
    followers: Set[str] = field(default_factory=set)
    following: Set[str] = field(default_factory=set)
    blocked_users: Set[str] = field(default_factory=set)
    blocked_by: Set[str] = field(default_factory=set)

    @property
    def mention_handle(self) -> str:
        return "".join(self.name.split())


@dataclass
class Post:
    id: str
    user_id: str
    content: str
    timestamp: datetime
    image: Optional[str] = None
    video: Optional[str] = None
    likes: Set[str] = field(default_factory=set)
    shared_from_id: Optional[str] = None


@dataclass
class Comment:
    id: str
    post_id: str
    user_id: str
    content: str
    timestamp: datetime


@dataclass
class StoryText:
    id: str
    content: str
    x: float
    y: float
    color: str = "#ffffff"
    scale: float = 1.0


@dataclass
class Story:
    id: str
    user_id: str
    image: str
    timestamp: datetime
    texts: List[StoryText] = field(default_factory=list)
    viewers: Set[str] = field(default_factory=set)

    def is_expired(self, now: datetime, ttl_hours: int) -> bool:
        return (now - self.timestamp).total_seconds() >= ttl_hours * 3600


@dataclass
class Chat:
    id: str
    type: ChatType
    members: List[str]
    created_at: datetime
    last_message_at: datetime
    name: Optional[str] = None
    image: Optional[str] = None
    admins: List[str] = field(default_factory=list)
    archived_by: Set[str] = field(default_factory=set)
    unread_counts: Dict[str, int] = field(default_factory=dict)

    def is_pair(self, members: Set[str]) -> bool:
        return self.type == ChatType.PRIVATE and len(self.members) == 2 and set(self.members) == members


@dataclass
class Message:
    id: str
    chat_id: str
    sender_id: str
    content: str
    timestamp: datetime
    image: Optional[str] = None
    story_snapshot: Optional[str] = None


@dataclass
class Notification:
    id: str
    user_id: str
    actor_id: str
    type: NotificationType
    message: str
    timestamp: datetime
    entity_id: Optional[str] = None
    read: bool = False

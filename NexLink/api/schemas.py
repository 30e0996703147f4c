from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, constr

from NexLink.core.models import Chat, Comment, Message, Notification, Post, Story, User


class SignupRequest(BaseModel):
    name: constr(min_length=1, max_length=64)
    email: constr(min_length=3, max_length=254)
    password: constr(min_length=1)
    avatar: Optional[str] = None


class LoginRequest(BaseModel):
    email: str
    password: str


class ProfileUpdate(BaseModel):
    name: Optional[str] = None
    avatar: Optional[str] = None
    bio: Optional[str] = None


class PostCreate(BaseModel):
    user_id: str
    content: str = ""
    image: Optional[str] = None
    video: Optional[str] = None
    shared_from_id: Optional[str] = None


class ActorRequest(BaseModel):
    user_id: str


class CommentCreate(BaseModel):
    user_id: str
    content: constr(min_length=1)


class StoryTextIn(BaseModel):
    id: str
    content: str
    x: float = Field(..., ge=0, le=100)
    y: float = Field(..., ge=0, le=100)
    color: str = "#ffffff"
    scale: float = 1.0


class StoryCreate(BaseModel):
    user_id: str
    image: str
    texts: List[StoryTextIn] = Field(default_factory=list)


class ChatCreate(BaseModel):
    members: List[str] = Field(..., min_length=1)
    type: str = Field("private", pattern="^(private|group)$")
    name: Optional[str] = None


class MessageCreate(BaseModel):
    sender_id: str
    content: str = ""
    image: Optional[str] = None
    story_snapshot: Optional[str] = None


class GroupInfoUpdate(BaseModel):
    name: Optional[str] = None
    image: Optional[str] = None


class UserResponse(BaseModel):
    id: str
    name: str
    email: str
    avatar: str
    bio: Optional[str]
    is_ai: bool
    is_ai_controlled: bool
    online: bool
    last_active: Optional[datetime]
    friends: List[str]
    friend_requests: List[str]
    followers: List[str]
    following: List[str]
    blocked_users: List[str]

    @classmethod
    def from_model(cls, user: User, online: bool) -> "UserResponse":
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            avatar=user.avatar,
            bio=user.bio,
            is_ai=user.is_ai,
            is_ai_controlled=user.is_ai_controlled,
            online=online,
            last_active=user.last_active,
            friends=sorted(user.friends),
            friend_requests=sorted(user.friend_requests),
            followers=sorted(user.followers),
            following=sorted(user.following),
            blocked_users=sorted(user.blocked_users),
        )


class PostResponse(BaseModel):
    id: str
    user_id: str
    content: str
    image: Optional[str]
    video: Optional[str]
    like_count: int
    likes: List[str]
    timestamp: datetime
    shared_from_id: Optional[str]
    original_missing: bool = False

    @classmethod
    def from_model(cls, post: Post, original: Optional[Post] = None) -> "PostResponse":
        return cls(
            id=post.id,
            user_id=post.user_id,
            content=post.content,
            image=post.image,
            video=post.video,
            like_count=len(post.likes),
            likes=sorted(post.likes),
            timestamp=post.timestamp,
            shared_from_id=post.shared_from_id,
            original_missing=bool(post.shared_from_id) and original is None,
        )


class CommentResponse(BaseModel):
    id: str
    post_id: str
    user_id: str
    content: str
    timestamp: datetime

    @classmethod
    def from_model(cls, comment: Comment) -> "CommentResponse":
        return cls(
            id=comment.id,
            post_id=comment.post_id,
            user_id=comment.user_id,
            content=comment.content,
            timestamp=comment.timestamp,
        )


class StoryResponse(BaseModel):
    id: str
    user_id: str
    image: str
    texts: List[StoryTextIn]
    timestamp: datetime

    @classmethod
    def from_model(cls, story: Story) -> "StoryResponse":
        return cls(
            id=story.id,
            user_id=story.user_id,
            image=story.image,
            texts=[StoryTextIn(**text.__dict__) for text in story.texts],
            timestamp=story.timestamp,
        )


class ChatResponse(BaseModel):
    id: str
    type: str
    name: Optional[str]
    image: Optional[str]
    members: List[str]
    admins: List[str]
    archived_by: List[str]
    created_at: datetime
    last_message_at: datetime
    unread_counts: Dict[str, int]

    @classmethod
    def from_model(cls, chat: Chat) -> "ChatResponse":
        return cls(
            id=chat.id,
            type=chat.type.value,
            name=chat.name,
            image=chat.image,
            members=list(chat.members),
            admins=list(chat.admins),
            archived_by=sorted(chat.archived_by),
            created_at=chat.created_at,
            last_message_at=chat.last_message_at,
            unread_counts=dict(chat.unread_counts),
        )


class MessageResponse(BaseModel):
    id: str
    chat_id: str
    sender_id: str
    content: str
    image: Optional[str]
    story_snapshot: Optional[str]
    timestamp: datetime

    @classmethod
    def from_model(cls, message: Message) -> "MessageResponse":
        return cls(
            id=message.id,
            chat_id=message.chat_id,
            sender_id=message.sender_id,
            content=message.content,
            image=message.image,
            story_snapshot=message.story_snapshot,
            timestamp=message.timestamp,
        )


class NotificationResponse(BaseModel):
    id: str
    user_id: str
    actor_id: str
    type: str
    entity_id: Optional[str]
    message: str
    read: bool
    timestamp: datetime

    @classmethod
    def from_model(cls, note: Notification) -> "NotificationResponse":
        return cls(
            id=note.id,
            user_id=note.user_id,
            actor_id=note.actor_id,
            type=note.type.value,
            entity_id=note.entity_id,
            message=note.message,
            read=note.read,
            timestamp=note.timestamp,
        )

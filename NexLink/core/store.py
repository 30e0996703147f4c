"""
State container for the NexLink social graph.

`SocialStore` owns every collection and exposes each user action as one
synchronous method. Methods take the store lock for the whole
read-modify-write, append any derived notifications and then snapshot the
state through the attached `PersistentStore`.

Missing users, posts or chats are reported through `None`/`False` return
values. The only raised fault is `DuplicateEmailError` from signup.

Group administration and the privileged `admin_*` operations do not check
who is calling. The HTTP layer and the tool dispatcher trust their callers.
"""

from __future__ import annotations

import functools
import logging
import secrets
import string
import threading
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Union
from urllib.parse import quote

from . import notifications as fanout
from .config import Settings, get_settings
from .ids import new_id
from .models import (
    Chat,
    ChatType,
    Comment,
    Message,
    Notification,
    NotificationType,
    Post,
    Story,
    StoryText,
    User,
)
from .presence import is_user_online
from .storage import (
    PersistentStore,
    StoreState,
    chat_from_record,
    comment_from_record,
    message_from_record,
    notification_from_record,
    post_from_record,
    story_from_record,
    to_record,
    user_from_record,
)

logger = logging.getLogger(__name__)

AI_USER_ID = "nexus-ai-god-mode"
AI_USER_EMAIL = "ai@nexus.com"
PASSWORD_ALPHABET = string.ascii_lowercase + string.digits


class DuplicateEmailError(ValueError):
    """Raised when an email is already registered."""

    def __init__(self, email: str) -> None:
        super().__init__(f"User already exists: {email}")
        self.email = email


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def default_avatar(name: str) -> str:
    return f"https://ui-avatars.com/api/?name={quote(name)}&background=random"


def build_ai_user() -> User:
    return User(
        id=AI_USER_ID,
        name="Nexus AI",
        email=AI_USER_EMAIL,
        password="admin",
        avatar="https://upload.wikimedia.org/wikipedia/commons/thumb/0/04/ChatGPT_logo.svg/1024px-ChatGPT_logo.svg.png",
        bio="I am the system administrator of NexLink.",
        is_ai=True,
        is_online=True,
    )


def _mutation(method):
    """Run a store method under the lock and snapshot afterwards."""

    @functools.wraps(method)
    def wrapper(self: "SocialStore", *args, **kwargs):
        with self._lock:
            result = method(self, *args, **kwargs)
            self._persist()
            return result

    return wrapper


class SocialStore:
    def __init__(
        self,
        storage: Optional[PersistentStore] = None,
        clock: Callable[[], datetime] = _utcnow,
        settings: Optional[Settings] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.storage = storage
        self._clock = clock
        self._lock = threading.RLock()

        self.users: Dict[str, User] = {}
        self.posts: Dict[str, Post] = {}
        self.comments: Dict[str, Comment] = {}
        self.stories: Dict[str, Story] = {}
        self.chats: Dict[str, Chat] = {}
        self.messages: Dict[str, Message] = {}
        self.notifications: Dict[str, Notification] = {}
        self.current_user_id: Optional[str] = None

        state = storage.load() if storage else None
        if state is not None:
            self._load_state(state)
        if not any(user.is_ai for user in self.users.values()):
            ai_user = build_ai_user()
            self.users[ai_user.id] = ai_user

    def now(self) -> datetime:
        return self._clock()

    # ---- Lookups ----

    @property
    def current_user(self) -> Optional[User]:
        if self.current_user_id is None:
            return None
        return self.users.get(self.current_user_id)

    def get_user_by_id(self, user_id: str) -> Optional[User]:
        return self.users.get(user_id)

    def get_user_by_name(self, name: str) -> Optional[User]:
        lowered = name.lower()
        return next((u for u in self.users.values() if u.name.lower() == lowered), None)

    def get_user_by_email(self, email: str) -> Optional[User]:
        return next((u for u in self.users.values() if u.email == email), None)

    def ai_user(self) -> Optional[User]:
        return next((u for u in self.users.values() if u.is_ai), None)

    def is_online(self, user_id: str) -> bool:
        user = self.users.get(user_id)
        if user is None:
            return False
        return is_user_online(user, self.now(), self.settings.PRESENCE_WINDOW_SECONDS)

    # ---- Session lifecycle ----

    @_mutation
    def initialize(self) -> None:
        if self.ai_user() is None:
            ai_user = build_ai_user()
            self.users[ai_user.id] = ai_user
        self._sweep_stories()

    @_mutation
    def signup(self, name: str, email: str, password: str, avatar: Optional[str] = None) -> User:
        if self.get_user_by_email(email) is not None:
            raise DuplicateEmailError(email)
        user = User(
            id=new_id(),
            name=name,
            email=email,
            password=password,
            avatar=avatar or default_avatar(name),
            is_online=True,
            last_active=self.now(),
        )
        self.users[user.id] = user
        if self.current_user_id is None:
            self.current_user_id = user.id
        logger.info("Registered user %s", user.id)
        return user

    @_mutation
    def login(self, email: str, password: str) -> Optional[User]:
        user = next(
            (
                u
                for u in self.users.values()
                if u.email == email and u.password == password and not u.blocked
            ),
            None,
        )
        if user is None:
            logger.debug("Login rejected for %s", email)
            return None
        user.is_online = True
        user.last_active = self.now()
        self.current_user_id = user.id
        return user

    @_mutation
    def logout(self) -> None:
        user = self.current_user
        if user is not None:
            user.is_online = False
            user.last_active = self.now()
        self.current_user_id = None

    @_mutation
    def heartbeat(self, user_id: str) -> bool:
        user = self.users.get(user_id)
        if user is None:
            return False
        user.is_online = True
        user.last_active = self.now()
        return True

    @_mutation
    def update_profile(
        self,
        user_id: str,
        name: Optional[str] = None,
        avatar: Optional[str] = None,
        bio: Optional[str] = None,
    ) -> Optional[User]:
        user = self.users.get(user_id)
        if user is None:
            return None
        avatar_changed = bool(avatar) and avatar != user.avatar
        previous_name = user.name
        if name:
            user.name = name
        if avatar:
            user.avatar = avatar
        if bio is not None:
            user.bio = bio
        if avatar_changed:
            self._publish_post(user_id, f"{previous_name} updated their profile picture.", image=avatar)
        return user

    # ---- Social graph ----

    @_mutation
    def send_friend_request(self, from_id: str, to_id: str) -> bool:
        sender, recipient = self.users.get(from_id), self.users.get(to_id)
        if sender is None or recipient is None or from_id == to_id:
            return False
        if from_id in recipient.friend_requests or from_id in recipient.friends:
            return False
        recipient.friend_requests.add(from_id)
        self._notify(fanout.make_notification(to_id, from_id, NotificationType.FRIEND_REQUEST, self.now()))
        return True

    @_mutation
    def accept_friend_request(self, user_id: str, requester_id: str) -> bool:
        user, requester = self.users.get(user_id), self.users.get(requester_id)
        if user is None or requester is None or user_id == requester_id:
            return False
        self._link_friends(user, requester)
        user.friend_requests.discard(requester_id)
        return True

    @_mutation
    def reject_friend_request(self, user_id: str, requester_id: str) -> bool:
        user = self.users.get(user_id)
        if user is None:
            return False
        user.friend_requests.discard(requester_id)
        return True

    @_mutation
    def follow(self, follower_id: str, target_id: str) -> bool:
        follower, target = self.users.get(follower_id), self.users.get(target_id)
        if follower is None or target is None or follower_id == target_id:
            return False
        if target_id in follower.following:
            return True
        self._link_follow(follower, target)
        self._notify(fanout.make_notification(target_id, follower_id, NotificationType.FOLLOW, self.now()))
        return True

    @_mutation
    def unfollow(self, follower_id: str, target_id: str) -> bool:
        follower, target = self.users.get(follower_id), self.users.get(target_id)
        if follower is None or target is None:
            return False
        self._unlink_follow(follower, target)
        return True

    @_mutation
    def block(self, blocker_id: str, target_id: str) -> bool:
        blocker, target = self.users.get(blocker_id), self.users.get(target_id)
        if blocker is None or target is None or blocker_id == target_id:
            return False
        blocker.blocked_users.add(target_id)
        target.blocked_by.add(blocker_id)
        self._unlink_friends(blocker, target)
        self._unlink_follow(blocker, target)
        self._unlink_follow(target, blocker)
        return True

    @_mutation
    def unblock(self, blocker_id: str, target_id: str) -> bool:
        blocker, target = self.users.get(blocker_id), self.users.get(target_id)
        if blocker is None or target is None:
            return False
        blocker.blocked_users.discard(target_id)
        target.blocked_by.discard(blocker_id)
        return True

    # ---- Content ----

    @_mutation
    def add_post(
        self,
        user_id: str,
        content: str,
        image: Optional[str] = None,
        video: Optional[str] = None,
        shared_from_id: Optional[str] = None,
    ) -> Optional[Post]:
        if user_id not in self.users:
            return None
        return self._publish_post(user_id, content, image, video, shared_from_id)

    @_mutation
    def add_comment(self, post_id: str, user_id: str, content: str) -> Optional[Comment]:
        post = self.posts.get(post_id)
        if post is None or user_id not in self.users:
            return None
        now = self.now()
        comment = Comment(id=new_id(), post_id=post_id, user_id=user_id, content=content, timestamp=now)
        self.comments[comment.id] = comment
        for note in fanout.for_comment(post, user_id, content, self.users.values(), now):
            self._notify(note)
        return comment

    @_mutation
    def toggle_like(self, post_id: str, user_id: str) -> Optional[Post]:
        post = self.posts.get(post_id)
        if post is None or user_id not in self.users:
            return None
        if user_id in post.likes:
            post.likes.discard(user_id)
            return post
        post.likes.add(user_id)
        if post.user_id != user_id and not self._has_like_notice(post_id, user_id):
            self._notify(
                fanout.make_notification(post.user_id, user_id, NotificationType.LIKE, self.now(), post_id)
            )
        return post

    @_mutation
    def add_story(self, user_id: str, image: str, texts: Optional[Iterable[StoryText]] = None) -> Optional[Story]:
        if user_id not in self.users:
            return None
        story = Story(id=new_id(), user_id=user_id, image=image, timestamp=self.now(), texts=list(texts or []))
        self.stories[story.id] = story
        return story

    @_mutation
    def cleanup_stories(self) -> int:
        return self._sweep_stories()

    def feed(self) -> List[Post]:
        with self._lock:
            return list(reversed(self.posts.values()))

    def posts_by(self, user_id: str) -> List[Post]:
        return [post for post in self.feed() if post.user_id == user_id]

    def comments_for(self, post_id: str) -> List[Comment]:
        with self._lock:
            return [c for c in self.comments.values() if c.post_id == post_id]

    def get_shared_original(self, post: Post) -> Optional[Post]:
        if not post.shared_from_id:
            return None
        return self.posts.get(post.shared_from_id)

    def list_stories(self) -> List[Story]:
        with self._lock:
            if self._sweep_stories():
                self._persist()
            return list(self.stories.values())

    # ---- Notifications ----

    def notifications_for(self, user_id: str) -> List[Notification]:
        with self._lock:
            return [n for n in reversed(self.notifications.values()) if n.user_id == user_id]

    def unread_notification_count(self, user_id: str) -> int:
        return sum(1 for n in self.notifications_for(user_id) if not n.read)

    @_mutation
    def mark_notifications_read(self, user_id: str) -> int:
        marked = 0
        for note in self.notifications.values():
            if note.user_id == user_id and not note.read:
                note.read = True
                marked += 1
        return marked

    # ---- Messaging ----

    @_mutation
    def create_chat(
        self,
        members: Iterable[str],
        chat_type: Union[ChatType, str] = ChatType.PRIVATE,
        name: Optional[str] = None,
    ) -> Optional[Chat]:
        chat_type = ChatType(chat_type)
        member_ids = list(dict.fromkeys(members))
        if chat_type == ChatType.PRIVATE:
            if len(member_ids) != 2:
                logger.warning("Refusing private chat with %s distinct members", len(member_ids))
                return None
            wanted = set(member_ids)
            existing = next((c for c in self.chats.values() if c.is_pair(wanted)), None)
            if existing is not None:
                existing.archived_by.clear()
                return existing
        now = self.now()
        chat = Chat(
            id=new_id(),
            type=chat_type,
            members=member_ids,
            created_at=now,
            last_message_at=now,
            name=name,
            admins=member_ids[:1] if chat_type == ChatType.GROUP else [],
        )
        self.chats[chat.id] = chat
        logger.debug("Created %s chat %s with %s members", chat_type.value, chat.id, len(member_ids))
        return chat

    @_mutation
    def send_message(
        self,
        chat_id: str,
        sender_id: str,
        content: str,
        image: Optional[str] = None,
        story_snapshot: Optional[str] = None,
    ) -> Optional[Message]:
        chat = self.chats.get(chat_id)
        if chat is None:
            logger.warning("Dropping message for unknown chat %s", chat_id)
            return None
        now = self.now()
        message = Message(
            id=new_id(),
            chat_id=chat_id,
            sender_id=sender_id,
            content=content,
            timestamp=now,
            image=image,
            story_snapshot=story_snapshot,
        )
        self.messages[message.id] = message
        chat.last_message_at = now
        for member_id in chat.members:
            if member_id != sender_id:
                chat.unread_counts[member_id] = chat.unread_counts.get(member_id, 0) + 1
        chat.archived_by.clear()
        return message

    @_mutation
    def mark_chat_read(self, chat_id: str, user_id: str) -> Optional[Chat]:
        chat = self.chats.get(chat_id)
        if chat is not None:
            chat.unread_counts[user_id] = 0
        return chat

    @_mutation
    def archive_chat(self, chat_id: str, user_id: str) -> Optional[Chat]:
        chat = self.chats.get(chat_id)
        if chat is not None:
            chat.archived_by.add(user_id)
        return chat

    @_mutation
    def unarchive_chat(self, chat_id: str, user_id: str) -> Optional[Chat]:
        chat = self.chats.get(chat_id)
        if chat is not None:
            chat.archived_by.discard(user_id)
        return chat

    @_mutation
    def update_group_info(self, chat_id: str, name: Optional[str] = None, image: Optional[str] = None) -> Optional[Chat]:
        chat = self.chats.get(chat_id)
        if chat is None:
            return None
        if name:
            chat.name = name
        if image:
            chat.image = image
        return chat

    @_mutation
    def add_group_member(self, chat_id: str, user_id: str) -> Optional[Chat]:
        chat = self.chats.get(chat_id)
        if chat is not None and user_id not in chat.members:
            chat.members.append(user_id)
        return chat

    @_mutation
    def remove_group_member(self, chat_id: str, user_id: str) -> Optional[Chat]:
        chat = self.chats.get(chat_id)
        if chat is None:
            return None
        chat.members = [m for m in chat.members if m != user_id]
        chat.admins = [a for a in chat.admins if a != user_id]
        return chat

    @_mutation
    def make_group_admin(self, chat_id: str, user_id: str) -> Optional[Chat]:
        chat = self.chats.get(chat_id)
        if chat is not None and user_id not in chat.admins:
            chat.admins.append(user_id)
        return chat

    def leave_group(self, chat_id: str, user_id: str) -> Optional[Chat]:
        return self.remove_group_member(chat_id, user_id)

    def chats_for(self, user_id: str, include_archived: bool = False) -> List[Chat]:
        with self._lock:
            chats = [
                c
                for c in self.chats.values()
                if user_id in c.members and (include_archived or user_id not in c.archived_by)
            ]
        return sorted(chats, key=lambda c: c.last_message_at, reverse=True)

    def messages_for(self, chat_id: str) -> List[Message]:
        with self._lock:
            return [m for m in self.messages.values() if m.chat_id == chat_id]

    def unread_total(self, user_id: str) -> int:
        return sum(c.unread_counts.get(user_id, 0) for c in self.chats_for(user_id, include_archived=True))

    # ---- Privileged operations ----

    def admin_create_user(self, name: str, email: str) -> str:
        with self._lock:
            password = "".join(secrets.choice(PASSWORD_ALPHABET) for _ in range(8))
            user = self.signup(name, email, password)
            user.is_ai_controlled = True
            self._persist()
            logger.info("Automation created account %s", user.id)
            return password

    @_mutation
    def admin_delete_user(self, identifier: str) -> bool:
        target = next(
            (u for u in self.users.values() if u.email == identifier or u.name == identifier),
            None,
        )
        if target is None or target.is_ai:
            return False
        target_id = target.id
        del self.users[target_id]
        self.posts = {k: p for k, p in self.posts.items() if p.user_id != target_id}
        self.comments = {
            k: c for k, c in self.comments.items() if c.user_id != target_id and c.post_id in self.posts
        }
        self.stories = {k: s for k, s in self.stories.items() if s.user_id != target_id}
        for post in self.posts.values():
            post.likes.discard(target_id)
        for story in self.stories.values():
            story.viewers.discard(target_id)
        for chat in self.chats.values():
            chat.members = [m for m in chat.members if m != target_id]
            chat.admins = [a for a in chat.admins if a != target_id]
            chat.unread_counts.pop(target_id, None)
            chat.archived_by.discard(target_id)
        for user in self.users.values():
            for relation in (
                user.friends,
                user.friend_requests,
                user.followers,
                user.following,
                user.blocked_users,
                user.blocked_by,
            ):
                relation.discard(target_id)
        if self.current_user_id == target_id:
            self.current_user_id = None
        logger.warning("Automation deleted account %s", target_id)
        return True

    @_mutation
    def admin_force_logout_all(self) -> None:
        self.current_user_id = None

    def admin_reveal_password(self, email: str) -> Optional[str]:
        user = self.get_user_by_email(email)
        if user is None:
            return None
        return user.password or None

    @_mutation
    def admin_ban_user(self, user_id: str) -> bool:
        user = self.users.get(user_id)
        if user is None:
            return False
        user.blocked = True
        if self.current_user_id == user_id:
            self.current_user_id = None
        logger.warning("Automation banned account %s", user_id)
        return True

    # ---- Helpers ----

    def _publish_post(
        self,
        user_id: str,
        content: str,
        image: Optional[str] = None,
        video: Optional[str] = None,
        shared_from_id: Optional[str] = None,
    ) -> Post:
        now = self.now()
        post = Post(
            id=new_id(),
            user_id=user_id,
            content=content,
            timestamp=now,
            image=image,
            video=video,
            shared_from_id=shared_from_id,
        )
        original = self.get_shared_original(post)
        self.posts[post.id] = post
        for note in fanout.for_post(post, self.users.values(), original, now):
            self._notify(note)
        return post

    def _notify(self, note: Notification) -> None:
        self.notifications[note.id] = note

    def _has_like_notice(self, post_id: str, actor_id: str) -> bool:
        return any(
            n.type == NotificationType.LIKE and n.entity_id == post_id and n.actor_id == actor_id
            for n in self.notifications.values()
        )

    def _sweep_stories(self) -> int:
        now = self.now()
        ttl = self.settings.STORY_TTL_HOURS
        expired = [sid for sid, story in self.stories.items() if story.is_expired(now, ttl)]
        for story_id in expired:
            del self.stories[story_id]
        if expired:
            logger.info("Removed %s expired stories", len(expired))
        return len(expired)

    @staticmethod
    def _link_friends(a: User, b: User) -> None:
        a.friends.add(b.id)
        b.friends.add(a.id)

    @staticmethod
    def _unlink_friends(a: User, b: User) -> None:
        a.friends.discard(b.id)
        b.friends.discard(a.id)

    @staticmethod
    def _link_follow(follower: User, target: User) -> None:
        follower.following.add(target.id)
        target.followers.add(follower.id)

    @staticmethod
    def _unlink_follow(follower: User, target: User) -> None:
        follower.following.discard(target.id)
        target.followers.discard(follower.id)

    def snapshot(self) -> StoreState:
        with self._lock:
            return StoreState(
                users=[to_record(u) for u in self.users.values()],
                posts=[to_record(p) for p in self.posts.values()],
                comments=[to_record(c) for c in self.comments.values()],
                stories=[to_record(s) for s in self.stories.values()],
                chats=[to_record(c) for c in self.chats.values()],
                messages=[to_record(m) for m in self.messages.values()],
                notifications=[to_record(n) for n in self.notifications.values()],
                current_user_id=self.current_user_id,
            )

    def _persist(self) -> None:
        if self.storage and self.settings.AUTOSAVE:
            self.storage.save(self.snapshot())

    def _load_state(self, state: StoreState) -> None:
        self.users = {u.id: u for u in map(user_from_record, state.users)}
        self.posts = {p.id: p for p in map(post_from_record, state.posts)}
        self.comments = {c.id: c for c in map(comment_from_record, state.comments)}
        self.stories = {s.id: s for s in map(story_from_record, state.stories)}
        self.chats = {c.id: c for c in map(chat_from_record, state.chats)}
        self.messages = {m.id: m for m in map(message_from_record, state.messages)}
        self.notifications = {n.id: n for n in map(notification_from_record, state.notifications)}
        self.current_user_id = state.current_user_id if state.current_user_id in self.users else None
        logger.info("Restored %s users and %s posts from snapshot", len(self.users), len(self.posts))

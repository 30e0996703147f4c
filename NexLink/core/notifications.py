"""
Notification fan-out.

Pure derivation: each function receives the relevant slice of state and
returns the notifications to append. Nothing here mutates the store.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Iterable, List, Optional

from .ids import new_id
from .models import Notification, NotificationType, Post, User

MENTION_PATTERN = re.compile(r"@([a-zA-Z0-9]+)")
EVERYONE_TOKEN = "@everyone"

MESSAGES = {
    NotificationType.FRIEND_REQUEST: "sent you a friend request.",
    NotificationType.FOLLOW: "started following you.",
    NotificationType.LIKE: "liked your post.",
    NotificationType.COMMENT: "commented on your post.",
    NotificationType.SHARE: "shared your post.",
    NotificationType.EVERYONE: "mentioned @Everyone in a post.",
}
POST_MENTION_MESSAGE = "mentioned you in a post."
COMMENT_MENTION_MESSAGE = "mentioned you in a comment."


def make_notification(
    recipient_id: str,
    actor_id: str,
    kind: NotificationType,
    now: datetime,
    entity_id: Optional[str] = None,
    message: Optional[str] = None,
) -> Notification:
    return Notification(
        id=new_id(),
        user_id=recipient_id,
        actor_id=actor_id,
        type=kind,
        message=message or MESSAGES[kind],
        timestamp=now,
        entity_id=entity_id,
    )


def mentions_everyone(content: str) -> bool:
    return EVERYONE_TOKEN in content.lower()


def resolve_mentions(content: str, users: Iterable[User]) -> List[User]:
    """Return one user per `@handle` occurrence that matches a name.

    Handles are compared case-sensitively against names with whitespace
    removed; repeated handles resolve repeatedly.
    """
    candidates = list(users)
    resolved: List[User] = []
    for handle in MENTION_PATTERN.findall(content):
        match = next((u for u in candidates if u.mention_handle == handle), None)
        if match is not None:
            resolved.append(match)
    return resolved


def everyone_recipients(author_id: str, users: Iterable[User]) -> List[User]:
    return [
        user
        for user in users
        if user.id != author_id and not user.is_ai and author_id not in user.blocked_users
    ]


def for_post(
    post: Post,
    users: Iterable[User],
    shared_original: Optional[Post],
    now: datetime,
) -> List[Notification]:
    """Everyone broadcast, then mentions, then the share notice."""
    users = list(users)
    author_id = post.user_id
    notes: List[Notification] = []

    if mentions_everyone(post.content):
        for user in everyone_recipients(author_id, users):
            notes.append(make_notification(user.id, author_id, NotificationType.EVERYONE, now, post.id))

    for user in resolve_mentions(post.content, users):
        if user.id != author_id:
            notes.append(
                make_notification(
                    user.id, author_id, NotificationType.MENTION, now, post.id, POST_MENTION_MESSAGE
                )
            )

    if shared_original is not None and shared_original.user_id != author_id:
        notes.append(make_notification(shared_original.user_id, author_id, NotificationType.SHARE, now, post.id))
    return notes


def for_comment(
    post: Post,
    commenter_id: str,
    content: str,
    users: Iterable[User],
    now: datetime,
) -> List[Notification]:
    # Comments have no @everyone path.
    notes: List[Notification] = []
    if post.user_id != commenter_id:
        notes.append(make_notification(post.user_id, commenter_id, NotificationType.COMMENT, now, post.id))
    for user in resolve_mentions(content, users):
        if user.id != commenter_id:
            notes.append(
                make_notification(
                    user.id, commenter_id, NotificationType.MENTION, now, post.id, COMMENT_MENTION_MESSAGE
                )
            )
    return notes

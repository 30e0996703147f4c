"""
Tool commands invoked by the AI collaborator.

Each tool is a pydantic model tagged by its `tool` literal; `ToolCommand` is
the discriminated union of all of them. `execute_tool` validates a loose
`(name, args)` pair into a command and `dispatch` maps the command type to
its handler. Unknown tools and invalid arguments come back as failed
results, never as exceptions.
"""

from __future__ import annotations

import logging
from typing import Annotated, Any, Callable, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from .store import DuplicateEmailError, SocialStore

logger = logging.getLogger(__name__)


class _Command(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class CreateAccount(_Command):
    """Create a new user account. Returns password."""

    tool: Literal["create_account"] = "create_account"
    name: str
    email: str


class DeleteAccount(_Command):
    """Permanently delete a user account."""

    tool: Literal["delete_account"] = "delete_account"
    identifier: str = Field(..., description="Email or name")


class UpdateUserProfile(_Command):
    """Update user name or avatar."""

    tool: Literal["update_user_profile"] = "update_user_profile"
    identifier: str = Field(..., description="Current name or email")
    new_name: Optional[str] = Field(None, alias="newName")
    new_avatar_url: Optional[str] = Field(None, alias="newAvatarUrl")


class ForceLogoutAll(_Command):
    """Log out all users."""

    tool: Literal["force_logout_all"] = "force_logout_all"


class RecoverPassword(_Command):
    """Get password by email."""

    tool: Literal["recover_password"] = "recover_password"
    email: str


class BanUser(_Command):
    """Ban a user."""

    tool: Literal["ban_user"] = "ban_user"
    identifier: str
    reason: Optional[str] = None


class CreatePost(_Command):
    """Create a post for a user."""

    tool: Literal["create_post"] = "create_post"
    user_name: str = Field(..., alias="userName")
    content: str


class BulkPostEntry(_Command):
    user_name: str = Field(..., alias="userName")
    content: str


class BulkPost(_Command):
    """Create posts for multiple users at once."""

    tool: Literal["bulk_post"] = "bulk_post"
    posts: List[BulkPostEntry]


class CreateComment(_Command):
    """Comment on a post."""

    tool: Literal["create_comment"] = "create_comment"
    post_id: str = Field(..., alias="postId")
    user_name: str = Field(..., alias="userName")
    content: str


class AddFriend(_Command):
    """Force connect two users as friends."""

    tool: Literal["add_friend"] = "add_friend"
    user_a: str = Field(..., alias="userA")
    user_b: str = Field(..., alias="userB")


class FollowUser(_Command):
    """Make User A follow User B."""

    tool: Literal["follow_user"] = "follow_user"
    follower_name: str = Field(..., alias="followerName")
    target_name: str = Field(..., alias="targetName")


ToolCommand = Annotated[
    Union[
        CreateAccount,
        DeleteAccount,
        UpdateUserProfile,
        ForceLogoutAll,
        RecoverPassword,
        BanUser,
        CreatePost,
        BulkPost,
        CreateComment,
        AddFriend,
        FollowUser,
    ],
    Field(discriminator="tool"),
]

COMMAND_TYPES = (
    CreateAccount,
    DeleteAccount,
    UpdateUserProfile,
    ForceLogoutAll,
    RecoverPassword,
    BanUser,
    CreatePost,
    BulkPost,
    CreateComment,
    AddFriend,
    FollowUser,
)
TOOL_NAMES = frozenset(cls.model_fields["tool"].default for cls in COMMAND_TYPES)

_command_adapter: TypeAdapter = TypeAdapter(ToolCommand)


class ToolResult(BaseModel):
    success: bool
    message: Optional[str] = None


class CredentialResult(ToolResult):
    password: Optional[str] = None


def tool_catalog() -> List[Dict[str, Any]]:
    """Function declarations handed to the LLM, one per tool."""
    catalog = []
    for cls in COMMAND_TYPES:
        schema = cls.model_json_schema(by_alias=True)
        schema.get("properties", {}).pop("tool", None)
        catalog.append(
            {
                "name": cls.model_fields["tool"].default,
                "description": (cls.__doc__ or "").strip(),
                "parameters": schema,
            }
        )
    return catalog


def parse_command(name: str, args: Optional[Dict[str, Any]] = None) -> ToolCommand:
    return _command_adapter.validate_python({**(args or {}), "tool": name})


def execute_tool(store: SocialStore, name: str, args: Optional[Dict[str, Any]] = None) -> ToolResult:
    logger.info("Executing tool %s", name)
    if name not in TOOL_NAMES:
        return ToolResult(success=False, message="Unknown tool")
    try:
        command = parse_command(name, args)
    except ValidationError as exc:
        logger.warning("Invalid arguments for tool %s: %s", name, exc.error_count())
        return ToolResult(success=False, message=f"Invalid arguments for {name}")
    return dispatch(store, command)


def dispatch(store: SocialStore, command: ToolCommand) -> ToolResult:
    handler = _HANDLERS[type(command)]
    return handler(store, command)


def _create_account(store: SocialStore, cmd: CreateAccount) -> ToolResult:
    try:
        password = store.admin_create_user(cmd.name, cmd.email)
    except DuplicateEmailError as exc:
        return ToolResult(success=False, message=str(exc))
    return CredentialResult(success=True, message=f"Account created. Pass: {password}", password=password)


def _delete_account(store: SocialStore, cmd: DeleteAccount) -> ToolResult:
    deleted = store.admin_delete_user(cmd.identifier)
    return ToolResult(success=deleted, message="Deleted" if deleted else "Not found")


def _update_user_profile(store: SocialStore, cmd: UpdateUserProfile) -> ToolResult:
    user = store.get_user_by_name(cmd.identifier) or store.get_user_by_email(cmd.identifier)
    if user is None:
        return ToolResult(success=False, message="User not found")
    store.update_profile(user.id, name=cmd.new_name, avatar=cmd.new_avatar_url)
    return ToolResult(success=True, message=f"Updated profile for {user.name}")


def _force_logout_all(store: SocialStore, cmd: ForceLogoutAll) -> ToolResult:
    store.admin_force_logout_all()
    return ToolResult(success=True, message="All sessions cleared")


def _recover_password(store: SocialStore, cmd: RecoverPassword) -> ToolResult:
    password = store.admin_reveal_password(cmd.email)
    if password is None:
        return CredentialResult(success=False, message="User not found")
    return CredentialResult(success=True, message=f"Password: {password}", password=password)


def _ban_user(store: SocialStore, cmd: BanUser) -> ToolResult:
    user = store.get_user_by_id(cmd.identifier) or store.get_user_by_name(cmd.identifier)
    if user is None:
        return ToolResult(success=False, message="User not found")
    store.admin_ban_user(user.id)
    return ToolResult(success=True, message=f"Banned {user.name}")


def _create_post(store: SocialStore, cmd: CreatePost) -> ToolResult:
    poster = store.get_user_by_name(cmd.user_name)
    if poster is None:
        return ToolResult(success=False, message="User not found")
    store.add_post(poster.id, cmd.content)
    return ToolResult(success=True, message=f"Posted for {poster.name}")


def _bulk_post(store: SocialStore, cmd: BulkPost) -> ToolResult:
    count = 0
    for entry in cmd.posts:
        poster = store.get_user_by_name(entry.user_name)
        if poster is not None:
            store.add_post(poster.id, entry.content)
            count += 1
    return ToolResult(success=True, message=f"Created {count} posts.")


def _create_comment(store: SocialStore, cmd: CreateComment) -> ToolResult:
    commenter = store.get_user_by_name(cmd.user_name)
    if commenter is None:
        return ToolResult(success=False, message="User not found")
    if store.add_comment(cmd.post_id, commenter.id, cmd.content) is None:
        return ToolResult(success=False, message="Post not found")
    return ToolResult(success=True, message="Commented.")


def _add_friend(store: SocialStore, cmd: AddFriend) -> ToolResult:
    first, second = store.get_user_by_name(cmd.user_a), store.get_user_by_name(cmd.user_b)
    if first is None or second is None:
        return ToolResult(success=False, message="User not found")
    store.accept_friend_request(first.id, second.id)
    return ToolResult(success=True, message="Connected.")


def _follow_user(store: SocialStore, cmd: FollowUser) -> ToolResult:
    follower, target = store.get_user_by_name(cmd.follower_name), store.get_user_by_name(cmd.target_name)
    if follower is None or target is None:
        return ToolResult(success=False, message="User not found")
    store.follow(follower.id, target.id)
    return ToolResult(success=True, message=f"{follower.name} followed {target.name}")


_HANDLERS: Dict[type, Callable[[SocialStore, Any], ToolResult]] = {
    CreateAccount: _create_account,
    DeleteAccount: _delete_account,
    UpdateUserProfile: _update_user_profile,
    ForceLogoutAll: _force_logout_all,
    RecoverPassword: _recover_password,
    BanUser: _ban_user,
    CreatePost: _create_post,
    BulkPost: _bulk_post,
    CreateComment: _create_comment,
    AddFriend: _add_friend,
    FollowUser: _follow_user,
}

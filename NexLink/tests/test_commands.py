import pytest
from pydantic import ValidationError

from NexLink.core.commands import (
    BulkPost,
    CreatePost,
    CredentialResult,
    dispatch,
    execute_tool,
    parse_command,
    tool_catalog,
)
from NexLink.core.models import NotificationType


def test_unknown_tool_fails_without_raising(store):
    result = execute_tool(store, "launch_rockets", {})
    assert result.success is False
    assert result.message == "Unknown tool"


def test_invalid_arguments_fail_without_raising(store):
    result = execute_tool(store, "create_account", {"name": "NoEmail"})
    assert result.success is False
    assert result.message == "Invalid arguments for create_account"


def test_create_account_returns_password(store):
    result = execute_tool(store, "create_account", {"name": "Bot", "email": "bot@x.com"})

    assert isinstance(result, CredentialResult)
    assert result.success is True
    assert result.message == f"Account created. Pass: {result.password}"
    assert store.get_user_by_email("bot@x.com").is_ai_controlled is True


def test_create_account_duplicate_email(store, make_user):
    make_user("Alice")
    result = execute_tool(store, "create_account", {"name": "Alice", "email": "alice@x.com"})
    assert result.success is False


def test_create_post_by_case_insensitive_name(store, make_user):
    alice = make_user("Alice")

    result = execute_tool(store, "create_post", {"userName": "alice", "content": "from the bot"})

    assert result.success is True
    assert result.message == "Posted for Alice"
    assert store.posts_by(alice.id)[0].content == "from the bot"


def test_create_post_unknown_user(store):
    result = execute_tool(store, "create_post", {"userName": "ghost", "content": "boo"})
    assert (result.success, result.message) == (False, "User not found")


def test_bulk_post_skips_unknown_users(store, make_user):
    make_user("Alice")
    make_user("Bob")

    result = execute_tool(
        store,
        "bulk_post",
        {
            "posts": [
                {"userName": "Alice", "content": "one"},
                {"userName": "Ghost", "content": "two"},
                {"userName": "Bob", "content": "three"},
            ]
        },
    )

    assert result.success is True
    assert result.message == "Created 2 posts."
    assert len(store.posts) == 2


def test_create_comment(store, make_user):
    alice = make_user("Alice")
    make_user("Bob")
    post = store.add_post(alice.id, "post")

    ok = execute_tool(store, "create_comment", {"postId": post.id, "userName": "Bob", "content": "hi"})
    missing = execute_tool(store, "create_comment", {"postId": "nope", "userName": "Bob", "content": "hi"})

    assert (ok.success, ok.message) == (True, "Commented.")
    assert (missing.success, missing.message) == (False, "Post not found")


def test_add_friend_connects_both_sides(store, make_user):
    alice, bob = make_user("Alice"), make_user("Bob")

    result = execute_tool(store, "add_friend", {"userA": "Alice", "userB": "Bob"})

    assert (result.success, result.message) == (True, "Connected.")
    assert alice.friends == {bob.id}
    assert bob.friends == {alice.id}


def test_follow_user_notifies_target(store, make_user):
    alice, bob = make_user("Alice"), make_user("Bob")

    result = execute_tool(store, "follow_user", {"followerName": "Alice", "targetName": "Bob"})

    assert result.message == "Alice followed Bob"
    assert [n.type for n in store.notifications_for(bob.id)] == [NotificationType.FOLLOW]


def test_update_user_profile_by_email(store, make_user):
    alice = make_user("Alice")

    result = execute_tool(
        store,
        "update_user_profile",
        {"identifier": "alice@x.com", "newName": "Alicia", "newAvatarUrl": "new.png"},
    )

    assert result.success is True
    assert alice.name == "Alicia"
    assert store.feed()[0].content == "Alice updated their profile picture."


def test_recover_password_and_force_logout(store, make_user):
    make_user("Alice", password="hunter2")

    recovered = execute_tool(store, "recover_password", {"email": "alice@x.com"})
    missing = execute_tool(store, "recover_password", {"email": "nobody@x.com"})
    cleared = execute_tool(store, "force_logout_all")

    assert recovered.password == "hunter2"
    assert recovered.message == "Password: hunter2"
    assert missing.success is False
    assert cleared.message == "All sessions cleared"
    assert store.current_user is None


def test_ban_user_by_name_or_id(store, make_user):
    alice, bob = make_user("Alice"), make_user("Bob")

    by_name = execute_tool(store, "ban_user", {"identifier": "Alice", "reason": "spam"})
    by_id = execute_tool(store, "ban_user", {"identifier": bob.id})

    assert by_name.message == "Banned Alice"
    assert by_id.message == "Banned Bob"
    assert alice.blocked and bob.blocked


def test_delete_account_reports_missing(store, make_user):
    make_user("Alice")
    assert execute_tool(store, "delete_account", {"identifier": "Alice"}).message == "Deleted"
    assert execute_tool(store, "delete_account", {"identifier": "Alice"}).message == "Not found"


def test_parse_command_accepts_aliases_and_field_names():
    by_alias = parse_command("create_post", {"userName": "Alice", "content": "x"})
    by_name = parse_command("create_post", {"user_name": "Alice", "content": "x"})
    assert isinstance(by_alias, CreatePost)
    assert by_alias == by_name

    with pytest.raises(ValidationError):
        parse_command("bulk_post", {"posts": [{"content": "missing user"}]})


def test_dispatch_typed_command(store, make_user):
    make_user("Alice")
    result = dispatch(store, BulkPost(posts=[{"userName": "Alice", "content": "typed"}]))
    assert result.message == "Created 1 posts."


def test_tool_catalog_describes_every_tool():
    catalog = {entry["name"]: entry for entry in tool_catalog()}

    assert set(catalog) == {
        "create_account",
        "delete_account",
        "update_user_profile",
        "force_logout_all",
        "recover_password",
        "ban_user",
        "create_post",
        "bulk_post",
        "create_comment",
        "add_friend",
        "follow_user",
    }
    create_post = catalog["create_post"]["parameters"]
    assert set(create_post["required"]) == {"userName", "content"}
    assert "tool" not in create_post["properties"]
    assert catalog["create_account"]["description"] == "Create a new user account. Returns password."

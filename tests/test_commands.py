"""Tests for the slash command handlers."""

import json
from pathlib import Path
import sys

import httpx
import pytest
from sqlalchemy.exc import OperationalError
from structlog.testing import capture_logs

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from discord_task_bridge import Base, config  # noqa: E402
from discord_task_bridge.db import get_engine, get_session_factory, session_scope  # noqa: E402
from discord_task_bridge.discord_client import DiscordClient  # noqa: E402
from discord_task_bridge.interactions import HandlerContext, handle_interaction  # noqa: E402
from discord_task_bridge.interactions import commands  # noqa: E402
from discord_task_bridge.models import Profile, Task  # noqa: E402
from discord_task_bridge.roles import TEAM_ROLES  # noqa: E402


class DiscordStub:
    """Collects Discord REST calls and answers them with a fixed status."""

    def __init__(self, status_code: int = 200):
        self.status_code = status_code
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json={"id": "M1"})


@pytest.fixture(autouse=True)
def setup_database(monkeypatch, tmp_path):
    monkeypatch.setenv("DISCORD_PUBLIC_KEY", "00" * 32)
    monkeypatch.setenv("DISCORD_BOT_TOKEN", "test-token")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'commands.db'}")
    config.get_settings.cache_clear()
    get_engine.cache_clear()
    get_session_factory.cache_clear()
    Base.metadata.create_all(get_engine())
    yield
    config.get_settings.cache_clear()
    get_engine.cache_clear()
    get_session_factory.cache_clear()


@pytest.fixture()
def stub():
    return DiscordStub()


@pytest.fixture()
def context(stub):
    http = httpx.Client(base_url="https://discord.test/api/v10", transport=httpx.MockTransport(stub))
    return HandlerContext(
        settings=config.get_settings(),
        discord=DiscordClient(client=http),
        sessions=get_session_factory(),
    )


def _command(name, *, user_id="111", guild_id="G1", **options):
    payload = {
        "type": 2,
        "id": "I1",
        "token": "tok",
        "data": {
            "name": name,
            "options": [{"name": key, "type": 3, "value": value} for key, value in options.items()],
        },
    }
    if guild_id:
        payload["guild_id"] = guild_id
        payload["member"] = {"user": {"id": user_id, "username": "ada"}}
    else:
        payload["user"] = {"id": user_id, "username": "ada"}
    return payload


def _content(reply):
    assert reply["type"] == 4
    return reply["data"]["content"]


def _linked_profile(discord_user_id="111", **kwargs) -> str:
    with session_scope() as session:
        profile = Profile(discord_user_id=discord_user_id, **kwargs)
        session.add(profile)
        session.flush()
        return profile.id


def test_addtask_requires_content(context):
    reply = handle_interaction(_command("addtask"), context)

    assert _content(reply) == "❌ Error: Content is required for the task."
    with session_scope() as session:
        assert session.query(Task).count() == 0


def test_addtask_blank_content_is_rejected(context):
    reply = handle_interaction(_command("addtask", content="   "), context)

    assert _content(reply) == "❌ Error: Content is required for the task."


def test_addtask_works_for_unlinked_user(context):
    reply = handle_interaction(_command("addtask", content="Buy tyres"), context)

    assert _content(reply) == "✅ Task added: Buy tyres"
    with session_scope() as session:
        task = session.query(Task).one()
        assert task.content == "Buy tyres"
        assert task.status == "pending"
        assert task.discord_user_id == "111"
        assert task.created_by is None


def test_addtask_records_creator_when_linked(context):
    profile_id = _linked_profile()

    handle_interaction(_command("addtask", content="Order bolts"), context)

    with session_scope() as session:
        assert session.query(Task).one().created_by == profile_id


def test_addtask_in_direct_message_uses_top_level_user(context):
    reply = handle_interaction(_command("addtask", guild_id=None, user_id="222", content="DM task"), context)

    assert _content(reply) == "✅ Task added: DM task"
    with session_scope() as session:
        assert session.query(Task).one().discord_user_id == "222"


def test_listtasks_requires_link(context):
    reply = handle_interaction(_command("listtasks"), context)

    assert "not linked" in _content(reply)


def test_listtasks_and_mytasks_empty_messages_differ(context):
    _linked_profile()

    listed = _content(handle_interaction(_command("listtasks"), context))
    mine = _content(handle_interaction(_command("mytasks"), context))

    assert listed == commands.NO_TASKS_MESSAGE
    assert mine == commands.NO_ASSIGNED_TASKS_MESSAGE


def test_listtasks_adds_complete_button_for_newest_open_task(context):
    _linked_profile()
    handle_interaction(_command("addtask", content="First"), context)
    handle_interaction(_command("addtask", content="Second"), context)

    reply = handle_interaction(_command("listtasks"), context)

    content = _content(reply)
    assert content.startswith("📋 **Your Tasks (2):**")
    assert "1. ⏳ Second [pending]" in content
    assert "2. ⏳ First [pending]" in content

    with session_scope() as session:
        newest = session.query(Task).filter_by(content="Second").one().id
    row = reply["data"]["components"][0]
    assert row["type"] == 1
    assert row["components"][0]["custom_id"] == f"complete_task_{newest}"
    assert row["components"][0]["style"] == 3


def test_listtasks_skips_button_when_newest_task_is_done(context):
    profile_id = _linked_profile()
    with session_scope() as session:
        session.add(Task(content="Done", status="completed", created_by=profile_id))

    reply = handle_interaction(_command("listtasks"), context)

    assert "✅ Done [completed]" in _content(reply)
    assert reply["data"]["components"] == []


def test_mytasks_shows_priority_glyphs(context):
    profile_id = _linked_profile()
    with session_scope() as session:
        session.add(Task(content="Wire loom", status="in_progress", priority="critical", assigned_to=profile_id))

    content = _content(handle_interaction(_command("mytasks"), context))

    assert content.startswith("📋 **Tasks Assigned to You (1):**")
    assert "1. 🔄 🔴 Wire loom [in_progress]" in content


def test_completetask_only_completes_own_tasks(context):
    owner_id = _linked_profile("111")
    _linked_profile("222")
    with session_scope() as session:
        task = Task(content="Owner task", created_by=owner_id)
        session.add(task)
        session.flush()
        task_id = task.id

    refused = handle_interaction(_command("completetask", user_id="222", id=task_id), context)
    assert _content(refused) == commands.TASK_NOT_FOUND_MESSAGE
    with session_scope() as session:
        assert session.get(Task, task_id).status == "pending"

    accepted = handle_interaction(_command("completetask", user_id="111", id=task_id), context)
    assert _content(accepted) == "✅ Task completed: Owner task"
    with session_scope() as session:
        assert session.get(Task, task_id).status == "completed"


def test_completetask_requires_id(context):
    _linked_profile()

    reply = handle_interaction(_command("completetask"), context)

    assert "Task ID is required" in _content(reply)


def test_linkaccount_without_code_shows_help(context):
    reply = handle_interaction(_command("linkaccount"), context)

    assert _content(reply) == commands.LINK_CODE_HELP_MESSAGE


def test_linkaccount_links_and_code_cannot_be_reused(context):
    with session_scope() as session:
        profile = Profile(full_name="Ada Lovelace", discord_link_code="LINK1234")
        session.add(profile)
        session.flush()
        profile_id = profile.id

    first = _content(handle_interaction(_command("linkaccount", code="link1234"), context))
    assert first.startswith("✅ Account linked successfully! Welcome, Ada Lovelace!")

    again = _content(handle_interaction(_command("linkaccount", user_id="333", code="LINK1234"), context))
    assert again.startswith("❌ Invalid linking code.")

    with session_scope() as session:
        stored = session.get(Profile, profile_id)
        assert stored.discord_user_id == "111"
        assert stored.discord_link_code is None


def test_linkaccount_refuses_identity_linked_elsewhere(context):
    _linked_profile("111", full_name="Existing Person")
    with session_scope() as session:
        session.add(Profile(full_name="Newcomer", discord_link_code="NEWCODE1"))

    reply = handle_interaction(_command("linkaccount", code="NEWCODE1"), context)

    assert _content(reply) == "❌ This Discord account is already linked to another user (Existing Person)."


def test_linkaccount_unknown_code(context):
    reply = handle_interaction(_command("linkaccount", code="NOPE"), context)

    assert _content(reply).startswith("❌ Invalid linking code.")


def test_setupwelcome_requires_guild(context, stub):
    reply = handle_interaction(_command("setupwelcome", guild_id=None, channel="C1"), context)

    assert _content(reply) == "❌ This command can only be used in a server."
    assert stub.requests == []


def test_setupwelcome_posts_role_buttons(context, stub):
    reply = handle_interaction(_command("setupwelcome", channel="<#555>"), context)

    assert _content(reply) == "✅ Role selection message sent to <#555>! Users can now select their roles."
    request = stub.requests[0]
    assert request.url.path == "/api/v10/channels/555/messages"
    body = json.loads(request.content)
    buttons = [button for row in body["components"] for button in row["components"]]
    assert len(body["components"]) == 2
    assert [button["custom_id"] for button in buttons] == [role.key for role in TEAM_ROLES]


def test_setupwelcome_reports_discord_failure(context, stub):
    stub.status_code = 403

    reply = handle_interaction(_command("setupwelcome", channel="555"), context)

    assert _content(reply).startswith("❌ Error: Discord API error 403")


def test_unknown_command(context):
    reply = handle_interaction(_command("deploy"), context)

    assert _content(reply).startswith("❌ Unknown command.")


def test_handler_exceptions_become_error_replies(context, monkeypatch):
    _linked_profile()

    def explode(*args, **kwargs):
        raise RuntimeError("database on fire")

    monkeypatch.setattr(commands, "list_created_tasks", explode)

    with capture_logs() as logs:
        reply = handle_interaction(_command("listtasks"), context)

    assert _content(reply) == "❌ Error: database on fire"
    failure = next(entry for entry in logs if entry["event"] == "handler_failed")
    assert failure["handler"] == "listtasks"
    assert failure["error_type"] == "RuntimeError"


def test_addtask_insert_failure_replies_with_database_error(context, monkeypatch):
    def failing_insert(*args, **kwargs):
        raise OperationalError("INSERT INTO tasks", {}, Exception("database is locked"))

    monkeypatch.setattr(commands, "create_task", failing_insert)

    reply = handle_interaction(_command("addtask", content="Never stored"), context)

    content = _content(reply)
    assert content.startswith("❌ Error adding task:")
    assert "database is locked" in content
    with session_scope() as session:
        assert session.query(Task).count() == 0

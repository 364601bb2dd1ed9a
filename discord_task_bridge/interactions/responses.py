"""Builders for interaction response payloads."""

from __future__ import annotations

from enum import IntEnum
from typing import Any, Dict, Mapping, Sequence

from discord_task_bridge.models import STATUS_COMPLETED, STATUS_IN_PROGRESS

MESSAGE_FLAG_EPHEMERAL = 64

AVAILABLE_COMMANDS = ("addtask", "listtasks", "mytasks", "completetask", "linkaccount", "setupwelcome")

NOT_LINKED_MESSAGE = (
    "❌ Your Discord account is not linked. Use `/linkaccount` to link your account first."
)
UNKNOWN_USER_MESSAGE = "❌ Error: Could not identify Discord user."


class ResponseType(IntEnum):
    PONG = 1
    CHANNEL_MESSAGE = 4
    UPDATE_MESSAGE = 7


_STATUS_GLYPHS = {
    STATUS_COMPLETED: "✅",
    STATUS_IN_PROGRESS: "🔄",
}
_PRIORITY_GLYPHS = {
    "critical": "🔴",
    "high": "🟠",
    "medium": "🟡",
}


def status_glyph(status: str | None) -> str:
    return _STATUS_GLYPHS.get(status or "", "⏳")


def priority_glyph(priority: str | None) -> str:
    return _PRIORITY_GLYPHS.get(priority or "", "🟢")


def pong() -> Dict[str, Any]:
    return {"type": ResponseType.PONG.value}


def _message_data(
    content: str,
    *,
    components: Sequence[Mapping[str, Any]] | None,
    ephemeral: bool,
) -> Dict[str, Any]:
    data: Dict[str, Any] = {"content": content}
    if components is not None:
        data["components"] = list(components)
    if ephemeral:
        data["flags"] = MESSAGE_FLAG_EPHEMERAL
    return data


def message_reply(
    content: str,
    *,
    components: Sequence[Mapping[str, Any]] | None = None,
    ephemeral: bool = False,
) -> Dict[str, Any]:
    """Reply with a new channel message."""

    return {
        "type": ResponseType.CHANNEL_MESSAGE.value,
        "data": _message_data(content, components=components, ephemeral=ephemeral),
    }


def update_message(content: str, *, components: Sequence[Mapping[str, Any]] | None = None) -> Dict[str, Any]:
    """Rewrite the message the clicked component belongs to."""

    return {
        "type": ResponseType.UPDATE_MESSAGE.value,
        "data": _message_data(content, components=components, ephemeral=False),
    }


def error_reply(message: str, *, ephemeral: bool = False) -> Dict[str, Any]:
    return message_reply(f"❌ Error: {message}", ephemeral=ephemeral)


def unknown_command_reply() -> Dict[str, Any]:
    listed = ", ".join(f"`/{name}`" for name in AVAILABLE_COMMANDS)
    return message_reply(f"❌ Unknown command. Available commands: {listed}")


def action_row(*buttons: Mapping[str, Any]) -> Dict[str, Any]:
    return {"type": 1, "components": list(buttons)}


def success_button(*, label: str, custom_id: str) -> Dict[str, Any]:
    return {"type": 2, "style": 3, "label": label, "custom_id": custom_id}
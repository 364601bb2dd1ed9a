"""Member welcome messages and the service-side role helpers."""

from __future__ import annotations

from typing import Any, Mapping

import structlog

from discord_task_bridge.discord_client import DiscordApiError, DiscordClient
from discord_task_bridge.notifications import ServiceResult
from discord_task_bridge.roles import build_role_selection_message

GUILD_TEXT_CHANNEL = 0

WELCOME_TEMPLATE = """Hey <@{user_id}>, welcome to Formula IHU 2026! 👋

To help us organise your access to the correct team channels, please follow these steps:

1️⃣ **Change your Discord nickname** in this server to your full name (Name + Surname).
   This ensures proper and clear communication inside the team.

2️⃣ **Go to the #roles channel** and select your team role using the buttons.
   The correct channels will unlock automatically once you choose your role.

3️⃣ **Register at flow.fihu.gr** and sync your account with Discord using `/linkaccount`.

If you need help at any point, feel free to reach out.

🔥"""


def build_welcome_message(user_id: str) -> str:
    return WELCOME_TEMPLATE.format(user_id=user_id)


def is_member_join_event(body: Mapping[str, Any]) -> bool:
    return (
        body.get("type") == "guild_member_add"
        or body.get("event") == "member_join"
        or body.get("t") == "GUILD_MEMBER_ADD"
    )


def resolve_welcome_channel(discord: DiscordClient, guild_id: str) -> str | None:
    """Return the guild's system channel, else its first text channel."""

    log = structlog.get_logger().bind(guild_id=guild_id)
    try:
        guild = discord.get_guild(guild_id=guild_id)
        if guild.get("system_channel_id"):
            return guild["system_channel_id"]
    except DiscordApiError as exc:
        log.warning("guild_lookup_failed", status_code=exc.status_code)

    try:
        channels = discord.list_guild_channels(guild_id=guild_id)
    except DiscordApiError as exc:
        log.warning("guild_channels_lookup_failed", status_code=exc.status_code)
        return None

    for channel in channels:
        if channel.get("type") == GUILD_TEXT_CHANNEL:
            return channel.get("id")
    return None


def _welcome_member(body: Mapping[str, Any], discord: DiscordClient) -> ServiceResult:
    # Gateway dispatches nest the member payload under "d".
    event = body.get("d") if isinstance(body.get("d"), Mapping) else body
    guild_id = event.get("guild_id") or (event.get("guild") or {}).get("id")
    user = event.get("user") or (event.get("member") or {}).get("user")
    if not guild_id or not user or not user.get("id"):
        return ServiceResult(400, {"error": "Missing required fields: guild_id and user"})

    channel_id = event.get("channel_id") or resolve_welcome_channel(discord, guild_id)
    if not channel_id:
        return ServiceResult(
            400,
            {
                "error": "Could not find a welcome channel. Please specify channel_id "
                "or set a system channel in Discord."
            },
        )

    log = structlog.get_logger().bind(guild_id=guild_id, channel=channel_id)
    try:
        discord.post_message(channel_id=channel_id, content=build_welcome_message(user["id"]))
        success = True
    except DiscordApiError as exc:
        log.error("welcome_post_failed", status_code=exc.status_code)
        success = False

    log.info("welcome_processed", success=success)
    return ServiceResult(
        200,
        {
            "success": success,
            "message": "Welcome message sent" if success else "Failed to send welcome message",
            "channel_id": channel_id,
        },
    )


def _setup_roles(body: Mapping[str, Any], discord: DiscordClient) -> ServiceResult:
    channel_id = body.get("channel_id")
    if not channel_id:
        return ServiceResult(400, {"error": "Missing channel_id"})

    message = build_role_selection_message()
    try:
        discord.post_message(channel_id=channel_id, content=message["content"], components=message["components"])
        success = True
    except DiscordApiError as exc:
        structlog.get_logger().error("role_selection_post_failed", status_code=exc.status_code)
        success = False
    return ServiceResult(
        200,
        {
            "success": success,
            "message": "Role selection message sent" if success else "Failed to send role selection message",
        },
    )


def _assign_role(body: Mapping[str, Any], discord: DiscordClient) -> ServiceResult:
    guild_id, user_id, role_id = body.get("guild_id"), body.get("user_id"), body.get("role_id")
    if not guild_id or not user_id or not role_id:
        return ServiceResult(400, {"error": "Missing required fields"})

    try:
        discord.add_member_role(guild_id=guild_id, user_id=user_id, role_id=role_id)
        success = True
    except DiscordApiError as exc:
        structlog.get_logger().error("role_assignment_failed", status_code=exc.status_code)
        success = False
    return ServiceResult(
        200,
        {"success": success, "message": "Role assigned" if success else "Failed to assign role"},
    )


def handle_welcome_event(body: Mapping[str, Any], *, discord: DiscordClient) -> ServiceResult:
    """Dispatch a member-join, role-setup or role-assignment service event."""

    if is_member_join_event(body):
        return _welcome_member(body, discord)
    if body.get("type") == "setup_roles" or body.get("event") == "setup_roles":
        return _setup_roles(body, discord)
    if body.get("type") == "assign_role" or body.get("event") == "assign_role":
        return _assign_role(body, discord)
    return ServiceResult(400, {"error": "Unknown event type"})

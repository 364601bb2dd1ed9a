"""Handlers for message component (button) interactions."""

from __future__ import annotations

import structlog
from sqlalchemy.exc import SQLAlchemyError

from discord_task_bridge.discord_client import DiscordApiError
from discord_task_bridge.interactions.commands import COMPLETE_TASK_CUSTOM_ID_PREFIX
from discord_task_bridge.interactions.context import HandlerContext, LinkedProfile, Reply, handler_boundary
from discord_task_bridge.interactions.models import Interaction
from discord_task_bridge.interactions.responses import message_reply, update_message
from discord_task_bridge.repository import complete_owned_task, find_profile_by_discord_id, set_discord_role

ROLE_ASSIGNED_MESSAGE = "✅ Role assigned successfully! Welcome to the team! 🎉"
ROLE_FAILED_MESSAGE = "❌ Failed to assign role. Please try again or contact an administrator."


def _ephemeral(content: str) -> Reply:
    return message_reply(content, ephemeral=True)


@handler_boundary("role_select", ephemeral=True)
def handle_role_selection(interaction: Interaction, context: HandlerContext) -> Reply:
    """Grant the team role behind a role button. Linking is not required."""

    custom_id = interaction.custom_id or ""
    discord_user_id = interaction.user_id
    guild_id = interaction.guild_id
    if not guild_id:
        return _ephemeral("❌ Could not identify server. Please try again.")

    role_id = context.settings.role_mapping().get(custom_id)
    if not role_id:
        return _ephemeral("❌ Role not configured. Please contact an administrator.")

    log = structlog.get_logger().bind(component="role_select", role=custom_id, guild_id=guild_id)
    try:
        context.discord.add_member_role(guild_id=guild_id, user_id=discord_user_id, role_id=role_id)
    except DiscordApiError as exc:
        log.error("role_assignment_failed", status_code=exc.status_code)
        return _ephemeral(ROLE_FAILED_MESSAGE)

    try:
        with context.session_scope() as session:
            profile = find_profile_by_discord_id(session, discord_user_id)
            if profile is not None:
                set_discord_role(session, profile.id, custom_id)
                log = log.bind(profile_id=profile.id)
    except SQLAlchemyError:
        log.exception("profile_role_update_failed")

    log.info("role_assigned")
    return _ephemeral(ROLE_ASSIGNED_MESSAGE)


@handler_boundary("complete_task_button", ephemeral=True)
def handle_complete_task_button(
    interaction: Interaction, context: HandlerContext, profile: LinkedProfile
) -> Reply:
    """Complete the task encoded in the button and rewrite the original message."""

    task_id = (interaction.custom_id or "")[len(COMPLETE_TASK_CUSTOM_ID_PREFIX):]
    log = structlog.get_logger().bind(component="complete_task", task_id=task_id)

    task = None
    if task_id:
        with context.session_scope() as session:
            task = complete_owned_task(session, task_id=task_id, owner_id=profile.id)

    if task is None:
        log.info("task_completion_refused")
        return _ephemeral("❌ Could not complete task. Make sure you own this task.")

    log.info("task_completed")
    return update_message(f"✅ Task completed: {task.content}", components=[])

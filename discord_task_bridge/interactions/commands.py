"""Slash command handlers."""

from __future__ import annotations

import re
from typing import List

import structlog
from sqlalchemy.exc import SQLAlchemyError

from discord_task_bridge.discord_client import DiscordApiError
from discord_task_bridge.interactions.context import HandlerContext, Reply, handler_boundary
from discord_task_bridge.interactions.models import Interaction
from discord_task_bridge.interactions.responses import (
    NOT_LINKED_MESSAGE,
    UNKNOWN_USER_MESSAGE,
    action_row,
    message_reply,
    priority_glyph,
    status_glyph,
    success_button,
)
from discord_task_bridge.models import IdentityConflictError
from discord_task_bridge.repository import (
    TaskSummary,
    complete_owned_task,
    create_task,
    find_profile_by_discord_id,
    find_profile_by_link_code,
    link_profile,
    list_assigned_tasks,
    list_created_tasks,
)
from discord_task_bridge.roles import build_role_selection_message

COMPLETE_TASK_CUSTOM_ID_PREFIX = "complete_task_"

NO_TASKS_MESSAGE = "📋 You have no tasks yet. Use `/addtask` to create one!"
NO_ASSIGNED_TASKS_MESSAGE = "📋 You have no assigned tasks. You're all caught up! 🎉"
TASK_NOT_FOUND_MESSAGE = "❌ Task not found or you don't have permission to complete it."

LINK_CODE_HELP_MESSAGE = (
    "❌ Please provide a linking code from the app.\n\n"
    "**How to get your code:**\n"
    "1. Go to Settings → Discord Integration in the app\n"
    "2. Click 'Generate Link Code'\n"
    "3. Use that code here: `/linkaccount code:YOUR_CODE`"
)
INVALID_LINK_CODE_MESSAGE = (
    "❌ Invalid linking code. Please check the code and try again.\n\n"
    "Make sure you:\n"
    "1. Generated a code in the app\n"
    "2. Used the code before it expired (codes work once)\n"
    "3. Typed it correctly\n\n"
    "If in doubt, generate a new code in the app."
)

_CHANNEL_MENTION = re.compile(r"[<#>]")


def complete_task_custom_id(task_id: str) -> str:
    return f"{COMPLETE_TASK_CUSTOM_ID_PREFIX}{task_id}"


def _format_task_line(index: int, task: TaskSummary, *, with_priority: bool = False) -> str:
    glyphs = status_glyph(task.status)
    if with_priority:
        glyphs = f"{glyphs} {priority_glyph(task.priority)}"
    return f"{index}. {glyphs} {task.content} [{task.status}] `{task.id}`"


def _format_task_list(tasks: List[TaskSummary], *, with_priority: bool = False) -> str:
    return "\n".join(
        _format_task_line(index, task, with_priority=with_priority)
        for index, task in enumerate(tasks, start=1)
    )


def strip_channel_mention(value: str) -> str:
    """Turn ``<#123>`` (or a bare id) into the raw channel id."""

    return _CHANNEL_MENTION.sub("", value).strip()


@handler_boundary("addtask")
def handle_add_task(interaction: Interaction, context: HandlerContext) -> Reply:
    content = interaction.option("content")
    if not content:
        return message_reply("❌ Error: Content is required for the task.")

    discord_user_id = interaction.user_id
    log = structlog.get_logger().bind(command="addtask", discord_user_id=discord_user_id)

    try:
        with context.session_scope() as session:
            profile = find_profile_by_discord_id(session, discord_user_id)
            task = create_task(
                session,
                content=content,
                discord_user_id=discord_user_id,
                created_by=profile.id if profile is not None else None,
            )
    except SQLAlchemyError as exc:
        log.exception("task_insert_failed")
        return message_reply(f"❌ Error adding task: {exc}")

    log.info("task_created", task_id=task.id, linked=task.created_by is not None)
    return message_reply(f"✅ Task added: {content}")


@handler_boundary("listtasks")
def handle_list_tasks(interaction: Interaction, context: HandlerContext) -> Reply:
    discord_user_id = interaction.user_id
    if not discord_user_id:
        return message_reply(UNKNOWN_USER_MESSAGE)

    with context.session_scope() as session:
        profile = find_profile_by_discord_id(session, discord_user_id)
        if profile is None:
            return message_reply(NOT_LINKED_MESSAGE)
        tasks = list_created_tasks(session, profile.id)

    if not tasks:
        return message_reply(NO_TASKS_MESSAGE)

    components = []
    latest = tasks[0]
    if not latest.is_completed:
        # Only the newest open task gets a shortcut button.
        components.append(
            action_row(success_button(label="Complete Task", custom_id=complete_task_custom_id(latest.id)))
        )

    return message_reply(
        f"📋 **Your Tasks ({len(tasks)}):**\n{_format_task_list(tasks)}",
        components=components,
    )


@handler_boundary("mytasks")
def handle_my_tasks(interaction: Interaction, context: HandlerContext) -> Reply:
    discord_user_id = interaction.user_id
    if not discord_user_id:
        return message_reply(UNKNOWN_USER_MESSAGE)

    with context.session_scope() as session:
        profile = find_profile_by_discord_id(session, discord_user_id)
        if profile is None:
            return message_reply(NOT_LINKED_MESSAGE)
        tasks = list_assigned_tasks(session, profile.id)

    if not tasks:
        return message_reply(NO_ASSIGNED_TASKS_MESSAGE)

    return message_reply(
        f"📋 **Tasks Assigned to You ({len(tasks)}):**\n{_format_task_list(tasks, with_priority=True)}"
    )


@handler_boundary("completetask")
def handle_complete_task(interaction: Interaction, context: HandlerContext) -> Reply:
    discord_user_id = interaction.user_id
    if not discord_user_id:
        return message_reply(UNKNOWN_USER_MESSAGE)

    task_id = interaction.option("id")
    if not task_id:
        return message_reply("❌ Error: Task ID is required. Use `/listtasks` to see your task IDs.")

    log = structlog.get_logger().bind(command="completetask", task_id=task_id)
    with context.session_scope() as session:
        profile = find_profile_by_discord_id(session, discord_user_id)
        if profile is None:
            return message_reply(NOT_LINKED_MESSAGE)
        task = complete_owned_task(session, task_id=task_id, owner_id=profile.id)

    if task is None:
        log.info("task_completion_refused")
        return message_reply(TASK_NOT_FOUND_MESSAGE)

    log.info("task_completed")
    return message_reply(f"✅ Task completed: {task.content}")


@handler_boundary("linkaccount")
def handle_link_account(interaction: Interaction, context: HandlerContext) -> Reply:
    discord_user_id = interaction.user_id
    if not discord_user_id:
        return message_reply(UNKNOWN_USER_MESSAGE)

    code = interaction.option("code")
    if not code:
        return message_reply(LINK_CODE_HELP_MESSAGE)

    log = structlog.get_logger().bind(command="linkaccount", discord_user_id=discord_user_id)
    try:
        with context.session_scope() as session:
            profile = find_profile_by_link_code(session, code)
            if profile is None:
                log.info("link_code_rejected")
                return message_reply(INVALID_LINK_CODE_MESSAGE)

            existing = find_profile_by_discord_id(session, discord_user_id)
            if existing is not None and existing.id != profile.id:
                log.info("link_identity_conflict", profile_id=existing.id)
                return message_reply(
                    "❌ This Discord account is already linked to another user "
                    f"({existing.full_name or 'Unknown'})."
                )

            display_name = profile.full_name or interaction.username or "there"
            profile_id = profile.id
            linked = link_profile(session, profile, discord_user_id=discord_user_id, code=code)
    except IdentityConflictError:
        log.info("link_identity_conflict", reason="concurrent_claim")
        return message_reply("❌ This Discord account is already linked to another user.")

    if not linked:
        log.info("link_code_rejected", reason="consumed_concurrently")
        return message_reply(INVALID_LINK_CODE_MESSAGE)

    log.info("account_linked", profile_id=profile_id)
    return message_reply(
        f"✅ Account linked successfully! Welcome, {display_name}!\n\n"
        "You can now use:\n"
        "• `/listtasks` - View your tasks\n"
        "• `/mytasks` - View assigned tasks\n"
        "• `/completetask` - Complete tasks\n"
        "• `/addtask` - Create new tasks"
    )


@handler_boundary("setupwelcome")
def handle_setup_welcome(interaction: Interaction, context: HandlerContext) -> Reply:
    if not interaction.guild_id:
        return message_reply("❌ This command can only be used in a server.")

    channel = interaction.option("channel")
    channel_id = strip_channel_mention(channel) if channel else ""
    if not channel_id:
        return message_reply("❌ Please specify a channel. Usage: `/setupwelcome channel:#roles`")

    log = structlog.get_logger().bind(command="setupwelcome", guild_id=interaction.guild_id, channel=channel_id)
    message = build_role_selection_message()
    try:
        context.discord.post_message(
            channel_id=channel_id,
            content=message["content"],
            components=message["components"],
        )
    except DiscordApiError as exc:
        log.error("role_selection_post_failed", status_code=exc.status_code)
        raise

    log.info("role_selection_posted")
    return message_reply(f"✅ Role selection message sent to <#{channel_id}>! Users can now select their roles.")

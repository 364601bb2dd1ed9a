"""Direct-message notifications about task changes."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping

import structlog
from sqlalchemy.orm import Session, sessionmaker

from discord_task_bridge.db import session_scope
from discord_task_bridge.discord_client import DiscordApiError, DiscordClient
from discord_task_bridge.interactions.responses import priority_glyph, status_glyph
from discord_task_bridge.repository import TaskSummary, get_profile, get_task

EVENT_CREATED = "created"
EVENT_UPDATED = "updated"
EVENT_ASSIGNED = "assigned"
EVENT_COMPLETED = "completed"


@dataclass(frozen=True)
class ServiceResult:
    status_code: int
    body: Dict[str, Any] = field(default_factory=dict)


def build_notification_message(event_type: str, task: TaskSummary) -> str:
    """Render the DM text for *event_type* on *task*."""

    status = task.status or "pending"
    priority = task.priority or "medium"
    glyphs = f"{status_glyph(status)} {priority_glyph(priority)}"

    if event_type == EVENT_CREATED:
        return f"📋 **New Task Created**\n{glyphs} **{task.content}**\nStatus: {status}\nPriority: {priority}"
    if event_type == EVENT_UPDATED:
        return f"📝 **Task Updated**\n{glyphs} **{task.content}**\nNew Status: {status}"
    if event_type == EVENT_ASSIGNED:
        return f"👤 **Task Assigned to You**\n{glyphs} **{task.content}**\nStatus: {status}\nPriority: {priority}"
    if event_type == EVENT_COMPLETED:
        return f"✅ **Task Completed!**\n**{task.content}**\nGreat work! 🎉"
    return f"📋 **Task Update**\n{glyphs} **{task.content}**\nStatus: {status}"


def _linked_discord_id(session, profile_id: str | None) -> str | None:
    profile = get_profile(session, profile_id)
    return profile.discord_user_id if profile is not None else None


def resolve_recipient(session, *, event_type: str, task: TaskSummary, user_id: str | None) -> str | None:
    """Pick the Discord id to notify.

    Creation goes to the creator and assignment to the assignee when they are
    linked; otherwise the explicitly named *user_id* profile is used.
    """

    if event_type == EVENT_CREATED:
        recipient = _linked_discord_id(session, task.created_by)
        if recipient:
            return recipient
    elif event_type == EVENT_ASSIGNED:
        recipient = _linked_discord_id(session, task.assigned_to)
        if recipient:
            return recipient
    return _linked_discord_id(session, user_id)


def send_task_notification(
    payload: Mapping[str, Any], *, discord: DiscordClient, sessions: sessionmaker[Session]
) -> ServiceResult:
    """Notify the relevant Discord user about a task change."""

    task_id = payload.get("taskId")
    event_type = payload.get("eventType")
    user_id = payload.get("userId")
    channel_id = payload.get("channelId")

    if not task_id or not event_type:
        return ServiceResult(400, {"error": "Missing required fields: taskId, eventType"})

    log = structlog.get_logger().bind(task_id=task_id, event_type=event_type)
    with session_scope(sessions) as session:
        task = get_task(session, task_id)
        if task is None:
            log.info("notification_task_missing")
            return ServiceResult(404, {"error": "Task not found"})
        recipient = resolve_recipient(session, event_type=event_type, task=task, user_id=user_id)

    if not recipient:
        log.info("notification_skipped", reason="no_linked_recipient")
        return ServiceResult(200, {"message": "No Discord user to notify"})

    message = build_notification_message(event_type, task)
    try:
        target_channel = channel_id or discord.create_dm_channel(user_id=recipient)
    except DiscordApiError as exc:
        log.error("notification_dm_failed", status_code=exc.status_code)
        return ServiceResult(500, {"error": "Failed to create DM channel"})

    try:
        discord.post_message(channel_id=target_channel, content=message)
    except DiscordApiError as exc:
        log.error("notification_send_failed", status_code=exc.status_code)
        return ServiceResult(500, {"error": "Failed to send Discord message"})

    log.info("notification_sent", channel=target_channel)
    return ServiceResult(
        200,
        {"success": True, "message": "Discord notification sent", "channelId": target_channel},
    )

"""Link code issuing and unlinking for the main application."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any, Mapping

import structlog
from sqlalchemy.orm import Session, sessionmaker

from discord_task_bridge.db import session_scope
from discord_task_bridge.notifications import ServiceResult
from discord_task_bridge.repository import issue_link_code, unlink_profile


def issue_code(
    payload: Mapping[str, Any],
    *,
    sessions: sessionmaker[Session],
    ttl_minutes: int,
    now: datetime | None = None,
) -> ServiceResult:
    """Generate a fresh single-use link code for ``payload["profileId"]``.

    Any previous code for the profile is replaced.
    """

    profile_id = payload.get("profileId")
    if not profile_id:
        return ServiceResult(400, {"error": "Missing required field: profileId"})

    issued_at = now or datetime.now(UTC)
    log = structlog.get_logger().bind(profile_id=profile_id)
    try:
        with session_scope(sessions) as session:
            code = issue_link_code(session, profile_id, ttl_minutes=ttl_minutes, now=issued_at)
    except LookupError:
        log.info("link_code_profile_missing")
        return ServiceResult(404, {"error": "Profile not found"})

    expires_at = issued_at + timedelta(minutes=ttl_minutes)
    log.info("link_code_issued", expires_at=expires_at.isoformat())
    return ServiceResult(200, {"code": code, "expiresAt": expires_at.isoformat()})


def unlink(payload: Mapping[str, Any], *, sessions: sessionmaker[Session]) -> ServiceResult:
    profile_id = payload.get("profileId")
    if not profile_id:
        return ServiceResult(400, {"error": "Missing required field: profileId"})

    with session_scope(sessions) as session:
        found = unlink_profile(session, profile_id)

    if not found:
        return ServiceResult(404, {"error": "Profile not found"})
    structlog.get_logger().info("profile_unlinked", profile_id=profile_id)
    return ServiceResult(200, {"success": True, "message": "Discord account unlinked"})

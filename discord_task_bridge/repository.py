"""Data access helpers for profiles and tasks."""

from __future__ import annotations

import secrets
import string
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import List

from sqlalchemy import Select, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from discord_task_bridge.models import (
    STATUS_COMPLETED,
    STATUS_PENDING,
    IdentityConflictError,
    Profile,
    Task,
)

DEFAULT_TASK_LIMIT = 10
LINK_CODE_LENGTH = 8
_LINK_CODE_ALPHABET = string.ascii_uppercase + string.digits
UNTITLED_TASK = "Untitled"


@dataclass(frozen=True)
class TaskSummary:
    """Lightweight representation of a task row.

    ``content`` is already resolved from the ``content``/``title`` pair, so
    callers never need to know that older rows only carry a title.
    """

    id: str
    content: str
    status: str
    priority: str | None
    due_date: datetime | None
    assigned_to: str | None
    created_by: str | None
    completion_date: datetime | None
    created_at: datetime

    @property
    def is_completed(self) -> bool:
        return self.status == STATUS_COMPLETED


def summarise_task(row: Task) -> TaskSummary:
    return TaskSummary(
        id=row.id,
        content=row.content or row.title or UNTITLED_TASK,
        status=row.status or STATUS_PENDING,
        priority=row.priority,
        due_date=row.due_date,
        assigned_to=row.assigned_to,
        created_by=row.created_by,
        completion_date=row.completion_date,
        created_at=row.created_at,
    )


def _to_summaries(session: Session, statement: Select) -> List[TaskSummary]:
    return [summarise_task(row) for row in session.scalars(statement).all()]


def _normalise_dt(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def normalise_link_code(code: str | None) -> str:
    return (code or "").strip().upper()


def find_profile_by_discord_id(session: Session, discord_user_id: str | None) -> Profile | None:
    if not discord_user_id:
        return None
    statement = select(Profile).where(Profile.discord_user_id == discord_user_id)
    return session.scalars(statement).one_or_none()


def get_profile(session: Session, profile_id: str | None) -> Profile | None:
    if not profile_id:
        return None
    return session.get(Profile, profile_id)


def issue_link_code(
    session: Session,
    profile_id: str,
    *,
    ttl_minutes: int,
    now: datetime | None = None,
) -> str:
    """Store a fresh single-use link code for *profile_id* and return it."""

    issued_at = now or datetime.now(UTC)
    code = "".join(secrets.choice(_LINK_CODE_ALPHABET) for _ in range(LINK_CODE_LENGTH))
    result = session.execute(
        update(Profile)
        .where(Profile.id == profile_id)
        .values(
            discord_link_code=code,
            discord_link_code_expires_at=issued_at + timedelta(minutes=ttl_minutes),
        )
    )
    if result.rowcount != 1:
        raise LookupError(f"Profile {profile_id} does not exist")
    return code


def find_profile_by_link_code(
    session: Session,
    code: str | None,
    *,
    now: datetime | None = None,
) -> Profile | None:
    """Return the profile holding *code* (case-insensitive) if it is still valid.

    Unknown, already used and expired codes all yield ``None``.
    """

    normalised = normalise_link_code(code)
    if not normalised:
        return None

    statement = select(Profile).where(func.upper(Profile.discord_link_code) == normalised)
    matches = session.scalars(statement).all()
    if len(matches) != 1:
        return None

    profile = matches[0]
    expires_at = _normalise_dt(profile.discord_link_code_expires_at)
    current = _normalise_dt(now) or datetime.now(UTC)
    if expires_at is not None and expires_at <= current:
        return None
    return profile


def link_profile(session: Session, profile: Profile, *, discord_user_id: str, code: str) -> bool:
    """Attach *discord_user_id* to *profile* and consume *code*.

    The update only matches while the profile still holds *code* (compared
    case-insensitively), so a code can be redeemed once. Returns False when
    the code was consumed in the meantime.
    """

    statement = (
        update(Profile)
        .where(
            Profile.id == profile.id,
            func.upper(Profile.discord_link_code) == normalise_link_code(code),
        )
        .values(
            discord_user_id=discord_user_id,
            discord_link_code=None,
            discord_link_code_expires_at=None,
        )
    )
    try:
        result = session.execute(statement)
        session.flush()
    except IntegrityError as exc:
        raise IdentityConflictError(
            f"Discord user {discord_user_id} is already linked to another profile"
        ) from exc
    return result.rowcount == 1


def unlink_profile(session: Session, profile_id: str) -> bool:
    result = session.execute(
        update(Profile)
        .where(Profile.id == profile_id)
        .values(
            discord_user_id=None,
            discord_link_code=None,
            discord_link_code_expires_at=None,
            discord_role=None,
        )
    )
    return result.rowcount == 1


def set_discord_role(session: Session, profile_id: str, role_key: str) -> None:
    session.execute(update(Profile).where(Profile.id == profile_id).values(discord_role=role_key))


def create_task(
    session: Session,
    *,
    content: str,
    discord_user_id: str | None,
    created_by: str | None = None,
) -> TaskSummary:
    """Insert a pending task and return its summary."""

    task = Task(
        content=content,
        status=STATUS_PENDING,
        discord_user_id=discord_user_id,
        created_by=created_by,
        created_at=datetime.now(UTC),
    )
    session.add(task)
    session.flush()
    session.refresh(task)
    return summarise_task(task)


def get_task(session: Session, task_id: str | None) -> TaskSummary | None:
    if not task_id:
        return None
    row = session.get(Task, task_id)
    return summarise_task(row) if row is not None else None


def list_created_tasks(session: Session, profile_id: str, *, limit: int = DEFAULT_TASK_LIMIT) -> List[TaskSummary]:
    """Return the newest tasks created by *profile_id*."""

    statement = (
        select(Task)
        .where(Task.created_by == profile_id)
        .order_by(Task.created_at.desc())
        .limit(limit)
    )
    return _to_summaries(session, statement)


def list_assigned_tasks(session: Session, profile_id: str, *, limit: int = DEFAULT_TASK_LIMIT) -> List[TaskSummary]:
    """Return the newest tasks assigned to *profile_id*."""

    statement = (
        select(Task)
        .where(Task.assigned_to == profile_id)
        .order_by(Task.created_at.desc())
        .limit(limit)
    )
    return _to_summaries(session, statement)


def complete_owned_task(
    session: Session,
    *,
    task_id: str,
    owner_id: str,
    now: datetime | None = None,
) -> TaskSummary | None:
    """Mark *task_id* completed if and only if *owner_id* created it.

    Ownership is part of the UPDATE predicate. ``None`` means nothing matched,
    whether the task is missing or belongs to someone else.
    """

    completed_at = now or datetime.now(UTC)
    statement = (
        update(Task)
        .where(Task.id == task_id, Task.created_by == owner_id)
        .values(status=STATUS_COMPLETED, completion_date=completed_at)
    )
    result = session.execute(statement)
    if result.rowcount != 1:
        return None

    row = session.scalars(
        select(Task).where(Task.id == task_id).execution_options(populate_existing=True)
    ).one()
    return summarise_task(row)

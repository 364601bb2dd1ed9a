"""Per-process dependencies handed to interaction handlers."""

from __future__ import annotations

from contextlib import AbstractContextManager
from dataclasses import dataclass
from functools import wraps
from typing import Any, Callable, Dict

import structlog
from sqlalchemy.orm import Session, sessionmaker

from discord_task_bridge.config import AppSettings
from discord_task_bridge.db import session_scope
from discord_task_bridge.discord_client import DiscordClient
from discord_task_bridge.interactions.models import Interaction
from discord_task_bridge.interactions.responses import error_reply

Reply = Dict[str, Any]


@dataclass(frozen=True)
class HandlerContext:
    """Configuration and clients built once at startup and shared by handlers."""

    settings: AppSettings
    discord: DiscordClient
    sessions: sessionmaker[Session]

    def session_scope(self) -> AbstractContextManager[Session]:
        return session_scope(self.sessions)


@dataclass(frozen=True)
class LinkedProfile:
    """The application profile resolved for the acting Discord user."""

    id: str
    full_name: str | None


def handler_boundary(name: str, *, ephemeral: bool = False) -> Callable[[Callable[..., Reply]], Callable[..., Reply]]:
    """Turn any exception escaping a handler into a logged error reply."""

    def decorator(func: Callable[..., Reply]) -> Callable[..., Reply]:
        @wraps(func)
        def wrapper(interaction: Interaction, context: HandlerContext, *args: Any) -> Reply:
            try:
                return func(interaction, context, *args)
            except Exception as exc:
                structlog.get_logger().exception(
                    "handler_failed",
                    handler=name,
                    discord_user_id=interaction.user_id,
                    error_type=type(exc).__name__,
                )
                return error_reply(str(exc), ephemeral=ephemeral)

        return wrapper

    return decorator

"""Discord task bridge package initialisation."""

from .config import AppSettings, get_settings  # noqa: F401
from .db import Base, get_engine, get_session_factory, session_scope  # noqa: F401
from .logging_config import configure_logging  # noqa: F401
from .models import Profile, Task  # noqa: F401

__all__ = [
    "AppSettings",
    "get_settings",
    "Base",
    "get_engine",
    "get_session_factory",
    "session_scope",
    "Profile",
    "Task",
    "configure_logging",
]

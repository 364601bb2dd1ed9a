"""Utility script to reset the local task database.

Usage:
    python scripts/reset_local_db.py

Environment:
    Ensure DATABASE_URL (and the Discord credentials) are available in the
    current shell before running this script.
"""

from __future__ import annotations

from pathlib import Path
import sys

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from discord_task_bridge.db import get_engine  # noqa: E402
from discord_task_bridge.models import Base  # noqa: E402


def reset_database() -> None:
    engine = get_engine()
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    print("Local database reset (profiles, tasks).")


if __name__ == "__main__":
    reset_database()

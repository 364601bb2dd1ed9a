"""Register the bot's slash commands with Discord.

Usage:
    python scripts/register_commands.py

Environment:
    DISCORD_BOT_TOKEN and DISCORD_APPLICATION_ID must be set. Commands can
    take up to an hour to appear in clients.
"""

from __future__ import annotations

import os
from pathlib import Path
import sys
from typing import Any, Dict, List

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from discord_task_bridge.config import DEFAULT_API_BASE_URL  # noqa: E402
from discord_task_bridge.discord_client import DiscordApiError, DiscordClient  # noqa: E402

OPTION_STRING = 3
OPTION_CHANNEL = 7

COMMANDS: List[Dict[str, Any]] = [
    {
        "name": "addtask",
        "description": "Add a new task to the task manager",
        "options": [
            {
                "name": "content",
                "description": "The content/description of the task",
                "type": OPTION_STRING,
                "required": True,
            }
        ],
    },
    {"name": "listtasks", "description": "List your tasks (tasks you created)"},
    {"name": "mytasks", "description": "Show tasks assigned to you"},
    {
        "name": "completetask",
        "description": "Mark a task as complete",
        "options": [
            {
                "name": "id",
                "description": "The ID of the task to complete (use /listtasks to see IDs)",
                "type": OPTION_STRING,
                "required": True,
            }
        ],
    },
    {
        "name": "linkaccount",
        "description": "Link your Discord account to the app",
        "options": [
            {
                "name": "code",
                "description": "Linking code from the app (Settings → Discord Integration)",
                "type": OPTION_STRING,
                "required": True,
            }
        ],
    },
    {
        "name": "setupwelcome",
        "description": "Set up the welcome message with role selection (admin only)",
        "options": [
            {
                "name": "channel",
                "description": "The channel to send the role selection message to (e.g., #roles)",
                "type": OPTION_CHANNEL,
                "required": True,
            }
        ],
    },
]


def register_commands(client: DiscordClient, application_id: str) -> int:
    """Register every command and return the number of failures."""

    failures = 0
    for command in COMMANDS:
        try:
            data = client.register_command(application_id=application_id, command=command)
        except DiscordApiError as exc:
            print(f"Failed to register /{command['name']}: {exc}")
            failures += 1
            continue
        print(f"Registered /{command['name']} (ID: {data.get('id')})")
    return failures


def main() -> int:
    token = os.environ.get("DISCORD_BOT_TOKEN")
    application_id = os.environ.get("DISCORD_APPLICATION_ID")
    if not token or not application_id:
        print("Missing DISCORD_BOT_TOKEN or DISCORD_APPLICATION_ID.")
        return 1

    client = DiscordClient(
        token=token,
        base_url=os.environ.get("DISCORD_API_BASE_URL", DEFAULT_API_BASE_URL).rstrip("/"),
    )
    try:
        failures = register_commands(client, application_id)
    finally:
        client.close()

    print(f"Registered {len(COMMANDS) - failures} of {len(COMMANDS)} commands.")
    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())

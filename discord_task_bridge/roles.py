"""Team role catalogue offered through the role selection buttons."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List

ROLE_CUSTOM_ID_PREFIX = "role_"
BUTTONS_PER_ROW = 5

ROLE_SELECTION_TEXT = (
    "**Select Your Team Role**\n\nClick a button below to assign yourself a team role:"
)


@dataclass(frozen=True)
class TeamRole:
    key: str
    label: str
    emoji: str
    env_var: str
    default_id: str


TEAM_ROLES: tuple[TeamRole, ...] = (
    TeamRole("role_board", "Board", "👑", "DISCORD_ROLE_BOARD", "1443303554503676067"),
    TeamRole("role_technical", "Technical", "⚙️", "DISCORD_ROLE_TECHNICAL", "1443303903226761337"),
    TeamRole("role_electrical", "Electrical", "⚡", "DISCORD_ROLE_ELECTRICAL", "1443304060886188204"),
    TeamRole("role_business", "Business", "💼", "DISCORD_ROLE_BUSINESS", "1443304154536607805"),
    TeamRole("role_ses", "SES", "📊", "DISCORD_ROLE_SES", "1443304364818169866"),
    TeamRole("role_iad", "IAD", "🎯", "DISCORD_ROLE_IAD", "1443304498637574335"),
    TeamRole("role_ases", "ASES", "🚀", "DISCORD_ROLE_ASES", "1443304529188880598"),
    TeamRole("role_cost_event", "Cost Event", "💰", "DISCORD_ROLE_COST_EVENT", "1443304586176630794"),
    TeamRole("role_design_event", "Design Event", "✏️", "DISCORD_ROLE_DESIGN_EVENT", "1443304758667640903"),
    TeamRole("role_bpp", "BPP", "📋", "DISCORD_ROLE_BPP", "1443304815441608734"),
)


def _role_button(role: TeamRole) -> Dict[str, Any]:
    return {
        "type": 2,  # button
        "style": 1,  # primary
        "label": role.label,
        "emoji": {"name": role.emoji},
        "custom_id": role.key,
    }


def build_role_selection_components(roles: tuple[TeamRole, ...] = TEAM_ROLES) -> List[Dict[str, Any]]:
    """Lay the role buttons out in action rows of at most five buttons."""

    rows: List[Dict[str, Any]] = []
    for start in range(0, len(roles), BUTTONS_PER_ROW):
        chunk = roles[start : start + BUTTONS_PER_ROW]
        rows.append({"type": 1, "components": [_role_button(role) for role in chunk]})
    return rows


def build_role_selection_message() -> Dict[str, Any]:
    return {
        "content": ROLE_SELECTION_TEXT,
        "components": build_role_selection_components(),
    }

"""Pydantic-based configuration helpers for the Discord task bridge."""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Any, Dict, Iterable, List

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from discord_task_bridge.roles import TEAM_ROLES

DEFAULT_API_BASE_URL = "https://discord.com/api/v10"


class AppSettings(BaseModel):
    """Settings required to verify interactions and talk to Discord and the database."""

    public_key: str = Field(..., alias="DISCORD_PUBLIC_KEY", repr=False)
    bot_token: str = Field(..., alias="DISCORD_BOT_TOKEN", repr=False)
    database_url: str = Field(..., alias="DATABASE_URL", repr=False)
    service_api_key: str | None = Field(None, alias="SERVICE_API_KEY", repr=False)
    application_id: str | None = Field(None, alias="DISCORD_APPLICATION_ID")
    api_base_url: str = Field(DEFAULT_API_BASE_URL, alias="DISCORD_API_BASE_URL")
    http_timeout: float = Field(10.0, alias="DISCORD_HTTP_TIMEOUT")
    link_code_ttl_minutes: int = Field(15, alias="LINK_CODE_TTL_MINUTES")
    role_ids: Dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _collect_role_ids(cls, values: Any) -> Any:
        """Resolve each team role's id from its env override, else the built-in id.

        An override set to an empty string switches that role off.
        """

        if not hasattr(values, "get"):
            return values
        data = dict(values)
        if "role_ids" not in data:
            data["role_ids"] = {
                role.key: str(data.get(role.env_var, role.default_id)).strip()
                for role in TEAM_ROLES
            }
        return data

    @field_validator("public_key", "bot_token")
    @classmethod
    def _strip(cls, value: str) -> str:
        return value.strip()

    @field_validator("api_base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("http_timeout", "link_code_ttl_minutes")
    @classmethod
    def _ensure_positive(cls, value):
        if value <= 0:
            raise ValueError("Timeouts and TTLs must be greater than zero")
        return value

    def role_mapping(self) -> Dict[str, str]:
        """Return ``{button custom id: Discord role id}`` for configured roles."""

        return {key: role_id for key, role_id in self.role_ids.items() if role_id}


def _format_missing(fields: Iterable[str]) -> str:
    """Return a human-friendly comma-separated list of missing env vars."""

    unique: List[str] = []
    for field in fields:
        if field not in unique:
            unique.append(field)
    return ", ".join(unique)


@lru_cache()
def get_settings() -> AppSettings:
    """Fetch and cache settings from environment variables."""

    try:
        return AppSettings.model_validate(dict(os.environ))
    except ValidationError as exc:
        missing = [str(error["loc"][0]) for error in exc.errors() if error["type"] == "missing"]
        if not missing:
            raise RuntimeError(f"Invalid configuration: {exc}") from exc
        message = (
            "Missing required environment variables: "
            f"{_format_missing(missing)}"
        )
        raise RuntimeError(message) from exc

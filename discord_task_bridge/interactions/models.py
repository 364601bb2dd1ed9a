"""Pydantic models describing inbound Discord interactions."""

from __future__ import annotations

from typing import Any, List

from pydantic import BaseModel, ConfigDict, Field, field_validator


class DiscordUser(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    username: str | None = None
    global_name: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def coerce_snowflake(cls, value):
        if isinstance(value, int):
            return str(value)
        return value


class GuildMember(BaseModel):
    model_config = ConfigDict(extra="ignore")

    user: DiscordUser | None = None
    roles: List[str] = Field(default_factory=list)


class CommandOption(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    type: int | None = None
    value: Any = None


class InteractionData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str | None = None
    custom_id: str | None = None
    component_type: int | None = None
    options: List[CommandOption] = Field(default_factory=list)


class Interaction(BaseModel):
    """A single interaction payload. Only lives for the request it arrived in."""

    model_config = ConfigDict(extra="ignore")

    type: int
    id: str | None = None
    token: str | None = None
    application_id: str | None = None
    guild_id: str | None = None
    channel_id: str | None = None
    data: InteractionData | None = None
    member: GuildMember | None = None
    user: DiscordUser | None = None

    @property
    def invoking_user(self) -> DiscordUser | None:
        """The acting user: ``member.user`` in guilds, ``user`` in DMs."""

        if self.member is not None and self.member.user is not None:
            return self.member.user
        return self.user

    @property
    def user_id(self) -> str | None:
        user = self.invoking_user
        return user.id if user is not None else None

    @property
    def username(self) -> str | None:
        user = self.invoking_user
        if user is None:
            return None
        return user.global_name or user.username

    @property
    def command_name(self) -> str | None:
        return self.data.name if self.data is not None else None

    @property
    def custom_id(self) -> str | None:
        return self.data.custom_id if self.data is not None else None

    def option(self, name: str) -> str | None:
        """Return the stripped string value of option *name*, or None when blank."""

        if self.data is None:
            return None
        for option in self.data.options:
            if option.name != name or option.value is None:
                continue
            value = str(option.value).strip()
            return value or None
        return None

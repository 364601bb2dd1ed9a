"""Thin wrapper around the Discord REST API used by the bot."""

from __future__ import annotations

from typing import Any, Mapping, Sequence

import httpx

from discord_task_bridge.config import DEFAULT_API_BASE_URL, AppSettings


class DiscordApiError(Exception):
    """Raised when Discord answers with a non-2xx status or cannot be reached."""

    def __init__(self, message: str, *, status_code: int | None = None, body: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class DiscordClient:
    """Encapsulate bot-token authorised Discord calls for easier testing."""

    def __init__(
        self,
        *,
        token: str | None = None,
        base_url: str = DEFAULT_API_BASE_URL,
        timeout: float = 10.0,
        client: httpx.Client | None = None,
    ) -> None:
        if client is None and token is None:
            raise ValueError("Either an instantiated client or a bot token must be provided.")

        self._client = client or httpx.Client(
            base_url=base_url,
            timeout=timeout,
            headers={"Authorization": f"Bot {token}"},
        )

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "DiscordClient":
        return cls(
            token=settings.bot_token,
            base_url=settings.api_base_url,
            timeout=settings.http_timeout,
        )

    @property
    def client(self) -> httpx.Client:
        """Expose the underlying httpx client for advanced use cases."""

        return self._client

    def close(self) -> None:
        self._client.close()

    def _request(self, method: str, path: str, *, json: Any = None) -> httpx.Response:
        try:
            response = self._client.request(method, path, json=json)
        except httpx.HTTPError as exc:
            raise DiscordApiError(f"Discord request failed: {exc}") from exc

        if not response.is_success:
            raise DiscordApiError(
                f"Discord API error {response.status_code}: {response.text}",
                status_code=response.status_code,
                body=response.text,
            )
        return response

    def post_message(
        self,
        *,
        channel_id: str,
        content: str,
        components: Sequence[Mapping[str, Any]] | None = None,
    ) -> Mapping[str, Any]:
        """Post a message, optionally with components, to a channel."""

        payload: dict[str, Any] = {"content": content}
        if components:
            payload["components"] = list(components)
        return self._request("POST", f"/channels/{channel_id}/messages", json=payload).json()

    def add_member_role(self, *, guild_id: str, user_id: str, role_id: str) -> None:
        """Grant *role_id* to a guild member."""

        self._request("PUT", f"/guilds/{guild_id}/members/{user_id}/roles/{role_id}")

    def create_dm_channel(self, *, user_id: str) -> str:
        """Open (or reuse) a DM channel with *user_id* and return its id."""

        data = self._request("POST", "/users/@me/channels", json={"recipient_id": user_id}).json()
        return data["id"]

    def get_guild(self, *, guild_id: str) -> Mapping[str, Any]:
        return self._request("GET", f"/guilds/{guild_id}").json()

    def list_guild_channels(self, *, guild_id: str) -> list[Mapping[str, Any]]:
        return self._request("GET", f"/guilds/{guild_id}/channels").json()

    def register_command(self, *, application_id: str, command: Mapping[str, Any]) -> Mapping[str, Any]:
        """Create or overwrite a global slash command."""

        return self._request("POST", f"/applications/{application_id}/commands", json=dict(command)).json()

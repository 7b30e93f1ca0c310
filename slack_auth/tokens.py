"""Token response data structure.

A TokenResponse is created by the token exchange, rendered into the success
page, and then handed to the registered auth handler. It is never stored.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


@dataclass
class TokenResponse:
    """Provider reply to a successful authorization code exchange.

    Attributes:
        access_token: The access token string
        scope: Comma-separated list of granted scopes
        user_id: ID of the user who authorized the app
        team_id: ID of the workspace the app was installed into
        team_name: Name of the workspace
        incoming_webhook: Webhook details, when the incoming-webhook scope was granted
        bot: Bot user ID and token, when the bot scope was granted
        raw: The complete provider response body
        received_at: When the response was received (UTC datetime)
    """

    access_token: str
    scope: str | None = None
    user_id: str | None = None
    team_id: str | None = None
    team_name: str | None = None
    incoming_webhook: dict[str, Any] | None = None
    bot: dict[str, Any] | None = None
    raw: dict[str, Any] = field(default_factory=dict)
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def bot_user_id(self) -> str | None:
        return (self.bot or {}).get("bot_user_id")

    @property
    def bot_access_token(self) -> str | None:
        return (self.bot or {}).get("bot_access_token")

    @property
    def scopes(self) -> list[str]:
        """Granted scopes as a list."""
        if not self.scope:
            return []
        return [s.strip() for s in self.scope.split(",") if s.strip()]

    def to_dict(self) -> dict[str, Any]:
        """Serialize the response for display.

        Returns:
            Dictionary representation suitable for JSON serialization
        """
        data: dict[str, Any] = {
            "access_token": self.access_token,
            "received_at": self.received_at.isoformat(),
        }

        for key in ("scope", "user_id", "team_id", "team_name", "incoming_webhook", "bot"):
            value = getattr(self, key)
            if value:
                data[key] = value

        return data

    @classmethod
    def from_provider_response(cls, response: dict[str, Any]) -> "TokenResponse":
        """Create a TokenResponse from the token endpoint JSON body.

        Missing fields are tolerated so that partial error bodies can still
        be rendered into the failure page.

        Args:
            response: JSON response from the token endpoint

        Returns:
            TokenResponse instance
        """
        return cls(
            access_token=response.get("access_token", ""),
            scope=response.get("scope"),
            user_id=response.get("user_id"),
            team_id=response.get("team_id"),
            team_name=response.get("team_name"),
            incoming_webhook=response.get("incoming_webhook"),
            bot=response.get("bot"),
            raw=dict(response),
        )

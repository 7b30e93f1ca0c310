"""Authorization code exchange.

The gateway only depends on the TokenExchanger protocol, so the real
provider call can be swapped for a deterministic double in tests.
"""

import logging
from typing import Any, Protocol

import httpx

from .config import SLACK_TOKEN_URL
from .tokens import TokenResponse

DEFAULT_TIMEOUT = 30.0  # seconds


class ExchangeError(Exception):
    """The authorization code could not be exchanged for a token.

    Attributes:
        response: Whatever the provider returned before failing (may be None)
    """

    def __init__(self, message: str, response: TokenResponse | None = None) -> None:
        super().__init__(message)
        self.response = response


class TokenExchanger(Protocol):
    """Anything that can turn an authorization code into a token response."""

    async def exchange(
        self,
        client_id: str,
        client_secret: str,
        code: str,
        debug: bool,
    ) -> TokenResponse:
        """Exchange an authorization code.

        Raises:
            ExchangeError: If the provider rejects the code or cannot be reached
        """
        ...


class SlackTokenExchanger:
    """Exchanges codes against Slack's oauth.access endpoint."""

    def __init__(
        self,
        token_url: str = SLACK_TOKEN_URL,
        redirect_uri: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        logger: logging.Logger | None = None,
    ) -> None:
        self.token_url = token_url
        self.logger = logger or logging.getLogger("slack_auth.exchange")
        self.redirect_uri = redirect_uri
        self.timeout = timeout
        self._http_client = http_client

    async def exchange(
        self,
        client_id: str,
        client_secret: str,
        code: str,
        debug: bool,
    ) -> TokenResponse:
        """Exchange an authorization code for an access token.

        Args:
            client_id: Slack app client ID
            client_secret: Slack app client secret
            code: Authorization code from the redirect
            debug: Log the request and its outcome

        Returns:
            The token response

        Raises:
            ExchangeError: If the exchange fails
        """
        http = self._http_client or httpx.AsyncClient(timeout=self.timeout)
        should_close = self._http_client is None

        request_data: dict[str, str] = {
            "client_id": client_id,
            "client_secret": client_secret,
            "code": code,
        }
        if self.redirect_uri:
            request_data["redirect_uri"] = self.redirect_uri

        if debug:
            self.logger.debug(f"Exchanging authorization code at {self.token_url} for client {client_id}")

        try:
            response = await http.post(
                self.token_url,
                data=request_data,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
        except httpx.RequestError as e:
            raise ExchangeError(f"Network error during token exchange: {e}") from e
        finally:
            if should_close:
                await http.aclose()

        if response.status_code != 200:
            raise ExchangeError(f"Token exchange failed (HTTP {response.status_code})")

        try:
            data: Any = response.json()
        except ValueError as e:
            # Don't include the raw body - it might contain tokens
            raise ExchangeError("Token exchange returned an invalid JSON body") from e

        if not isinstance(data, dict):
            raise ExchangeError("Token exchange returned an unexpected body")

        # Slack reports failures as HTTP 200 with "ok": false
        if data.get("ok", True) is False or data.get("error"):
            partial = TokenResponse.from_provider_response(data)
            raise ExchangeError(
                f"Token exchange rejected: {data.get('error', 'unknown_error')}",
                response=partial,
            )

        if not data.get("access_token"):
            raise ExchangeError("Token exchange response missing access_token")

        token = TokenResponse.from_provider_response(data)
        if debug:
            self.logger.debug(
                f"Token exchange succeeded for team {token.team_name or token.team_id} "
                f"(scope: {token.scope})"
            )
        return token

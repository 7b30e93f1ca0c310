"""Configuration for the Slack authorization gateway."""

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from dotenv import load_dotenv

# Slack OAuth endpoints
SLACK_AUTHORIZE_URL = "https://slack.com/oauth/authorize"
SLACK_TOKEN_URL = "https://slack.com/api/oauth.access"

DEFAULT_CALLBACK_PATH = "/auth"
DEFAULT_BUTTON_PATH = "/"

# Slack OAuth scopes
BOT = "bot"
COMMANDS = "commands"
INCOMING_WEBHOOK = "incoming-webhook"
IDENTIFY = "identify"
CHANNELS_HISTORY = "channels:history"
CHANNELS_READ = "channels:read"
CHANNELS_WRITE = "channels:write"
CHAT_WRITE_BOT = "chat:write:bot"
CHAT_WRITE_USER = "chat:write:user"
EMOJI_READ = "emoji:read"
FILES_READ = "files:read"
FILES_WRITE_USER = "files:write:user"
GROUPS_HISTORY = "groups:history"
GROUPS_READ = "groups:read"
GROUPS_WRITE = "groups:write"
IM_HISTORY = "im:history"
IM_READ = "im:read"
IM_WRITE = "im:write"
MPIM_HISTORY = "mpim:history"
MPIM_READ = "mpim:read"
MPIM_WRITE = "mpim:write"
PINS_READ = "pins:read"
PINS_WRITE = "pins:write"
REACTIONS_READ = "reactions:read"
REACTIONS_WRITE = "reactions:write"
SEARCH_READ = "search:read"
STARS_READ = "stars:read"
STARS_WRITE = "stars:write"
TEAM_READ = "team:read"
USERGROUPS_READ = "usergroups:read"
USERGROUPS_WRITE = "usergroups:write"
USERS_READ = "users:read"
USERS_WRITE = "users:write"

# Environment variable prefix used by Options.from_env
ENV_PREFIX = "SLACK_AUTH_"

ENV_SEARCH_PATHS = [Path(".env")]


class ErrorKind(Enum):
    """Category of a configuration failure."""

    INVALID_CONFIG = "invalid_config"
    TEMPLATE_LOAD = "template_load"


class ConfigError(Exception):
    """The service could not be configured."""

    kind: ErrorKind = ErrorKind.INVALID_CONFIG


class InvalidConfigError(ConfigError):
    """A required configuration field is missing or invalid."""

    kind = ErrorKind.INVALID_CONFIG


@dataclass(frozen=True)
class Options:
    """All the configurable parameters of the authorization gateway.

    Attributes:
        addr: Listen address as "host:port" (":8080" listens on all interfaces)
        client_id: Slack app client ID
        client_secret: Slack app client secret
        success_template: Path to the template shown after a successful exchange
        error_template: Path to the template shown when the exchange fails
        button_template: Optional path to an "Add to Slack" button page
        scopes: OAuth scopes requested by the button page
        cert_file: TLS certificate file (TLS is enabled only with key_file)
        key_file: TLS private key file
        debug: Log token exchanges and debug output
        callback_path: URL path that receives the OAuth redirect
        button_path: URL path serving the button page
        token_url: Provider endpoint used to exchange the authorization code
        redirect_uri: Redirect URI forwarded to the exchange, if the app requires it
    """

    addr: str = ""
    client_id: str = ""
    client_secret: str = ""
    success_template: str = ""
    error_template: str = ""
    button_template: str | None = None
    scopes: tuple[str, ...] = ()
    cert_file: str | None = None
    key_file: str | None = None
    debug: bool = False
    callback_path: str = DEFAULT_CALLBACK_PATH
    button_path: str = DEFAULT_BUTTON_PATH
    token_url: str = SLACK_TOKEN_URL
    redirect_uri: str | None = None

    @property
    def tls_enabled(self) -> bool:
        """Whether both halves of the TLS key pair are configured."""
        return bool(self.cert_file) and bool(self.key_file)

    def validate_required(self) -> None:
        """Check the fields that must never be empty.

        Raises:
            InvalidConfigError: If addr, client_id or client_secret is empty
        """
        if not self.addr or not self.client_id or not self.client_secret:
            raise InvalidConfigError(
                "addr, client id and client secret can not be empty"
            )

    @classmethod
    def from_env(cls, env_file: Path | None = None) -> "Options":
        """Build options from SLACK_AUTH_* environment variables.

        A .env file is loaded first (explicit path, or ./.env when present).
        Missing variables are left empty; validation is done when the
        service is created.

        Args:
            env_file: Explicit path to a .env file (optional)

        Returns:
            Options populated from the environment
        """
        found = find_env_file(env_file)
        if found:
            load_dotenv(found)

        def get(name: str, default: str = "") -> str:
            return os.environ.get(f"{ENV_PREFIX}{name}") or default

        return cls(
            addr=get("ADDR"),
            client_id=get("CLIENT_ID"),
            client_secret=get("CLIENT_SECRET"),
            success_template=get("SUCCESS_TEMPLATE"),
            error_template=get("ERROR_TEMPLATE"),
            button_template=get("BUTTON_TEMPLATE") or None,
            scopes=parse_scopes(get("SCOPES")),
            cert_file=get("CERT_FILE") or None,
            key_file=get("KEY_FILE") or None,
            debug=_parse_bool(get("DEBUG")),
            callback_path=get("CALLBACK_PATH", DEFAULT_CALLBACK_PATH),
            button_path=get("BUTTON_PATH", DEFAULT_BUTTON_PATH),
            token_url=get("TOKEN_URL", SLACK_TOKEN_URL),
            redirect_uri=get("REDIRECT_URI") or None,
        )


def parse_scopes(value: str) -> tuple[str, ...]:
    """Split a comma or space separated scope list, dropping blanks."""
    return tuple(s for s in value.replace(",", " ").split() if s)


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def find_env_file(explicit_path: Path | None = None) -> Path | None:
    """Find the .env file to load, if any."""
    if explicit_path:
        if explicit_path.exists():
            return explicit_path
        return None

    for path in ENV_SEARCH_PATHS:
        if path.exists():
            return path
    return None

"""Output formatters for human-readable and JSON output."""

import json
import sys
from typing import Any

import click

from .tokens import TokenResponse


def format_json(data: Any, success: bool = True) -> str:
    """Format data as JSON output."""
    if success:
        output = {"success": True, "data": data}
    else:
        output = data  # Error dict already has success: false
    return json.dumps(output, default=str)


def format_error_json(
    error: Exception,
    error_type: str | None = None,
    help_text: str | None = None,
) -> str:
    """Format an error as JSON with helpful information."""
    return json.dumps(
        {
            "success": False,
            "error": {
                "type": error_type or type(error).__name__,
                "message": str(error),
                "help": help_text or "",
            },
        },
    )


def mask_token(token: str) -> str:
    """Hide all but the last four characters of a token."""
    if len(token) <= 4:
        return "*" * len(token)
    return "*" * (len(token) - 4) + token[-4:]


def format_auth_event(token: TokenResponse, show_token: bool = False) -> dict[str, Any]:
    """Build the printable form of an auth event."""
    data = token.to_dict()
    if not show_token:
        data["access_token"] = mask_token(token.access_token)
        if isinstance(data.get("bot"), dict) and data["bot"].get("bot_access_token"):
            data["bot"] = {
                **data["bot"],
                "bot_access_token": mask_token(data["bot"]["bot_access_token"]),
            }
    return data


class OutputHandler:
    """Handles output formatting based on mode (JSON or human)."""

    def __init__(self, json_mode: bool = False, show_token: bool = False):
        self.json_mode = json_mode
        self.show_token = show_token

    def success(self, data: Any, human_message: str | None = None) -> None:
        """Output success response."""
        if self.json_mode:
            click.echo(format_json(data))
        elif human_message:
            click.echo(human_message)
        else:
            click.echo(json.dumps(data, indent=2, default=str))

    def auth_event(self, token: TokenResponse) -> None:
        """Output one successful authorization."""
        data = format_auth_event(token, self.show_token)
        if self.json_mode:
            # One JSON document per line so events can be piped
            click.echo(format_json(data))
            return

        team = token.team_name or token.team_id or "unknown team"
        click.secho("Authorized ", fg="green", nl=False)
        click.secho(team, bold=True, nl=False)
        if token.user_id:
            click.echo(f" by {token.user_id}", nl=False)
        click.echo()
        click.echo(f"  Access token: {data['access_token']}")
        if token.scope:
            click.echo(f"  Scope: {token.scope}")
        if token.bot_user_id:
            click.echo(f"  Bot user: {token.bot_user_id}")

    def error(
        self,
        error: Exception,
        error_type: str | None = None,
        help_text: str | None = None,
    ) -> None:
        """Output error response and exit."""
        if self.json_mode:
            click.echo(format_error_json(error, error_type, help_text))
        else:
            click.secho(f"Error: {error}", fg="red", err=True)
            if help_text:
                click.echo(f"\n{help_text}", err=True)
        sys.exit(1)

"""CLI entry point for the Slack authorization gateway."""

from __future__ import annotations

import dataclasses
import logging
from pathlib import Path
from typing import Any, NoReturn

import click

from . import __version__
from .config import ConfigError, ErrorKind, Options, parse_scopes
from .output import OutputHandler
from .server import ListenError
from .service import Service, new_service
from .tokens import TokenResponse

# Logger for CLI
logger = logging.getLogger("slack_auth.cli")

CONFIG_HELP = (
    "Set the required options on the command line or through environment\n"
    "variables (SLACK_AUTH_ADDR, SLACK_AUTH_CLIENT_ID, SLACK_AUTH_CLIENT_SECRET,\n"
    "SLACK_AUTH_SUCCESS_TEMPLATE, SLACK_AUTH_ERROR_TEMPLATE), optionally in a .env file."
)


def gateway_options(f: Any) -> Any:
    """Options shared by the commands that build a service."""
    decorators = [
        click.option("--addr", help="Listen address, e.g. ':8080' or '127.0.0.1:8080'"),
        click.option("--client-id", help="Slack app client ID"),
        click.option("--client-secret", help="Slack app client secret"),
        click.option("--success-template", type=click.Path(), help="Template shown after a successful authorization"),
        click.option("--error-template", type=click.Path(), help="Template shown when authorization fails"),
        click.option("--button-template", type=click.Path(), help="Optional 'Add to Slack' button page"),
        click.option("--scope", "scopes", multiple=True, help="OAuth scope for the button page (repeatable)"),
        click.option("--cert-file", type=click.Path(), help="TLS certificate file"),
        click.option("--key-file", type=click.Path(), help="TLS private key file"),
        click.option("--callback-path", help="Path receiving the OAuth redirect (default /auth)"),
        click.option("--debug", is_flag=True, help="Log token exchanges"),
    ]
    for decorator in reversed(decorators):
        f = decorator(f)
    return f


@click.group()
@click.option("--json", "json_mode", is_flag=True, help="Output in JSON format")
@click.option("--env-file", "env_path", type=click.Path(exists=True), help="Path to .env file")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.version_option(version=__version__)
@click.pass_context
def main(ctx: click.Context, json_mode: bool, env_path: str | None, verbose: bool) -> None:
    """Slack Auth - Serve the OAuth callback of an 'Add to Slack' integration."""
    ctx.ensure_object(dict)
    ctx.obj["json_mode"] = json_mode
    ctx.obj["env_path"] = Path(env_path) if env_path else None
    ctx.obj["output"] = OutputHandler(json_mode)

    # Configure logging based on verbosity
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        )
    else:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s [%(levelname)s] %(message)s",
        )


def build_options(ctx: click.Context, overrides: dict[str, Any]) -> Options:
    """Merge command line values over the environment configuration."""
    options = Options.from_env(ctx.obj["env_path"])

    changes: dict[str, Any] = {}
    for key, value in overrides.items():
        if value is None or value is False:
            continue
        if key == "scopes":
            if not value:
                continue
            value = parse_scopes(",".join(value))
        changes[key] = value

    return dataclasses.replace(options, **changes)


def get_service(ctx: click.Context, overrides: dict[str, Any]) -> Service | NoReturn:
    """Build the service from context, handling configuration errors."""
    output: OutputHandler = ctx.obj["output"]
    options = build_options(ctx, overrides)
    try:
        return new_service(options)
    except ConfigError as e:
        help_text = CONFIG_HELP
        if e.kind is ErrorKind.TEMPLATE_LOAD:
            help_text = "Check that the template file exists and is a valid Jinja2 template."
        output.error(e, error_type=type(e).__name__, help_text=help_text)
        raise SystemExit(1)  # Never reached due to sys.exit in output.error


@main.command()
@gateway_options
@click.option("--show-token", is_flag=True, help="Print access tokens unmasked")
@click.pass_context
def serve(ctx: click.Context, show_token: bool, **overrides: Any) -> None:
    """Run the callback server and print every successful authorization."""
    output: OutputHandler = ctx.obj["output"]
    output.show_token = show_token
    service = get_service(ctx, overrides)

    def print_auth(token: TokenResponse) -> None:
        output.auth_event(token)

    service.on_auth(print_auth)

    try:
        service.run()
    except ListenError as e:
        output.error(e, help_text="Check that the address is valid and not already in use.")
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")


@main.command()
@gateway_options
@click.pass_context
def check(ctx: click.Context, **overrides: Any) -> None:
    """Validate the configuration and templates without starting the server."""
    output: OutputHandler = ctx.obj["output"]
    service = get_service(ctx, overrides)
    options = service.options

    data = {
        "addr": options.addr,
        "callback_path": options.callback_path,
        "tls": options.tls_enabled,
        "button_page": bool(options.button_template),
        "scopes": list(options.scopes),
    }
    output.success(data, human_message=f"Configuration OK (listening on {options.addr}{options.callback_path})")


if __name__ == "__main__":
    main()

"""Slack Auth - An embeddable OAuth callback gateway for "Add to Slack" integrations.

Quick Start:
    from slack_auth import Options, new_service

    service = new_service(Options(
        addr=":8080",
        client_id="...",
        client_secret="...",
        success_template="success.html",
        error_template="error.html",
    ))
    service.on_auth(lambda token: save_installation(token.team_id, token.access_token))
    service.run()
"""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("slack-auth")
except PackageNotFoundError:
    __version__ = "0.1.0"  # Fallback for development

__all__ = [
    "__version__",
    # Configuration
    "Options",
    "ErrorKind",
    "ConfigError",
    "InvalidConfigError",
    "TemplateLoadError",
    # Service
    "Service",
    "new_service",
    # Token exchange
    "TokenResponse",
    "TokenExchanger",
    "SlackTokenExchanger",
    "ExchangeError",
    # Runtime errors
    "RenderError",
    "ListenError",
]


# Lazy imports to avoid circular dependencies
def __getattr__(name: str) -> object:
    """Lazy import module components."""
    if name in ("Options", "ErrorKind", "ConfigError", "InvalidConfigError"):
        from . import config
        return getattr(config, name)
    elif name in ("TemplateLoadError", "RenderError"):
        from . import templates
        return getattr(templates, name)
    elif name in ("Service", "new_service"):
        from . import service
        return getattr(service, name)
    elif name == "TokenResponse":
        from .tokens import TokenResponse
        return TokenResponse
    elif name in ("TokenExchanger", "SlackTokenExchanger", "ExchangeError"):
        from . import exchange
        return getattr(exchange, name)
    elif name == "ListenError":
        from .server import ListenError
        return ListenError
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

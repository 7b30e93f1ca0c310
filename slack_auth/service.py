"""The authorization gateway service.

Usage:
    service = new_service(Options(
        addr=":8080",
        client_id="...",
        client_secret="...",
        success_template="success.html",
        error_template="error.html",
    ))
    service.on_auth(lambda token: print(token.team_name))
    service.run()  # blocks until the listener stops or fails
"""

from __future__ import annotations

import asyncio
import copy
import logging
import sys
from typing import Any, TextIO

from jinja2 import Template

from .config import InvalidConfigError, Options
from .dispatcher import QUEUE_CAPACITY, AuthHandler, EventDispatcher
from .exchange import SlackTokenExchanger, TokenExchanger
from .server import (
    ButtonPage,
    CallbackHandler,
    CallbackServer,
    ListenError,
    create_ssl_context,
    parse_addr,
)
from .templates import load_template

TERMINAL_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOGFMT_FORMAT = 't=%(asctime)s lvl=%(levelname)s logger=%(name)s msg="%(message)s"'


class LogfmtFormatter(logging.Formatter):
    """Formatter that escapes the message so it stays a valid quoted logfmt value."""

    def __init__(self, fmt: str = LOGFMT_FORMAT) -> None:
        super().__init__(fmt)

    def formatMessage(self, record: logging.LogRecord) -> str:
        escaped = copy.copy(record)
        escaped.message = (
            record.message.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")
        )
        return super().formatMessage(escaped)


class Service:
    """A configured gateway: listener, callback handler and event dispatcher.

    Create instances with new_service(), which validates the options and
    loads the templates.
    """

    def __init__(
        self,
        options: Options,
        success_template: Template,
        error_template: Template,
        exchanger: TokenExchanger,
        button_template: Template | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.options = options
        self.logger = logger or logging.getLogger("slack_auth")
        self.exchanger = exchanger

        self.dispatcher = EventDispatcher(QUEUE_CAPACITY, logger=self.logger)
        self.handler = CallbackHandler(
            client_id=options.client_id,
            client_secret=options.client_secret,
            exchanger=exchanger,
            success_template=success_template,
            error_template=error_template,
            dispatcher=self.dispatcher,
            debug=options.debug,
            logger=self.logger,
        )

        button_page = None
        if button_template is not None:
            button_page = ButtonPage(
                button_template, options.client_id, options.scopes, logger=self.logger
            )

        self.server = CallbackServer(
            self.handler,
            callback_path=options.callback_path,
            button_page=button_page,
            button_path=options.button_path,
            logger=self.logger,
        )
        self._log_handler: logging.Handler | None = None

    @property
    def port(self) -> int:
        """Port the listener is bound to (0 before start)."""
        return self.server.port

    @property
    def running(self) -> bool:
        return self.server.is_serving and self.dispatcher.running

    def on_auth(self, handler: AuthHandler | None) -> None:
        """Set the handler triggered for every successful authorization.

        Replaces any previously registered handler.
        """
        self.dispatcher.on_auth(handler)

    def set_log_output(self, stream: TextIO | None = None) -> None:
        """Send this service's logs to a stream.

        Without a stream, logs go to stdout in a human-readable format;
        otherwise they are written in logfmt style. The level is DEBUG when
        the service runs in debug mode and INFO otherwise. Records no longer
        propagate to the root logger while a stream is installed.
        """
        if self._log_handler is not None:
            self.logger.removeHandler(self._log_handler)

        if stream is None:
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(logging.Formatter(TERMINAL_FORMAT))
        else:
            handler = logging.StreamHandler(stream)
            handler.setFormatter(LogfmtFormatter())

        self.logger.addHandler(handler)
        self.logger.setLevel(logging.DEBUG if self.options.debug else logging.INFO)
        self.logger.propagate = False
        self._log_handler = handler

    async def start(self) -> None:
        """Start the dispatcher and bind the listener.

        Raises:
            ListenError: If the address is invalid or cannot be bound
        """
        host, port = parse_addr(self.options.addr)
        if self.options.tls_enabled:
            assert self.options.cert_file and self.options.key_file
            self.server.ssl_context = create_ssl_context(
                self.options.cert_file, self.options.key_file
            )

        self.dispatcher.start()
        try:
            await self.server.start(host, port)
        except ListenError:
            await self.dispatcher.stop()
            raise

    async def serve(self) -> None:
        """Start the service and serve until stop() is called.

        Raises:
            ListenError: If the listener cannot be started
        """
        await self.start()
        try:
            await self.server.serve_forever()
        finally:
            await self.stop()

    async def stop(self) -> None:
        """Stop the listener, then deliver pending events and stop the dispatcher."""
        await self.server.stop()
        await self.dispatcher.stop()

    def run(self) -> None:
        """Run the service, blocking until it stops.

        Raises:
            ListenError: If the listener cannot be started
        """
        asyncio.run(self.serve())

    async def __aenter__(self) -> Service:
        await self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.stop()


def new_service(
    options: Options,
    exchanger: TokenExchanger | None = None,
    logger: logging.Logger | None = None,
) -> Service:
    """Validate options and build a ready-to-run service.

    Checks run in order and the first failure is raised; no service is
    created unless every check passes. Nothing touches the network here.

    Args:
        options: Gateway configuration
        exchanger: Token exchanger to use instead of the Slack client
        logger: Logger for the service (default: the "slack_auth" logger)

    Returns:
        The configured service, not yet running

    Raises:
        InvalidConfigError: If addr, client id or client secret is empty,
            or a button template is configured without scopes
        TemplateLoadError: If a template cannot be loaded or parsed
    """
    options.validate_required()

    success_template = load_template(options.success_template)
    error_template = load_template(options.error_template)

    button_template = None
    if options.button_template:
        if not options.scopes:
            raise InvalidConfigError("scopes can not be empty when a button template is set")
        button_template = load_template(options.button_template)

    if exchanger is None:
        exchanger = SlackTokenExchanger(
            token_url=options.token_url,
            redirect_uri=options.redirect_uri,
            logger=logger,
        )

    return Service(
        options,
        success_template,
        error_template,
        exchanger,
        button_template=button_template,
        logger=logger,
    )

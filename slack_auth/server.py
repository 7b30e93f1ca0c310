"""HTTP server for the OAuth authorize callback.

This module provides the listener that receives the browser redirect from
Slack. It:
- Reads the authorization code from the query string or a form body
- Exchanges it for a token through the configured TokenExchanger
- Renders the success or error template (always with status 200)
- Hands successful responses to the event dispatcher
- Optionally serves an "Add to Slack" button page
"""

import asyncio
import logging
import ssl
from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Any
from urllib.parse import parse_qs, urlencode, urlsplit

from jinja2 import Template

from .config import SLACK_AUTHORIZE_URL
from .dispatcher import EventDispatcher
from .exchange import ExchangeError, TokenExchanger
from .templates import render
from .tokens import TokenResponse

# Time allowed to receive the request head and body
READ_TIMEOUT = 1.0  # seconds

# Time allowed to flush a response to the client
WRITE_TIMEOUT = 3.0  # seconds

# Largest form body accepted on the callback endpoint
MAX_BODY_SIZE = 64 * 1024

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


class ListenError(Exception):
    """The listener could not bind or stopped unexpectedly."""

    pass


@dataclass
class HTTPRequest:
    """The parts of an inbound request the gateway cares about."""

    method: str
    path: str
    query: dict[str, list[str]] = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    def form(self) -> dict[str, list[str]]:
        """Parameters from a form-encoded body, if there is one."""
        content_type = self.headers.get("content-type", "")
        if not self.body or not content_type.lower().startswith(FORM_CONTENT_TYPE):
            return {}
        return parse_qs(self.body.decode("utf-8", errors="replace"))

    def form_value(self, name: str) -> str:
        """First value of a parameter, or "" when absent.

        Form body values take precedence over query string values.
        """
        for params in (self.form(), self.query):
            values = params.get(name, [])
            if values:
                return values[0]
        return ""


def parse_addr(addr: str) -> tuple[str | None, int]:
    """Split a "host:port" listen address.

    An empty host (":8080") means all interfaces and is returned as None.

    Raises:
        ListenError: If the address is malformed
    """
    host, sep, port_text = addr.rpartition(":")
    if not sep:
        raise ListenError(f"invalid listen address {addr!r}: missing port")

    try:
        port = int(port_text)
    except ValueError:
        raise ListenError(f"invalid listen address {addr!r}: bad port") from None

    if not 0 <= port <= 65535:
        raise ListenError(f"invalid listen address {addr!r}: port out of range")

    host = host.strip("[]")
    return (host or None), port


def create_ssl_context(cert_file: str, key_file: str) -> ssl.SSLContext:
    """Build a server TLS context from a certificate/key pair.

    Raises:
        ListenError: If the files are missing or invalid
    """
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    try:
        context.load_cert_chain(cert_file, key_file)
    except (OSError, ssl.SSLError) as e:
        raise ListenError(f"could not load TLS key pair: {e}") from e
    return context


async def read_request(reader: asyncio.StreamReader) -> HTTPRequest | None:
    """Read an HTTP/1.x request head and body.

    Bodies are framed by Content-Length or chunked transfer encoding.

    Returns:
        The parsed request, or None if it is malformed
    """
    try:
        return await _read_request(reader)
    except (ValueError, asyncio.LimitOverrunError, asyncio.IncompleteReadError):
        # Lines over the reader limit surface as ValueError from readline()
        return None


async def _read_request(reader: asyncio.StreamReader) -> HTTPRequest | None:
    request_line = await reader.readline()
    request_text = request_line.decode("utf-8", errors="replace")

    # Parse request line (e.g., "GET /auth?code=xxx HTTP/1.1")
    parts = request_text.strip().split(" ")
    if len(parts) < 2:
        return None

    method, target = parts[0].upper(), parts[1]

    headers: dict[str, str] = {}
    while True:
        header_line = await reader.readline()
        if header_line in (b"\r\n", b"\n", b""):
            break
        name, sep, value = header_line.decode("latin-1").partition(":")
        if sep:
            headers[name.strip().lower()] = value.strip()

    body: bytes | None = b""
    if "chunked" in headers.get("transfer-encoding", "").lower():
        body = await read_chunked_body(reader)
    elif headers.get("content-length"):
        length = int(headers["content-length"])
        if length < 0 or length > MAX_BODY_SIZE:
            return None
        body = await reader.readexactly(length)

    if body is None:
        return None

    url = urlsplit(target)
    return HTTPRequest(
        method=method,
        path=url.path or "/",
        query=parse_qs(url.query),
        headers=headers,
        body=body,
    )


async def read_chunked_body(reader: asyncio.StreamReader) -> bytes | None:
    """Read a chunked request body, or None if it is malformed or too large."""
    body = bytearray()
    while True:
        size_line = await reader.readline()
        # Chunk extensions (";name=value") are ignored
        size = int(size_line.split(b";", 1)[0].strip(), 16)
        if size < 0 or len(body) + size > MAX_BODY_SIZE:
            return None
        if size == 0:
            break
        body += await reader.readexactly(size)
        if await reader.readline() not in (b"\r\n", b"\n"):
            return None

    # Trailer section ends with an empty line
    while True:
        trailer = await reader.readline()
        if trailer in (b"\r\n", b"\n", b""):
            break
    return bytes(body)


async def send_response(
    writer: asyncio.StreamWriter,
    status: HTTPStatus,
    body: str,
    content_type: str = "text/plain; charset=utf-8",
) -> None:
    """Write a complete HTTP response and flush it."""
    payload = body.encode("utf-8")
    headers = (
        f"HTTP/1.1 {status.value} {status.phrase}\r\n"
        f"Content-Type: {content_type}\r\n"
        f"Content-Length: {len(payload)}\r\n"
        f"X-Content-Type-Options: nosniff\r\n"
        f"X-Frame-Options: DENY\r\n"
        f"Cache-Control: no-store\r\n"
        f"Connection: close\r\n"
        f"\r\n"
    )
    writer.write(headers.encode("utf-8") + payload)
    async with asyncio.timeout(WRITE_TIMEOUT):
        await writer.drain()


async def send_html(writer: asyncio.StreamWriter, body: str) -> None:
    """Write an HTML page with status 200."""
    await send_response(writer, HTTPStatus.OK, body, "text/html; charset=utf-8")


class CallbackHandler:
    """Turns an authorization code into a rendered page and an auth event."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        exchanger: TokenExchanger,
        success_template: Template,
        error_template: Template,
        dispatcher: EventDispatcher,
        debug: bool = False,
        logger: logging.Logger | None = None,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.exchanger = exchanger
        self.success_template = success_template
        self.error_template = error_template
        self.dispatcher = dispatcher
        self.debug = debug
        self.logger = logger or logging.getLogger("slack_auth.server")

    async def handle(self, request: HTTPRequest, writer: asyncio.StreamWriter) -> None:
        """Handle one callback request.

        Exchange failures and render failures are logged; the browser always
        gets a 200 page. Only successful exchanges are enqueued, after the
        page has been written.
        """
        code = request.form_value("code")

        try:
            token = await self.exchanger.exchange(
                self.client_id, self.client_secret, code, self.debug
            )
        except ExchangeError as e:
            self.logger.error(f"Error getting oauth response: {e}")
            await self._write(writer, self.error_template, e.response)
            return
        except Exception as e:
            self.logger.error(f"Error getting oauth response: {type(e).__name__}: {e}")
            await self._write(writer, self.error_template, None)
            return

        await self._write(writer, self.success_template, token)
        await self.dispatcher.put(token)

    async def _write(
        self,
        writer: asyncio.StreamWriter,
        template: Template,
        token: TokenResponse | None,
    ) -> None:
        body, err = render(template, token=token)
        if err is not None:
            self.logger.error(f"Error displaying template: {err}")
        try:
            await send_html(writer, body)
        except (OSError, TimeoutError) as e:
            self.logger.warning(f"Could not write response to client: {e}")


class ButtonPage:
    """Renders the "Add to Slack" button page."""

    def __init__(
        self,
        template: Template,
        client_id: str,
        scopes: tuple[str, ...],
        logger: logging.Logger | None = None,
    ) -> None:
        self.template = template
        self.client_id = client_id
        self.scopes = list(scopes)
        self.logger = logger or logging.getLogger("slack_auth.server")

    @property
    def authorize_url(self) -> str:
        params = {"scope": ",".join(self.scopes), "client_id": self.client_id}
        return f"{SLACK_AUTHORIZE_URL}?{urlencode(params)}"

    def context(self) -> dict[str, Any]:
        return {
            "client_id": self.client_id,
            "scopes": self.scopes,
            "scope": ",".join(self.scopes),
            "authorize_url": self.authorize_url,
        }

    async def handle(self, request: HTTPRequest, writer: asyncio.StreamWriter) -> None:
        body, err = render(self.template, **self.context())
        if err is not None:
            self.logger.error(f"Error displaying button template: {err}")
        await send_html(writer, body)


class CallbackServer:
    """asyncio HTTP listener routing requests to the gateway handlers."""

    def __init__(
        self,
        handler: CallbackHandler,
        callback_path: str = "/auth",
        button_page: ButtonPage | None = None,
        button_path: str = "/",
        ssl_context: ssl.SSLContext | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.handler = handler
        self.callback_path = callback_path
        self.button_page = button_page
        self.button_path = button_path
        self.ssl_context = ssl_context
        self.logger = logger or logging.getLogger("slack_auth.server")
        self.port: int = 0

        self._server: asyncio.Server | None = None
        self._stopped: asyncio.Event | None = None

    @property
    def is_serving(self) -> bool:
        return self._server is not None and self._server.is_serving()

    async def start(self, host: str | None, port: int) -> None:
        """Bind the listener and start accepting connections.

        Raises:
            ListenError: If the address cannot be bound
        """
        try:
            self._server = await asyncio.start_server(
                self._handle_connection, host, port, ssl=self.ssl_context
            )
        except OSError as e:
            raise ListenError(f"could not listen on {host or '*'}:{port}: {e}") from e

        self._stopped = asyncio.Event()
        sockets = self._server.sockets
        if not sockets:
            raise ListenError("Failed to start listener: no sockets created")

        self.port = sockets[0].getsockname()[1]
        scheme = "https" if self.ssl_context else "http"
        self.logger.info(f"Listening on {scheme}://{host or '*'}:{self.port}{self.callback_path}")

    async def serve_forever(self) -> None:
        """Accept connections until the listener is closed."""
        if self._server is None or self._stopped is None:
            raise ListenError("Listener not started")
        await self._stopped.wait()

    async def stop(self) -> None:
        """Stop accepting connections and wait for open ones to finish."""
        if self._stopped is not None:
            self._stopped.set()
        if self._server:
            self._server.close()
            await self._server.wait_closed()
            self._server = None
            self.logger.debug("Listener stopped")

    async def _handle_connection(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        """Handle one inbound HTTP connection."""
        try:
            try:
                async with asyncio.timeout(READ_TIMEOUT):
                    request = await read_request(reader)
            except TimeoutError:
                self.logger.debug("Timed out reading request")
                return

            if request is None:
                await send_response(writer, HTTPStatus.BAD_REQUEST, "Invalid request")
                return

            await self._route(request, writer)

        except (OSError, TimeoutError) as e:
            self.logger.warning(f"Connection error while handling request: {e}")

        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except OSError as e:
                self.logger.debug(f"Error closing connection: {e}")

    async def _route(self, request: HTTPRequest, writer: asyncio.StreamWriter) -> None:
        # Browsers request this alongside the redirect
        if request.path == "/favicon.ico":
            await send_response(writer, HTTPStatus.NOT_FOUND, "")
            return

        if request.path == self.callback_path:
            if request.method not in ("GET", "POST"):
                await send_response(writer, HTTPStatus.METHOD_NOT_ALLOWED, "Method not allowed")
                return
            await self.handler.handle(request, writer)
            return

        if self.button_page is not None and request.path == self.button_path:
            if request.method != "GET":
                await send_response(writer, HTTPStatus.METHOD_NOT_ALLOWED, "Method not allowed")
                return
            await self.button_page.handle(request, writer)
            return

        await send_response(writer, HTTPStatus.NOT_FOUND, "Not found")

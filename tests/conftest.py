"""Shared fixtures and utilities for Slack Auth tests."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

import httpx
import pytest

from slack_auth.config import Options
from slack_auth.exchange import ExchangeError
from slack_auth.service import Service, new_service
from slack_auth.tokens import TokenResponse

TPL_SUCCESS = """<h1>Hello</h1>
	<p>All went ok!</p>"""

TPL_ERROR = """<h1>:(</h1>
	<p>Something went wrong!</p>"""

ENV_VARS = [
    "ADDR",
    "CLIENT_ID",
    "CLIENT_SECRET",
    "SUCCESS_TEMPLATE",
    "ERROR_TEMPLATE",
    "BUTTON_TEMPLATE",
    "SCOPES",
    "CERT_FILE",
    "KEY_FILE",
    "DEBUG",
    "CALLBACK_PATH",
    "BUTTON_PATH",
    "TOKEN_URL",
    "REDIRECT_URI",
]


class FakeExchanger:
    """Token exchanger that fails only for the code "invalid".

    Every other code succeeds with a fixed token; the code is echoed in
    team_id so tests can follow individual events.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, str, str, bool]] = []

    async def exchange(
        self, client_id: str, client_secret: str, code: str, debug: bool
    ) -> TokenResponse:
        self.calls.append((client_id, client_secret, code, debug))
        if code == "invalid":
            raise ExchangeError("invalid code")
        return TokenResponse(access_token="foo", team_id=code, team_name="Acme")


# ============================================================================
# Environment Fixtures
# ============================================================================


@pytest.fixture
def clean_env(monkeypatch, tmp_path: Path):
    """Run with no SLACK_AUTH_* variables and no .env in the cwd."""
    for name in ENV_VARS:
        # setenv first so values loaded from .env files are undone too
        monkeypatch.setenv(f"SLACK_AUTH_{name}", "")
        monkeypatch.delenv(f"SLACK_AUTH_{name}")
    monkeypatch.chdir(tmp_path)
    return monkeypatch


# ============================================================================
# Template Fixtures
# ============================================================================


@pytest.fixture
def template_dir(tmp_path: Path) -> Path:
    """Directory with valid success and error templates."""
    (tmp_path / "success.html").write_text(TPL_SUCCESS)
    (tmp_path / "error.html").write_text(TPL_ERROR)
    return tmp_path


@pytest.fixture
def options(template_dir: Path) -> Options:
    """Valid options listening on an OS-assigned local port."""
    return Options(
        addr="127.0.0.1:0",
        client_id="aaaa",
        client_secret="bbbb",
        success_template=str(template_dir / "success.html"),
        error_template=str(template_dir / "error.html"),
        debug=True,
    )


# ============================================================================
# Service Fixtures
# ============================================================================


@pytest.fixture
def fake_exchanger() -> FakeExchanger:
    return FakeExchanger()


@pytest.fixture
def service(options: Options, fake_exchanger: FakeExchanger) -> Service:
    """A configured (not yet started) service using the fake exchanger."""
    return new_service(options, exchanger=fake_exchanger)


@pytest.fixture(autouse=True)
def reset_slack_auth_logger() -> Any:
    """Undo handlers, levels and propagation set on the package logger by a test."""
    logger = logging.getLogger("slack_auth")
    handlers = list(logger.handlers)
    level = logger.level
    propagate = logger.propagate
    yield
    logger.handlers = handlers
    logger.setLevel(level)
    logger.propagate = propagate


# ============================================================================
# HTTP / async helpers
# ============================================================================


Fetch = Callable[..., Awaitable[httpx.Response]]
WaitUntil = Callable[..., Awaitable[None]]


@pytest.fixture
def fetch() -> Fetch:
    """Issue one HTTP request against a local port."""

    async def _fetch(port: int, path: str, method: str = "GET", **kwargs: Any) -> httpx.Response:
        async with httpx.AsyncClient(
            base_url=f"http://127.0.0.1:{port}", trust_env=False, timeout=5.0
        ) as client:
            return await client.request(method, path, **kwargs)

    return _fetch


@pytest.fixture
def wait_until() -> WaitUntil:
    """Poll a condition until it holds, failing the test on timeout."""

    async def _wait_until(predicate: Callable[[], bool], timeout: float = 3.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                pytest.fail("Timed out waiting for condition")
            await asyncio.sleep(0.01)

    return _wait_until


@pytest.fixture
def success_html() -> str:
    return TPL_SUCCESS


@pytest.fixture
def error_html() -> str:
    return TPL_ERROR

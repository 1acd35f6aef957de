"""W3C WebDriver browser driver implementation."""

import logging
from collections.abc import AsyncGenerator, Mapping, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

import aiohttp
from pydantic import ValidationError

from wpt_runner.drivers.base import BrowserDriver, DriverError, SessionLostError
from wpt_runner.drivers.webdriver.config import WebDriverConfig
from wpt_runner.drivers.webdriver.models import (
    CommandResponse,
    ErrorResponse,
    NewSessionResponse,
)

log = logging.getLogger(__name__)

SESSION_LOST_ERRORS = frozenset({"invalid session id"})

HEADLESS_OPTIONS: Mapping[str, Mapping[str, Any]] = {
    "goog:chromeOptions": {"args": ["--headless=new"]},
    "moz:firefoxOptions": {"args": ["-headless"]},
    "ms:edgeOptions": {"args": ["--headless"]},
}


class WebDriverError(DriverError):
    """Error reported by the WebDriver remote end."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(f"{code}: {message}" if message else code)
        self.code = code
        self.message = message


def build_capabilities(config: WebDriverConfig) -> dict[str, Any]:
    """Build the alwaysMatch capabilities for a new session."""
    capabilities: dict[str, Any] = {
        "browserName": config.browser,
        "timeouts": {
            "script": int(config.script_timeout * 1000),
            "pageLoad": int(config.page_load_timeout * 1000),
        },
    }
    if config.headless:
        capabilities.update(HEADLESS_OPTIONS)
    return capabilities


def parse_error(status: int, body: str) -> DriverError:
    """Turn an error response into the matching exception."""
    try:
        detail = ErrorResponse.model_validate_json(body).value
    except ValidationError:
        return WebDriverError("unknown error", f"HTTP {status}: {body}")

    if detail.error in SESSION_LOST_ERRORS:
        return SessionLostError(f"{detail.error}: {detail.message}")
    return WebDriverError(detail.error, detail.message)


async def send_command(
    session: aiohttp.ClientSession,
    method: str,
    path: str,
    payload: Mapping[str, Any] | None = None,
) -> str:
    """Send a WebDriver command and return the raw response body.

    Raises:
        SessionLostError: If the remote end cannot be reached
        WebDriverError: If the remote end reports an error

    """
    try:
        async with session.request(method, path, json=payload) as response:
            body = await response.text()
    except aiohttp.ClientConnectionError as e:
        raise SessionLostError(f"Lost connection to WebDriver: {e}") from e

    if response.status >= 400:
        raise parse_error(response.status, body)
    return body


@dataclass(frozen=True, kw_only=True)
class WebDriverSession(BrowserDriver):
    """Browser driver speaking the W3C WebDriver protocol."""

    config: WebDriverConfig
    session: aiohttp.ClientSession = field(repr=False)
    session_id: str

    @classmethod
    @asynccontextmanager
    async def from_config(
        cls, config: WebDriverConfig
    ) -> AsyncGenerator["WebDriverSession", None]:
        """Create a browser session that is deleted when the context exits."""
        async with aiohttp.ClientSession(base_url=config.base_url) as session:
            log.info(
                "Creating WebDriver session: base_url=%s, browser=%s, headless=%s",
                config.base_url,
                config.browser,
                config.headless,
            )
            body = await send_command(
                session,
                "POST",
                "/session",
                {"capabilities": {"alwaysMatch": build_capabilities(config)}},
            )
            created = NewSessionResponse.model_validate_json(body).value
            log.info("WebDriver session %s created", created.session_id)

            driver = cls(config=config, session=session, session_id=created.session_id)
            try:
                yield driver
            finally:
                await driver.delete_session()

    async def navigate_to(self, url: str) -> None:
        """Navigate the session's browsing context to url."""
        log.debug("Navigating to %s", url)
        await send_command(
            self.session, "POST", f"/session/{self.session_id}/url", {"url": url}
        )

    async def execute_async_script(
        self, script: str, args: Sequence[Any] = ()
    ) -> Any:
        """Run an asynchronous script and return the value it resolved with."""
        body = await send_command(
            self.session,
            "POST",
            f"/session/{self.session_id}/execute/async",
            {"script": script, "args": list(args)},
        )
        return CommandResponse.model_validate_json(body).value

    async def delete_session(self) -> None:
        """Delete the remote session.

        Failures are logged rather than raised since the session may already
        be gone.
        """
        try:
            await send_command(self.session, "DELETE", f"/session/{self.session_id}")
        except DriverError as e:
            log.warning("Failed to delete WebDriver session %s: %s", self.session_id, e)
        else:
            log.info("WebDriver session %s deleted", self.session_id)

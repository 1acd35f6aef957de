"""Abstract base class for browser automation drivers."""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any


class DriverError(Exception):
    """Raised when the browser driver fails to carry out a command."""


class SessionLostError(DriverError):
    """Raised when the browser session can no longer be used."""


@dataclass(frozen=True, kw_only=True)
class BrowserDriver(ABC):
    """Abstract base for a single browser automation session.

    A driver instance wraps one live session. Its lifecycle (creation and
    teardown) is owned by the async context manager returned from the
    driver manifest's factory.
    """

    @abstractmethod
    async def navigate_to(self, url: str) -> None:
        """Load a URL in the current browsing context.

        Args:
            url: Absolute URL to navigate to

        Raises:
            DriverError: If navigation fails
            SessionLostError: If the session is no longer usable

        """

    @abstractmethod
    async def execute_async_script(
        self, script: str, args: Sequence[Any] = ()
    ) -> Any:
        """Run an asynchronous script in the page and return its result.

        The script receives a completion callback as its last argument and
        the value passed to it is returned.

        Args:
            script: JavaScript function body
            args: JSON-serializable arguments passed to the script

        Returns:
            The deserialized value passed to the callback

        Raises:
            DriverError: If the script throws or times out
            SessionLostError: If the session is no longer usable

        """

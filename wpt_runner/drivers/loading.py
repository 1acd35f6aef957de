"""Loading of browser drivers from entry points."""

import logging
from importlib.metadata import entry_points
from typing import Any

from wpt_runner.drivers.manifest import DriverManifest

log = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "wpt_runner.drivers"


class DriverNotFoundError(Exception):
    """Raised when no usable driver is registered under a key."""


def load_driver_manifest(key: str) -> DriverManifest[Any]:
    """Load a driver manifest by key.

    Args:
        key: The driver key as registered in pyproject.toml (e.g., "webdriver")

    Returns:
        The driver manifest instance

    Raises:
        DriverNotFoundError: If no driver with the given key is found, or the
            entry point does not refer to a DriverManifest

    """
    entries = entry_points(group=ENTRY_POINT_GROUP)
    matches = entries.select(name=key)

    if not matches:
        available = sorted(entries.names)
        raise DriverNotFoundError(
            f"Driver '{key}' not found. Available drivers: {available}"
        )

    [entry, *_] = matches
    manifest = entry.load()
    if not isinstance(manifest, DriverManifest):
        raise DriverNotFoundError(
            f"Entry point '{entry.value}' for driver '{key}' is not a DriverManifest"
        )

    log.debug("Loaded driver '%s' from %s", key, entry.value)
    return manifest

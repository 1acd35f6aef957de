"""W3C WebDriver browser driver module."""

from wpt_runner.drivers.webdriver.config import WebDriverConfig
from wpt_runner.drivers.webdriver.driver import WebDriverError, WebDriverSession
from wpt_runner.drivers.webdriver.manifest import webdriver_manifest

__all__ = [
    "WebDriverConfig",
    "WebDriverError",
    "WebDriverSession",
    "webdriver_manifest",
]

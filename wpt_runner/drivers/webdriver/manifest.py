"""WebDriver driver manifest."""

from wpt_runner.drivers.manifest import DriverManifest
from wpt_runner.drivers.webdriver.config import WebDriverConfig
from wpt_runner.drivers.webdriver.driver import WebDriverSession

webdriver_manifest = DriverManifest(
    config_cls=WebDriverConfig,
    driver_factory=WebDriverSession.from_config,
)

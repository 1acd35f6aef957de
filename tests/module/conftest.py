"""Fixtures for module tests using a Selenium testcontainer."""

from collections.abc import Generator

import pytest
from testcontainers.core import testcontainers_config
from testcontainers.core.container import DockerContainer
from testcontainers.core.waiting_utils import wait_for_logs

SELENIUM_IMAGE = "selenium/standalone-chrome:latest"
SELENIUM_PORT = 4444


@pytest.fixture(scope="session", autouse=True)
def _disable_ryuk() -> None:
    """Disable the extra cleanup instance, we use contexts to clean containers."""
    testcontainers_config.ryuk_disabled = True


@pytest.fixture(scope="session")
def selenium_server() -> Generator[DockerContainer, None, None]:
    """Start a standalone Chrome WebDriver server.

    The container shares the host network so the browser can reach the test
    server bound to the loopback interface.
    """
    container = DockerContainer(SELENIUM_IMAGE).with_kwargs(
        network_mode="host", shm_size="2g"
    )

    with container as selenium:
        wait_for_logs(selenium, "Started Selenium Standalone", timeout=120)
        yield selenium
        print(selenium.get_logs())


@pytest.fixture(scope="session")
def driver_config(selenium_server: DockerContainer) -> dict[str, str]:
    """Driver configuration pointing at the Selenium server."""
    return {"base_url": f"http://127.0.0.1:{SELENIUM_PORT}", "browser": "chrome"}

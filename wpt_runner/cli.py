"""CLI entry point for the web-platform-test runner."""

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Mapping
from pathlib import Path
from typing import Any, TextIO

from wpt_runner.drivers.base import DriverError
from wpt_runner.drivers.loading import load_driver_manifest
from wpt_runner.orchestrator import RunOptions, run
from wpt_runner.reporters import REPORTERS
from wpt_runner.server import run_server


def build_driver_config(
    driver_config_json: str,
    browser: str | None = None,
    driver_hostname: str | None = None,
    driver_port: int | None = None,
) -> Mapping[str, Any]:
    """Merge the JSON driver configuration with command line overrides."""
    config: dict[str, Any] = json.loads(driver_config_json)
    if browser is not None:
        config["browser"] = browser
    if driver_hostname is not None and driver_port is not None:
        config["base_url"] = f"http://{driver_hostname}:{driver_port}"
    return config


async def run_suite(
    test_dir: Path,
    driver_key: str,
    driver_config: Mapping[str, Any],
    reporter: str = "spec",
    timeout: float = 60,
    out: TextIO | None = None,
) -> int:
    """Run the tests in test_dir, report them and return the exit code."""
    log = logging.getLogger("wpt_runner")

    log.info("Loading driver: %s", driver_key)
    manifest = load_driver_manifest(driver_key)
    config = manifest.config_cls(**driver_config)

    options = RunOptions(
        driver_factory=lambda: manifest.driver_factory(config),
        timeout=timeout,
    )
    stream = run(test_dir, options)

    try:
        await REPORTERS[reporter](stream.consume(), out or sys.stdout)
    except BaseException:
        await stream.cancel()
        raise

    try:
        return await stream.wait_until_done()
    except (DriverError, OSError) as e:
        log.error("Test run aborted: %s", e)
        return 1


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description=(
            "Run web-platform-test testharness.js documents in a browser "
            "through WebDriver and report their results"
        )
    )
    parser.add_argument(
        "test_dir",
        nargs="?",
        type=Path,
        default=Path("test"),
        help="Directory containing HTML test documents (default: test)",
    )
    parser.add_argument(
        "-s",
        "--serve",
        "--server",
        action="store_true",
        help="Run the test server for manual debugging instead of the tests",
    )
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Address for the test server to listen on with --serve",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port for the test server to listen on with --serve",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Print additional debug logging",
    )
    parser.add_argument(
        "--driver",
        default="webdriver",
        help="Browser driver key (default: webdriver)",
    )
    parser.add_argument(
        "--driver-config",
        default="{}",
        help="JSON configuration for the browser driver",
    )
    parser.add_argument(
        "--browser",
        help="Browser to run the tests in (default: chrome)",
    )
    parser.add_argument(
        "--driver-hostname",
        help="Hostname of a running WebDriver server",
    )
    parser.add_argument(
        "--driver-port",
        type=int,
        help="Port of a running WebDriver server",
    )
    parser.add_argument(
        "--reporter",
        choices=sorted(REPORTERS),
        default="spec",
        help="Print results using the specified reporter",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=60,
        help="Seconds allowed for each test document to load and finish",
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    if args.serve:
        run_server(args.test_dir, host=args.host, port=args.port)
        return

    exit_code = asyncio.run(
        run_suite(
            test_dir=args.test_dir,
            driver_key=args.driver,
            driver_config=build_driver_config(
                args.driver_config,
                browser=args.browser,
                driver_hostname=args.driver_hostname,
                driver_port=args.driver_port,
            ),
            reporter=args.reporter,
            timeout=args.timeout,
        )
    )
    sys.exit(exit_code)


if __name__ == "__main__":  # pragma: no cover
    main()

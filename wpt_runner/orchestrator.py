"""Test orchestrator for running test documents in a browser."""

import asyncio
import logging
import os
from collections.abc import Callable, Sequence
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from pathlib import Path

from yarl import URL

from wpt_runner.drivers.base import BrowserDriver, SessionLostError
from wpt_runner.models.harness import HarnessResults
from wpt_runner.models.outcome import TestOutcome
from wpt_runner.result_stream import ResultEventStream
from wpt_runner.server import RESOURCE_ROOT, serve

log = logging.getLogger(__name__)

TEST_DOCUMENT_SUFFIX = ".html"

GET_TEST_RESULTS_ASYNC = """
    var cb = arguments[arguments.length - 1];
    if (document.readyState == "complete") {
        window.__testharness__done__.then(cb);
    } else {
        window.addEventListener("load", () => window.__testharness__done__.then(cb));
    }
"""


@dataclass(frozen=True, kw_only=True)
class RunOptions:
    """Options for a test run."""

    driver_factory: Callable[[], AbstractAsyncContextManager[BrowserDriver]]
    timeout: float = 60
    resource_root: Path = RESOURCE_ROOT
    host: str = "127.0.0.1"


@dataclass(frozen=True, kw_only=True)
class DocumentRun:
    """Outcome of running one test document: either results or an error."""

    path: Path
    results: HarnessResults | None = None
    error: Exception | None = None


def _raise(error: OSError) -> None:
    raise error


def discover_tests(test_root: Path) -> Sequence[Path]:
    """Find test documents below test_root in file-system traversal order.

    Raises:
        OSError: If the test root cannot be enumerated

    """
    documents: list[Path] = []
    for dirpath, _, filenames in os.walk(test_root, onerror=_raise):
        for filename in filenames:
            if not filename.endswith(TEST_DOCUMENT_SUFFIX):
                continue
            path = os.path.join(dirpath, filename)
            # Symlinked documents are skipped, not followed.
            if os.path.isfile(path) and not os.path.islink(path):
                documents.append(Path(path))
    return documents


def document_url(base_url: URL, test_root: Path, document: Path) -> URL:
    """Build the URL the server exposes a test document under."""
    return base_url.joinpath(*document.relative_to(test_root).parts)


@dataclass(frozen=True, kw_only=True)
class TestOrchestrator:
    """Runs test documents one at a time in a single browser session.

    The browser session is shared by every document in the run, so cookies
    and storage set by one document are visible to the documents after it.
    """

    __test__ = False

    stream: ResultEventStream
    options: RunOptions

    async def run_tests(self, test_root: Path) -> None:
        """Run every test document below test_root and publish the results.

        Raises:
            OSError: If test discovery fails
            SessionLostError: If the browser session became unusable

        """
        documents = await asyncio.to_thread(discover_tests, test_root)
        log.info("Discovered %d test document(s) in %s", len(documents), test_root)

        async with (
            serve(
                test_root,
                resource_root=self.options.resource_root,
                host=self.options.host,
            ) as base_url,
            self.options.driver_factory() as driver,
        ):
            for document in documents:
                self.stream.suite_start(str(document))

                document_run = await self._run_document(
                    driver, base_url, test_root, document
                )
                self._publish(document_run)

                if isinstance(document_run.error, SessionLostError):
                    log.error("Browser session lost, aborting run")
                    raise document_run.error

        log.info("Test run completed: %d document(s)", len(documents))

    async def _run_document(
        self,
        driver: BrowserDriver,
        base_url: URL,
        test_root: Path,
        document: Path,
    ) -> DocumentRun:
        """Navigate to a document and read back its results."""
        url = document_url(base_url, test_root, document)
        log.info("Running %s", document)

        try:
            async with asyncio.timeout(self.options.timeout):
                await driver.navigate_to(str(url))
                payload = await driver.execute_async_script(GET_TEST_RESULTS_ASYNC)
            results = HarnessResults.model_validate(payload)
        except Exception as e:
            log.error("Test document %s failed: %s", document, e, exc_info=e)
            return DocumentRun(path=document, error=e)

        return DocumentRun(path=document, results=results)

    def _publish(self, run: DocumentRun) -> None:
        """Publish the events for a finished document."""
        filename = str(run.path)

        if run.results is None:
            self.stream.suite_finish(filename, TestOutcome.FAIL, run.error)
            return

        for test in run.results.tests:
            self.stream.test_start(test.name, filename)
            self.stream.test_finish(test.name, filename, test.status)
        self.stream.suite_finish(filename, run.results.status)


def run(test_root: Path, options: RunOptions) -> ResultEventStream:
    """Start a test run in the background and return its result stream.

    Must be called from a running event loop. Drain the returned stream to
    follow progress and await its wait_until_done() for the final status.
    """
    stream = ResultEventStream()
    orchestrator = TestOrchestrator(stream=stream, options=options)
    stream.bind_completion(orchestrator.run_tests(test_root))
    return stream

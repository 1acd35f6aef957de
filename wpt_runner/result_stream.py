"""Streaming channel between the test run and result reporters."""

import asyncio
import logging
from collections import deque
from collections.abc import AsyncIterator, Awaitable
from dataclasses import dataclass, field
from enum import Enum

from wpt_runner.models.event import SUITE_NESTING, TEST_NESTING, TestEvent
from wpt_runner.models.outcome import TestOutcome

log = logging.getLogger(__name__)


class StreamClosedError(RuntimeError):
    """Raised when publishing to a stream that has already been closed."""


class StreamState(Enum):
    """Lifecycle of a result stream."""

    OPEN = "open"
    CLOSED = "closed"


@dataclass(kw_only=True)
class _ChannelState:
    """Mutable state owned by a single ResultEventStream."""

    state: StreamState = StreamState.OPEN
    buffer: deque[TestEvent] = field(default_factory=deque)
    pending_read: asyncio.Future[None] | None = None
    has_failures: bool = False
    status: int | None = None
    suite_count: int = 0
    test_count: int = 0


class ResultEventStream:
    """Unbounded producer/consumer channel of TestEvent records.

    Publishing never blocks: events are appended to a buffer. The consumer
    suspends while the stream is open and the buffer is empty, and is woken
    by the next publish or by close. At most one consumer wait is
    outstanding at a time.
    """

    def __init__(self) -> None:
        self._channel = _ChannelState()
        self._iterator: AsyncIterator[TestEvent] | None = None
        self._done: asyncio.Task[None] | None = None

    @property
    def closed(self) -> bool:
        """Whether the stream has been closed."""
        return self._channel.state is StreamState.CLOSED

    @property
    def status(self) -> int:
        """Aggregate run status: 0 when everything passed, 1 otherwise.

        Fixed when the stream closes. Before that it reflects the failures
        published so far.
        """
        if self._channel.status is not None:
            return self._channel.status
        return 1 if self._channel.has_failures else 0

    def publish(self, event: TestEvent) -> None:
        """Append an event and wake a waiting consumer.

        Raises:
            StreamClosedError: If the stream is closed

        """
        if self.closed:
            raise StreamClosedError("Cannot publish to closed stream")

        if event.kind == "fail":
            self._channel.has_failures = True

        self._channel.buffer.append(event)
        self._wake_reader()

    def close(self) -> None:
        """Close the stream, fixing its status. Closing twice is a no-op."""
        if self.closed:
            return

        self._channel.status = 1 if self._channel.has_failures else 0
        self._channel.state = StreamState.CLOSED
        log.debug("Result stream closed with status %d", self._channel.status)
        self._wake_reader()

    def consume(self) -> AsyncIterator[TestEvent]:
        """Return the iterator over published events.

        The same iterator is returned on every call, so once it has been
        drained any later consumption sees an exhausted sequence.
        """
        if self._iterator is None:
            self._iterator = self._drain()
        return self._iterator

    def __aiter__(self) -> AsyncIterator[TestEvent]:
        return self.consume()

    def bind_completion(self, execution: Awaitable[None]) -> asyncio.Task[None]:
        """Run the awaitable as the stream's producer task.

        The stream is closed once the task settles, whether it succeeded,
        failed or was cancelled. A failure is not published as an event; it
        fails the run and is re-raised by wait_until_done().
        """
        if self._done is not None:
            raise RuntimeError("A completion task is already bound to this stream")

        async def _join() -> None:
            try:
                await execution
            except Exception:
                self._channel.has_failures = True
                raise
            finally:
                self.close()

        self._done = asyncio.ensure_future(_join())
        return self._done

    async def cancel(self) -> None:
        """Cancel the bound task and wait for it to settle."""
        if self._done is None:
            return

        self._done.cancel()
        await asyncio.wait([self._done])
        if not self._done.cancelled() and (error := self._done.exception()):
            log.debug("Bound task failed before it could be cancelled: %s", error)

    async def wait_until_done(self) -> int:
        """Wait for the bound task to settle and return the aggregate status."""
        if self._done is not None:
            await self._done
        return self.status

    def suite_start(self, filename: str) -> None:
        """Publish the start of a suite and reset its test numbering."""
        self.publish(
            TestEvent(kind="start", nesting=SUITE_NESTING, name=filename, file=filename)
        )
        self._channel.test_count = 0

    def suite_finish(
        self,
        filename: str,
        outcome: TestOutcome,
        error: BaseException | None = None,
    ) -> None:
        """Publish the plan and the finish event of a suite."""
        self.publish(
            TestEvent(
                kind="plan",
                nesting=SUITE_NESTING,
                name=None,
                file=filename,
                count=self._channel.test_count,
            )
        )
        self.publish(
            TestEvent(
                kind="pass" if outcome.is_passing else "fail",
                nesting=SUITE_NESTING,
                name=filename,
                file=filename,
                skip=outcome.skip_reason,
                test_number=self._channel.suite_count,
                error=error,
                details={"type": "suite"},
            )
        )
        self._channel.suite_count += 1

    def test_start(self, name: str, filename: str) -> None:
        """Publish the start of a sub-test."""
        self.publish(
            TestEvent(kind="start", nesting=TEST_NESTING, name=name, file=filename)
        )

    def test_finish(
        self,
        name: str,
        filename: str,
        outcome: TestOutcome,
        error: BaseException | None = None,
    ) -> None:
        """Publish the outcome of a sub-test."""
        self.publish(
            TestEvent(
                kind="pass" if outcome.is_passing else "fail",
                nesting=TEST_NESTING,
                name=name,
                file=filename,
                skip=outcome.skip_reason,
                test_number=self._channel.test_count,
                error=error,
            )
        )
        self._channel.test_count += 1

    async def _drain(self) -> AsyncIterator[TestEvent]:
        channel = self._channel
        while True:
            while channel.buffer:
                yield channel.buffer.popleft()

            if self.closed:
                return

            channel.pending_read = asyncio.get_running_loop().create_future()
            try:
                await channel.pending_read
            finally:
                channel.pending_read = None

    def _wake_reader(self) -> None:
        pending = self._channel.pending_read
        if pending is not None and not pending.done():
            pending.set_result(None)

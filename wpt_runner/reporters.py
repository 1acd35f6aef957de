"""Reporters that drain a result stream into readable output."""

import json
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping
from typing import TextIO

from wpt_runner.models.event import SUITE_NESTING, TestEvent

type Reporter = Callable[[AsyncIterator[TestEvent], TextIO], Awaitable[None]]

STATUS_SYMBOLS = {
    "pass": "✓",
    "fail": "✗",
}


def format_event(event: TestEvent) -> str | None:
    """Format a finish event as a single line, or None for other events."""
    if not event.is_finish:
        return None

    line = f"{'  ' * event.nesting}{STATUS_SYMBOLS[event.kind]} {event.name}"
    if event.skip:
        line += f" # SKIP {event.skip}"
    if event.error is not None:
        line += f"\n{'  ' * (event.nesting + 1)}{event.error_message}"
    return line


async def spec_reporter(events: AsyncIterator[TestEvent], out: TextIO) -> None:
    """Print one line per finished sub-test and suite, then a summary.

    Sub-test lines are held back and printed under their suite once the
    suite finishes.
    """
    passed = failed = 0
    pending: list[str] = []

    async for event in events:
        if (line := format_event(event)) is None:
            continue

        if event.nesting != SUITE_NESTING:
            pending.append(line)
            continue

        print(line, file=out)
        for test_line in pending:
            print(test_line, file=out)
        pending.clear()

        if event.kind == "pass":
            passed += 1
        else:
            failed += 1

    print(file=out)
    print(f"suites {passed + failed}", file=out)
    print(f"pass {passed}", file=out)
    print(f"fail {failed}", file=out)


async def json_reporter(events: AsyncIterator[TestEvent], out: TextIO) -> None:
    """Print every event as one JSON record per line."""
    async for event in events:
        print(json.dumps(event.to_dict()), file=out, flush=True)


REPORTERS: Mapping[str, Reporter] = {
    "spec": spec_reporter,
    "json": json_reporter,
}

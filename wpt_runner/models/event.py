"""Models for the test events published on a result stream."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Literal

type EventKind = Literal["start", "pass", "fail", "plan"]

SUITE_NESTING = 0
TEST_NESTING = 1


@dataclass(frozen=True, kw_only=True)
class TestEvent:
    """A single record on the result stream.

    Suite-level events use nesting 0 and carry the document path as both name
    and file. Sub-test events use nesting 1. Source positions are not mapped,
    so column and line are always 0.
    """

    __test__ = False

    kind: EventKind
    nesting: int
    name: str | None
    file: str
    column: int = 0
    line: int = 0
    skip: str | None = None
    test_number: int | None = None
    count: int | None = None
    error: BaseException | None = field(default=None, compare=False)
    details: Mapping[str, Any] = field(default_factory=dict)

    @property
    def is_finish(self) -> bool:
        """Whether this event reports the outcome of a suite or sub-test."""
        return self.kind in ("pass", "fail")

    @property
    def error_message(self) -> str | None:
        """Message of the attached error, falling back to its type name."""
        if self.error is None:
            return None
        return str(self.error) or type(self.error).__name__

    def to_dict(self) -> dict[str, Any]:
        """Serialize the event to its external record layout."""
        data: dict[str, Any] = {
            "nesting": self.nesting,
            "file": self.file,
            "column": self.column,
            "line": self.line,
        }
        if self.name is not None:
            data["name"] = self.name
        if self.kind == "plan":
            data["count"] = self.count
        if self.is_finish:
            details = dict(self.details)
            if self.error is not None:
                details["error"] = self.error_message
            data["details"] = details
        if self.skip is not None:
            data["skip"] = self.skip
        if self.test_number is not None:
            data["testNumber"] = self.test_number

        return {"type": f"test:{self.kind}", "data": data}

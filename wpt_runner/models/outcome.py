"""Outcome codes reported by testharness.js pages."""

from enum import IntEnum


class TestOutcome(IntEnum):
    """Result of a suite or sub-test.

    Values follow the testharness.js test status encoding, so pass is 0 and
    everything else is non-zero.
    """

    __test__ = False

    PASS = 0
    FAIL = 1
    TIMEOUT = 2
    NOT_RUN = 3
    PRECONDITION_FAILED = 4

    @property
    def is_passing(self) -> bool:
        """Whether the outcome counts towards a passing run."""
        return self in (TestOutcome.PASS, TestOutcome.PRECONDITION_FAILED)

    @property
    def skip_reason(self) -> str | None:
        """Reason attached to finish events for skip-like outcomes."""
        return SKIP_REASONS.get(self)


SKIP_REASONS = {
    TestOutcome.PRECONDITION_FAILED: "Optional Feature Unsupported",
    TestOutcome.NOT_RUN: "Not Run",
}

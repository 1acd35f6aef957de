"""Models for the results payload read back from a test page."""

from collections.abc import Sequence

from pydantic import BaseModel, ConfigDict, Field

from wpt_runner.models.outcome import TestOutcome


class PagePayload(BaseModel):
    """Base for data returned by a page; unknown fields are dropped."""

    model_config = ConfigDict(frozen=True, extra="ignore")


class SubtestResult(PagePayload):
    """One named assertion reported by the page's test harness."""

    name: str = Field(..., description="Sub-test name as declared in the page")
    status: TestOutcome = Field(..., description="Sub-test outcome code")
    message: str | None = Field(default=None, description="Failure message")


class HarnessResults(PagePayload):
    """Completion payload resolved by window.__testharness__done__."""

    status: TestOutcome = Field(..., description="Overall outcome of the page")
    tests: Sequence[SubtestResult] = Field(
        default_factory=list, description="Sub-tests in the order they ran"
    )

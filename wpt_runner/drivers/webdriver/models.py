"""Pydantic models for W3C WebDriver responses."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class NewSession(BaseModel):
    """Session created by the remote end."""

    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(..., alias="sessionId")
    capabilities: dict[str, Any] = Field(default_factory=dict)


class NewSessionResponse(BaseModel):
    """Response from the new session command."""

    value: NewSession


class CommandResponse(BaseModel):
    """Response from any other successful command."""

    value: Any = None


class ErrorDetail(BaseModel):
    """Error body returned by the remote end."""

    error: str
    message: str = ""
    stacktrace: str = ""


class ErrorResponse(BaseModel):
    """Response carrying a WebDriver error."""

    value: ErrorDetail

"""Error envelope returned by the HTTP layer."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class ErrorBody(BaseModel):
    code: str
    message: str
    details: dict[str, Any] = Field(default_factory=dict)
    trace_id: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class ErrorResponse(BaseModel):
    error: ErrorBody

    model_config = ConfigDict(frozen=True)


__all__ = ["ErrorBody", "ErrorResponse"]

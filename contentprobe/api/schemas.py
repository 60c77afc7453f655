"""contentprobe/api/schemas.py
###############################################################################
Public Pydantic models **exposed by the API layer**.
###############################################################################
The orchestrator produces :class:`~contentprobe.classification.types.
ClassificationOutcome` dataclasses; the models here are the wire contract
built from them.  Keeping the two apart lets the core change its internals
(e.g. the identity ``outcome_id``) without touching the JSON clients see.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from contentprobe.classification.types import ClassificationOutcome

__all__: list[str] = [
    "MagicResult",
    "ClassificationResponse",
    "PingResponse",
    "ErrorResponse",
]


class MagicResult(BaseModel):
    """What the engine said about the content."""

    model_config = ConfigDict(frozen=True)

    mime_type: str = Field(..., description="Detected MIME type, e.g. 'application/pdf'.")
    description: str = Field(..., description="Human-readable engine description.")
    encoding: Optional[str] = Field(
        default=None, description="Character encoding reported by the engine."
    )


class ClassificationResponse(BaseModel):
    """Successful response for both ``/v1/magic`` endpoints."""

    model_config = ConfigDict(frozen=True)

    request_id: str = Field(..., description="Correlation id of the request.")
    filename: str = Field(..., description="Filename supplied by the caller.")
    analyzed_at: datetime = Field(..., description="UTC completion timestamp.")
    result: MagicResult

    @classmethod
    def from_outcome(cls, outcome: ClassificationOutcome) -> "ClassificationResponse":
        return cls(**outcome.dict())


class PingResponse(BaseModel):  # noqa: D101 – tiny data container
    message: str = "pong"
    request_id: str


class _ErrorBody(BaseModel):  # noqa: D101
    code: str | int
    message: str
    request_id: Optional[str] = None


class ErrorResponse(BaseModel):
    """Envelope returned by every error handler (documentation only)."""

    error: _ErrorBody
    detail: Any = None

    @classmethod
    def example(cls, code: str, message: str) -> Dict[str, Any]:
        return {
            "model": cls,
            "content": {
                "application/json": {
                    "example": {
                        "error": {"code": code, "message": message, "request_id": "…"},
                        "detail": message,
                    }
                }
            },
        }

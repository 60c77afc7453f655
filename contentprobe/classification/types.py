from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from contentprobe.core.exceptions import EngineError
from contentprobe.ingestion.validators import ValidatedFilename

__all__: list[str] = [
    "MimeType",
    "EngineVerdict",
    "ClassificationRequest",
    "ClassificationOutcome",
]


@dataclass(frozen=True)
class MimeType:
    """A ``type/subtype`` string with both halves non-empty."""

    value: str

    def __post_init__(self) -> None:
        major, sep, minor = self.value.partition("/")
        if not sep or not major.strip() or not minor.strip():
            raise ValueError(f"Malformed MIME type: {self.value!r}")

    @classmethod
    def from_engine(cls, raw: str, *, resource: Optional[str] = None) -> "MimeType":
        """Wrap engine output, turning a malformed value into an engine failure."""
        try:
            return cls(raw.strip())
        except ValueError as exc:
            raise EngineError(
                "Invalid MIME type returned by engine",
                operation="classify",
                resource=resource,
            ) from exc

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class EngineVerdict:
    """Raw answer from the classification engine for one input."""

    mime_type: MimeType
    description: str
    encoding: Optional[str] = None


@dataclass(frozen=True)
class ClassificationRequest:
    """One inbound classification: either in-memory bytes or a resolved path.

    Attributes:
        correlation_id: Opaque id threaded through logs and the response.
        filename: The caller's filename, already validated.
        content: Bytes to classify (mutually exclusive with *path*).
        path: Sandbox-resolved file to classify (mutually exclusive with *content*).
    """

    correlation_id: str
    filename: ValidatedFilename
    content: Optional[bytes] = None
    path: Optional[Path] = None

    def __post_init__(self) -> None:
        if not isinstance(self.filename, ValidatedFilename):
            raise TypeError("ClassificationRequest requires a ValidatedFilename")
        if (self.content is None) == (self.path is None):
            raise ValueError("Exactly one of content or path must be provided")


@dataclass(eq=False)
class ClassificationOutcome:
    """
    Successful classification result.

    Equality is identity: every outcome gets its own ``outcome_id``, so two
    outcomes compare equal only when they are the same result (and therefore
    share a correlation id), never because their contents match.

    Attributes:
        correlation_id: Id of the request that produced this outcome.
        filename: Filename supplied with the request.
        mime_type: Detected MIME type.
        description: Human-readable description from the engine.
        encoding: Character encoding label, when the engine reports one.
        analyzed_at: UTC timestamp of completion.
    """

    correlation_id: str
    filename: ValidatedFilename
    mime_type: MimeType
    description: str
    encoding: Optional[str] = None
    analyzed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    outcome_id: uuid.UUID = field(default_factory=uuid.uuid4)

    @classmethod
    def from_verdict(
        cls, request: ClassificationRequest, verdict: EngineVerdict
    ) -> "ClassificationOutcome":
        return cls(
            correlation_id=request.correlation_id,
            filename=request.filename,
            mime_type=verdict.mime_type,
            description=verdict.description,
            encoding=verdict.encoding,
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ClassificationOutcome):
            return NotImplemented
        return self.outcome_id == other.outcome_id

    def __hash__(self) -> int:
        return hash(self.outcome_id)

    def dict(self) -> dict[str, Any]:
        """Return a JSON-friendly ``dict`` for the API layer."""
        return {
            "request_id": self.correlation_id,
            "filename": str(self.filename),
            "analyzed_at": self.analyzed_at.isoformat(),
            "result": {
                "mime_type": str(self.mime_type),
                "description": self.description,
                "encoding": self.encoding,
            },
        }

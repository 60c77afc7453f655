from __future__ import annotations

import uuid

import structlog
from fastapi import APIRouter, Depends, Query, Request, status

from contentprobe.api.dependencies import get_classifier
from contentprobe.api.schemas import ClassificationResponse, ErrorResponse
from contentprobe.classification.pipeline import ContentClassifier
from contentprobe.core.config import Settings, get_settings
from contentprobe.core.exceptions import ClassificationError, PayloadTooLargeError
from contentprobe.ingestion.streamers import stream_body
from contentprobe.ingestion.validators import SandboxRelativePath, ValidatedFilename
from contentprobe.utils.auth import verify_credentials

__all__: list[str] = [
    "router",
]

logger = structlog.get_logger(__name__)

router = APIRouter(
    prefix="/v1/magic",
    tags=["Magic"],
    dependencies=[Depends(verify_credentials)],
    responses={
        status.HTTP_400_BAD_REQUEST: ErrorResponse.example(
            "validation", "Filename contains an invalid character"
        ),
        status.HTTP_504_GATEWAY_TIMEOUT: ErrorResponse.example(
            "deadline_exceeded", "Classification did not finish within 30s"
        ),
    },
)

SETTINGS_DEP: Settings = Depends(get_settings)
CLASSIFIER_DEP: ContentClassifier = Depends(get_classifier)
FILENAME_QUERY: str = Query(..., description="Name of the content, echoed back.")
PATH_QUERY: str = Query(..., description="Path relative to the sandbox root.")


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or str(uuid.uuid4())


def _declared_length(request: Request) -> int | None:
    raw = request.headers.get("content-length")
    if raw is None or not raw.strip().isdigit():
        return None
    return int(raw)


@router.post(
    "/content",
    summary="Classify the raw request body.",
    response_model=ClassificationResponse,
    responses={
        status.HTTP_413_REQUEST_ENTITY_TOO_LARGE: ErrorResponse.example(
            "payload_too_large", "Request body exceeds the limit"
        ),
        status.HTTP_507_INSUFFICIENT_STORAGE: ErrorResponse.example(
            "storage_exhausted", "Insufficient storage space"
        ),
    },
)
async def classify_content(
    request: Request,
    filename: str = FILENAME_QUERY,
    settings: Settings = SETTINGS_DEP,
    classifier: ContentClassifier = CLASSIFIER_DEP,
) -> ClassificationResponse:
    """Stream the body into the classifier; large bodies spill to disk."""
    request_id = _request_id(request)
    try:
        validated = ValidatedFilename(filename)

        declared = _declared_length(request)
        if declared is not None and declared > settings.max_body_size_bytes:
            raise PayloadTooLargeError(
                f"Request body exceeds the limit of {settings.max_body_size_bytes} bytes",
                operation="receive",
            )

        chunks = stream_body(
            request.stream(),
            chunk_size=settings.read_chunk_size,
            max_bytes=settings.max_body_size_bytes,
        )
        outcome = await classifier.classify_stream(request_id, validated, chunks)
    except ClassificationError as exc:
        raise exc.with_correlation(request_id)

    return ClassificationResponse.from_outcome(outcome)


@router.post(
    "/path",
    summary="Classify a file inside the sandbox directory.",
    response_model=ClassificationResponse,
    responses={
        status.HTTP_403_FORBIDDEN: ErrorResponse.example(
            "permission_denied", "Permission denied"
        ),
        status.HTTP_404_NOT_FOUND: ErrorResponse.example("not_found", "File not found"),
    },
)
async def classify_path(
    request: Request,
    filename: str = FILENAME_QUERY,
    path: str = PATH_QUERY,
    classifier: ContentClassifier = CLASSIFIER_DEP,
) -> ClassificationResponse:
    """Resolve *path* inside the sandbox and classify the file it names."""
    request_id = _request_id(request)
    try:
        validated = ValidatedFilename(filename)
        relative = SandboxRelativePath(path)
        outcome = await classifier.classify_path(request_id, validated, relative)
    except ClassificationError as exc:
        raise exc.with_correlation(request_id)

    return ClassificationResponse.from_outcome(outcome)

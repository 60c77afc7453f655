from __future__ import annotations

from http import HTTPStatus
from typing import Any, Dict, Final

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from contentprobe.core.exceptions import ClassificationError
from contentprobe.core.logging import REQUEST_ID_HEADER

__all__: list[str] = ["add_exception_handlers", "STATUS_BY_KIND"]

logger = structlog.get_logger("errors")

# Failure kind → HTTP status.  Unknown kinds fall back to 500.
STATUS_BY_KIND: Final[Dict[str, int]] = {
    "validation": status.HTTP_400_BAD_REQUEST,
    "not_found": status.HTTP_404_NOT_FOUND,
    "permission_denied": status.HTTP_403_FORBIDDEN,
    "storage_exhausted": status.HTTP_507_INSUFFICIENT_STORAGE,
    "engine_failure": status.HTTP_500_INTERNAL_SERVER_ERROR,
    "deadline_exceeded": status.HTTP_504_GATEWAY_TIMEOUT,
    "retries_exceeded": status.HTTP_500_INTERNAL_SERVER_ERROR,
    "io_error": status.HTTP_500_INTERNAL_SERVER_ERROR,
    "payload_too_large": status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
}


def _request_id(request: Request) -> str | None:
    """Correlation id bound by `RequestLoggingMiddleware`, else the raw header."""
    return getattr(request.state, "request_id", None) or request.headers.get(
        REQUEST_ID_HEADER
    )


def _build_error_payload(
    code: str | int,
    message: str,
    request_id: str | None = None,
    extra: Dict[str, Any] | None = None,
) -> Dict[str, Any]:
    """Return a JSON-serialisable error envelope.

    Parameters
    ----------
    code:
        A machine-readable error code (snake_case) or HTTP status integer.
    message:
        Human-readable description (English, sentence-cased).
    request_id:
        Correlation ID of the failed request.
    extra:
        Optional additional payload for debugging (e.g. validation details).
    """

    payload: Dict[str, Any] = {
        "error": {
            "code": code,
            "message": message,
            "request_id": request_id,
        },
        "detail": message,
    }
    if extra:
        payload["error"].update(extra)
    return payload


def _jsonable_errors(exc: RequestValidationError) -> list[Dict[str, Any]]:
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]


async def _http_exception_handler(
    request: Request,
    exc: StarletteHTTPException,
) -> JSONResponse:
    """Handle exceptions explicitly raised by the application/routers."""

    logger.warning(
        "http_exception",
        path=request.url.path,
        status_code=exc.status_code,
        detail=str(exc.detail),
    )

    payload = _build_error_payload(
        code=exc.status_code,
        message=str(exc.detail),
        request_id=_request_id(request),
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=payload,
        headers=getattr(exc, "headers", None),
    )


async def _validation_error_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """Missing or malformed query parameters are caller errors (400)."""

    logger.warning(
        "validation_error",
        path=request.url.path,
        errors=exc.errors(),
    )

    payload = _build_error_payload(
        code="validation_error",
        message="Invalid request parameters.",
        request_id=_request_id(request),
        extra={"details": _jsonable_errors(exc)},
    )
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=payload)


async def _classification_error_handler(
    request: Request,
    exc: ClassificationError,
) -> JSONResponse:
    """Translate a typed core failure into its HTTP status, exactly once."""

    status_code = STATUS_BY_KIND.get(exc.kind, HTTPStatus.INTERNAL_SERVER_ERROR)
    log = logger.warning if status_code < 500 else logger.error
    log(
        "classification_failed",
        path=request.url.path,
        kind=exc.kind,
        status_code=int(status_code),
        operation=exc.operation,
        resource=exc.resource,
        error=exc.message,
    )

    payload = _build_error_payload(
        code=exc.kind,
        message=exc.message,
        request_id=exc.correlation_id or _request_id(request),
    )
    return JSONResponse(status_code=int(status_code), content=payload)


async def _unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:  # noqa: D401 – FastAPI handler sig
    """Catch-all for unexpected errors – returns HTTP 500."""

    logger.exception(
        "unhandled_exception",
        path=request.url.path,
        error=str(exc),
    )

    payload = _build_error_payload(
        code="internal_server_error",
        message="An unexpected error occurred.",
        request_id=_request_id(request),
    )
    return JSONResponse(
        status_code=HTTPStatus.INTERNAL_SERVER_ERROR,  # 500
        content=payload,
    )


def add_exception_handlers(app: FastAPI) -> None:  # noqa: D401 – imperative
    """Register all global exception handlers on **app**."""

    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(ClassificationError, _classification_error_handler)
    app.add_exception_handler(Exception, _unhandled_exception_handler)

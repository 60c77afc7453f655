from __future__ import annotations

import logging
import sys
import time
import uuid
from typing import Any, Awaitable, Callable, Optional

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response
from structlog.types import Processor

__all__: list[str] = [
    "configure_logging",
    "RequestLoggingMiddleware",
    "REQUEST_ID_HEADER",
]

REQUEST_ID_HEADER = "X-Request-ID"


def _ensure_request_context(
    logger: Any,
    method_name: str,
    event_dict: structlog.types.EventDict,
) -> structlog.types.EventDict:
    """Give classification events emitted outside a request the same key set."""

    event_dict.setdefault("request_id", None)
    event_dict.setdefault("user", None)
    event_dict.setdefault("path", None)
    return event_dict


_JSON_PROCESSORS: list[Processor] = [
    structlog.contextvars.merge_contextvars,
    _ensure_request_context,
    structlog.processors.add_log_level,
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.format_exc_info,
    structlog.processors.JSONRenderer(),
]


def _configure_stdlib_logging(level: int) -> None:
    """Send uvicorn and starlette records to *stderr*, bypassing structlog."""

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(message)s"))

    # __main__ starts uvicorn with log_config=None, so this is its only handler.
    root_logger.handlers.clear()
    root_logger.addHandler(handler)


_LOGGING_CONFIGURED: bool = False


def configure_logging(debug: bool = False) -> None:
    """Install the JSON processor chain used by every contentprobe logger.

    Only the first call has an effect.

    Parameters
    ----------
    debug:
        When *True* lowers the log level to ``DEBUG``; otherwise ``INFO``.
    """

    global _LOGGING_CONFIGURED

    if _LOGGING_CONFIGURED:
        return

    level: int = logging.DEBUG if debug else logging.INFO

    _configure_stdlib_logging(level)

    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(level),
        processors=_JSON_PROCESSORS,
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    _LOGGING_CONFIGURED = True


def _new_request_id() -> str:
    return str(uuid.uuid4())


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Bind a correlation id to every request and log its latency.

    The id comes from the ``X-Request-ID`` header when the caller supplied a
    non-blank one, otherwise a fresh UUID4 is generated.  It is stored on
    ``request.state.request_id`` for route handlers, bound into structlog's
    contextvars for every downstream log line, and echoed on the response.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        start: float = time.perf_counter()
        supplied: str = (request.headers.get(REQUEST_ID_HEADER) or "").strip()
        request_id: str = supplied or _new_request_id()
        request.state.request_id = request_id

        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            path=request.url.path,
            method=request.method,
        )

        response: Optional[Response] = None
        try:
            response = await call_next(request)
        finally:
            duration_ms: float = (time.perf_counter() - start) * 1000
            logger = structlog.get_logger("http")
            logger.info(
                "request_completed",
                status_code=response.status_code if response is not None else 500,
                duration_ms=round(duration_ms, 2),
                user=getattr(request.state, "user", None),
            )
            structlog.contextvars.clear_contextvars()

        response.headers[REQUEST_ID_HEADER] = request_id
        return response

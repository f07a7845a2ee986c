"""Translation of core errors to HTTP responses."""

import uuid
from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse

from streamcore.config import get_settings
from streamcore.logging_config import get_logger
from streamcore.utils.errors import ErrorCode, EventCoreError

logger = get_logger(__name__)

# Anything not listed is a business-rule conflict (409)
STATUS_BY_CODE: dict[str, int] = {
    ErrorCode.NOT_FOUND.value: status.HTTP_404_NOT_FOUND,
    ErrorCode.REQUIREMENT_NOT_MET.value: status.HTTP_403_FORBIDDEN,
    ErrorCode.INVALID_ENTRY.value: status.HTTP_400_BAD_REQUEST,
    ErrorCode.EVENT_ENDED.value: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_WINNER.value: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCode.INVALID_PAYOUT.value: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCode.STORAGE_UNAVAILABLE.value: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.LOCK_UNAVAILABLE.value: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.BRACKET_INTEGRITY.value: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def status_for(error: EventCoreError) -> int:
    return STATUS_BY_CODE.get(error.code, status.HTTP_409_CONFLICT)


def get_request_id(request: Request) -> str:
    """Get request ID from request state or headers."""
    if hasattr(request.state, "request_id"):
        return request.state.request_id
    return request.headers.get("X-Request-ID", str(uuid.uuid4()))


def create_error_response(
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
    trace_id: str | None = None,
) -> dict[str, Any]:
    """Create standardized error response."""
    return {
        "error": {
            "code": code,
            "message": message,
            "details": details or {},
        },
        "traceId": trace_id,
    }


async def event_core_error_handler(request: Request, exc: EventCoreError) -> JSONResponse:
    """Handle live-event errors."""
    trace_id = get_request_id(request)
    status_code = status_for(exc)

    if status_code >= 500 and exc.code != ErrorCode.STORAGE_UNAVAILABLE.value:
        logger.error("event_core_error", code=exc.code, message=exc.message, trace_id=trace_id)
    else:
        logger.info("event_core_rejected", code=exc.code, message=exc.message, trace_id=trace_id)

    return JSONResponse(
        status_code=status_code,
        content=create_error_response(
            code=exc.code,
            message=exc.message,
            details=exc.details,
            trace_id=trace_id,
        ),
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle HTTP exceptions."""
    trace_id = get_request_id(request)

    # Check if detail is already formatted
    if isinstance(exc.detail, dict) and "error" in exc.detail:
        content = dict(exc.detail)
        content["traceId"] = trace_id
    else:
        content = create_error_response(
            code="HTTP_ERROR",
            message=str(exc.detail),
            trace_id=trace_id,
        )

    return JSONResponse(
        status_code=exc.status_code,
        content=content,
        headers=getattr(exc, "headers", None),
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    trace_id = get_request_id(request)
    logger.error(
        "unexpected_error",
        error_type=type(exc).__name__,
        error_message=str(exc),
        trace_id=trace_id,
        exc_info=True,
    )

    # Don't expose internal error details in production
    message = "Internal server error"
    if get_settings().app_debug:
        message = f"{type(exc).__name__}: {exc}"

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=create_error_response(
            code="INTERNAL_ERROR",
            message=message,
            trace_id=trace_id,
        ),
    )

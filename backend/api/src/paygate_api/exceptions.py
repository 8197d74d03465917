"""FastAPI exception handlers for converting PaygateError to HTTP responses.

The ErrorCode-to-HTTP status mapping:
- 400 Bad Request: unreadable bodies, failed signature checks, invalid
  session requests and requests the payment provider rejected
- 409 Conflict: the event is being processed by another worker
- 500 Internal Server Error: handler failures and misconfiguration
- 502 Bad Gateway: the payment provider failed or was unreachable

Usage:
    from paygate_api.exceptions import register_exception_handlers
    register_exception_handlers(app)
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_409_CONFLICT,
    HTTP_500_INTERNAL_SERVER_ERROR,
    HTTP_502_BAD_GATEWAY,
)

from paygate.models.errors import ErrorCode, PaygateError
from paygate.utils.logging import get_logger

logger = get_logger(__name__)

# Map ErrorCode to HTTP status codes
ERROR_CODE_TO_HTTP_STATUS: dict[ErrorCode, int] = {
    # Request body errors -> 400 Bad Request
    ErrorCode.BODY_READ_FAILED: HTTP_400_BAD_REQUEST,
    ErrorCode.BODY_TOO_LARGE: HTTP_400_BAD_REQUEST,
    # Verification errors -> 400 Bad Request
    ErrorCode.MISSING_SIGNATURE_HEADER: HTTP_400_BAD_REQUEST,
    ErrorCode.MALFORMED_SIGNATURE_HEADER: HTTP_400_BAD_REQUEST,
    ErrorCode.NO_MATCHING_SECRET: HTTP_400_BAD_REQUEST,
    ErrorCode.TIMESTAMP_OUT_OF_TOLERANCE: HTTP_400_BAD_REQUEST,
    ErrorCode.MALFORMED_PAYLOAD: HTTP_400_BAD_REQUEST,
    # Dispatch errors
    ErrorCode.EVENT_IN_PROGRESS: HTTP_409_CONFLICT,
    ErrorCode.HANDLER_FAILED: HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.UNHANDLED_EVENT_TYPE: HTTP_500_INTERNAL_SERVER_ERROR,
    # Session errors
    ErrorCode.INVALID_SESSION_REQUEST: HTTP_400_BAD_REQUEST,
    ErrorCode.REMOTE_CLIENT_ERROR: HTTP_400_BAD_REQUEST,
    ErrorCode.REMOTE_PROVIDER_ERROR: HTTP_502_BAD_GATEWAY,
    # Misconfiguration -> 500 (server-side issue)
    ErrorCode.CONFIGURATION_ERROR: HTTP_500_INTERNAL_SERVER_ERROR,
}


def get_http_status_for_error(code: ErrorCode) -> int:
    """Get HTTP status code for an ErrorCode, defaulting to 400."""
    return ERROR_CODE_TO_HTTP_STATUS.get(code, HTTP_400_BAD_REQUEST)


async def paygate_error_handler(request: Request, exc: PaygateError) -> JSONResponse:
    """Convert a PaygateError to {message, error_code, details}."""
    status_code = get_http_status_for_error(exc.code)
    if status_code >= HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.warning("%s %s rejected: %s", request.method, request.url.path, exc.message)

    return JSONResponse(
        status_code=status_code,
        content=exc.to_response().model_dump(mode="json"),
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render framework HTTP errors (404, 405...) as {message}."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.detail},
        headers=exc.headers,
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions without exposing internal details."""
    logger.exception("Unhandled exception: %s", exc)

    return JSONResponse(
        status_code=HTTP_500_INTERNAL_SERVER_ERROR,
        content={"message": "An unexpected error occurred", "error_code": "ERR_INTERNAL"},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI app.

    Args:
        app: The FastAPI application instance.
    """
    app.add_exception_handler(PaygateError, paygate_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, generic_exception_handler)

"""
Error taxonomy for the chat relay and the FastAPI handlers that render it.

Every user-visible failure is a JSON body of the form
``{"error": <short tag>, "message": <human readable text>}``.
"""
import logging
from typing import Optional

from fastapi import Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class RelayError(Exception):
    """Base exception for failures that terminate a relay request."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error = "Internal server error"

    def __init__(self, message: str, status_code: Optional[int] = None, error: Optional[str] = None):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if error is not None:
            self.error = error
        super().__init__(self.message)


class BadRequestError(RelayError):
    """Malformed or incomplete request body."""

    status_code = status.HTTP_400_BAD_REQUEST
    error = "Bad request"


class MethodNotAllowedError(RelayError):
    status_code = status.HTTP_405_METHOD_NOT_ALLOWED
    error = "Method not allowed"

    def __init__(self, method: str):
        super().__init__(f"{method} is not supported on this endpoint. Use POST.")


class ConfigurationError(RelayError):
    """A required secret is missing from the environment."""

    error = "Server configuration error"


class UpstreamError(RelayError):
    """The inference provider answered with a non-success status.

    The upstream status code and body text are relayed to the caller as-is.
    """

    error = "API request failed"

    def __init__(self, status_code: int, body: str):
        super().__init__(body, status_code=status_code)


async def relay_error_handler(request: Request, exc: RelayError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{exc.error}: {exc.message} ({request.method} {request.url.path})")
    else:
        logger.warning(f"{exc.error}: {exc.message} ({request.method} {request.url.path})")
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.error, "message": exc.message},
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Server error: {exc!r}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error", "message": str(exc)},
    )

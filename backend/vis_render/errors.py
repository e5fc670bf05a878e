"""Error taxonomy and failure-envelope helpers for the render service."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from vis_render.observability import request_log_fields

logger = logging.getLogger(__name__)

NOT_FOUND_MESSAGE = "Not found"
INTERNAL_ERROR_MESSAGE = "Internal server error"


class RenderServiceError(Exception):
    """Domain error mapped to the uniform ``{success: false}`` envelope."""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(RenderServiceError):
    """The request body is malformed or incomplete."""

    status_code = 400
    code = "VALIDATION_ERROR"


class PayloadTooLargeError(RenderServiceError):
    """The request body exceeds the configured size limit."""

    status_code = 413
    code = "PAYLOAD_TOO_LARGE"


class RenderError(RenderServiceError):
    """The rendering engine failed to produce an image."""

    code = "RENDER_ERROR"


class StorageError(RenderServiceError):
    """A rendered image could not be persisted."""

    code = "STORAGE_ERROR"


class InternalError(RenderServiceError):
    """Fallback for failures nobody anticipated."""

    code = "INTERNAL_ERROR"

    @classmethod
    def from_exception(cls, exc: BaseException) -> InternalError:
        message = str(exc).strip() or INTERNAL_ERROR_MESSAGE
        return cls(message)


def failure_body(message: str) -> dict[str, Any]:
    """Build the canonical failure payload."""
    return {"success": False, "errorMessage": message}


def failure_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=failure_body(message))


async def render_service_error_handler(request: Request, exc: RenderServiceError) -> JSONResponse:
    """Convert domain exceptions into failure envelopes."""
    return failure_response(exc.status_code, exc.message)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Unknown routes and unsupported methods share the not-found body."""
    if exc.status_code in (404, 405):
        return failure_response(404, NOT_FOUND_MESSAGE)
    return failure_response(exc.status_code, str(exc.detail))


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback handler preserving the failure envelope."""
    logger.exception(
        "Unhandled exception for request %s",
        request.url.path,
        extra=request_log_fields(
            request=request,
            component="api",
            operation="request_failed_unhandled",
        ),
    )
    return failure_response(500, INTERNAL_ERROR_MESSAGE)

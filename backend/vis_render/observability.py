"""Structured logging helpers for render service runtime logs."""

from __future__ import annotations

import logging
import sys
from uuid import uuid4

from fastapi import Request

_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str | int = logging.INFO) -> None:
    """Install a single console handler on the root logger."""
    root = logging.getLogger()
    root.setLevel(level.upper() if isinstance(level, str) else level)
    for handler in list(root.handlers):
        if getattr(handler, "_vis_render_handler", False):
            root.removeHandler(handler)
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    handler._vis_render_handler = True  # type: ignore[attr-defined]
    root.addHandler(handler)


def new_request_id() -> str:
    return f"req-{uuid4()}"


def request_id_for(request: Request) -> str:
    state_request_id = getattr(request.state, "request_id", None)
    if isinstance(state_request_id, str) and state_request_id.strip():
        return state_request_id
    header = request.headers.get("X-Request-Id")
    if isinstance(header, str) and header.strip():
        return header
    return "req-unknown"


def log_fields(
    *,
    request_id: str,
    component: str,
    operation: str,
    status_code: int | None = None,
    **details: object,
) -> dict[str, object]:
    fields: dict[str, object] = {
        "requestId": request_id,
        "component": component,
        "operation": operation,
    }
    if status_code is not None:
        fields["statusCode"] = status_code
    for key, value in details.items():
        if value is None:
            continue
        fields[key] = value
    return fields


def request_log_fields(
    *,
    request: Request,
    component: str,
    operation: str,
    status_code: int | None = None,
    **details: object,
) -> dict[str, object]:
    return log_fields(
        request_id=request_id_for(request),
        component=component,
        operation=operation,
        status_code=status_code,
        resourceType="request",
        resourceId=request.url.path,
        **details,
    )


def log_event(
    logger: logging.Logger,
    *,
    level: int,
    message: str,
    request_id: str,
    component: str,
    operation: str,
    status_code: int | None = None,
    **details: object,
) -> None:
    logger.log(
        level,
        message,
        extra=log_fields(
            request_id=request_id,
            component=component,
            operation=operation,
            status_code=status_code,
            **details,
        ),
    )


def log_request_event(
    logger: logging.Logger,
    *,
    level: int,
    message: str,
    request: Request,
    component: str,
    operation: str,
    status_code: int | None = None,
    **details: object,
) -> None:
    logger.log(
        level,
        message,
        extra=request_log_fields(
            request=request,
            component=component,
            operation=operation,
            status_code=status_code,
            **details,
        ),
    )

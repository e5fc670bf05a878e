"""Request handler for chart render requests."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import time
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError as PydanticValidationError
from starlette.concurrency import run_in_threadpool

from vis_render.engine.ports import RenderedChart, RenderEnginePort
from vis_render.errors import (
    InternalError,
    RenderError,
    RenderServiceError,
    ValidationError,
)
from vis_render.observability import log_event
from vis_render.schemas import RenderRequest, RenderResponse
from vis_render.services.delivery import DeliveryStrategy

logger = logging.getLogger(__name__)

MISSING_TYPE_MESSAGE = "Missing required parameter: type"
INVALID_JSON_MESSAGE = "Invalid JSON body"


@dataclass(frozen=True)
class RenderOutcome:
    """HTTP status plus response envelope for one render request."""

    status_code: int
    response: RenderResponse


@contextlib.contextmanager
def rendered_chart(engine: RenderEnginePort, options: Mapping[str, Any]) -> Iterator[RenderedChart]:
    """Render a chart and destroy it when the block exits, however it exits."""
    chart = engine.render(options)
    try:
        yield chart
    finally:
        chart.destroy()


def parse_render_request(body: bytes) -> RenderRequest:
    """Decode and validate a raw ``/render`` body."""
    try:
        payload = json.loads(body) if body.strip() else None
    except (UnicodeDecodeError, json.JSONDecodeError, RecursionError) as exc:
        raise ValidationError(INVALID_JSON_MESSAGE) from exc
    if not isinstance(payload, dict):
        raise ValidationError(MISSING_TYPE_MESSAGE)
    chart_type = payload.get("type")
    if not isinstance(chart_type, str) or chart_type.strip() == "":
        raise ValidationError(MISSING_TYPE_MESSAGE)
    try:
        return RenderRequest.model_validate(payload)
    except PydanticValidationError as exc:
        raise ValidationError(MISSING_TYPE_MESSAGE) from exc


class RenderService:
    """Validates, renders, delivers, and reports one chart per call."""

    def __init__(
        self,
        *,
        engine: RenderEnginePort,
        delivery: DeliveryStrategy,
        max_concurrent_renders: int = 0,
    ) -> None:
        self._engine = engine
        self._delivery = delivery
        self._render_slots = asyncio.Semaphore(max_concurrent_renders) if max_concurrent_renders > 0 else None

    def _render_buffer(self, options: Mapping[str, Any]) -> bytes:
        try:
            with rendered_chart(self._engine, options) as chart:
                return chart.to_buffer()
        except Exception as exc:
            raise RenderError(str(exc).strip() or "Chart rendering failed") from exc

    async def _invoke_engine(self, options: Mapping[str, Any]) -> bytes:
        slot = self._render_slots if self._render_slots is not None else contextlib.nullcontext()
        async with slot:
            return await run_in_threadpool(self._render_buffer, options)

    async def handle(self, body: bytes, *, request_id: str) -> RenderOutcome:
        """Turn a raw request body into a render outcome; never raises."""
        started = time.perf_counter()
        chart_type: str | None = None
        try:
            request = parse_render_request(body)
            chart_type = request.type
            log_event(
                logger,
                level=logging.INFO,
                message=f"Rendering chart: {chart_type}",
                request_id=request_id,
                component="render",
                operation="render_started",
                chartType=chart_type,
            )
            buffer = await self._invoke_engine(request.to_engine_options())
            result = await self._delivery.deliver(buffer)
        except Exception as exc:
            error = exc if isinstance(exc, RenderServiceError) else InternalError.from_exception(exc)
            duration_ms = int((time.perf_counter() - started) * 1000)
            log_event(
                logger,
                level=logging.WARNING if isinstance(error, ValidationError) else logging.ERROR,
                message=f"Error rendering chart after {duration_ms}ms: {error.message}",
                request_id=request_id,
                component="render",
                operation="render_failed",
                status_code=error.status_code,
                chartType=chart_type,
                durationMs=duration_ms,
                outcome="failure",
                errorCode=error.code,
            )
            return RenderOutcome(
                status_code=error.status_code,
                response=RenderResponse(success=False, error_message=error.message),
            )

        duration_ms = int((time.perf_counter() - started) * 1000)
        log_event(
            logger,
            level=logging.INFO,
            message=f"Chart rendered successfully in {duration_ms}ms",
            request_id=request_id,
            component="render",
            operation="render_completed",
            status_code=200,
            chartType=chart_type,
            durationMs=duration_ms,
            outcome="success",
            deliveryMode=result.kind,
        )
        return RenderOutcome(
            status_code=200,
            response=RenderResponse(success=True, result_obj=result.result_obj),
        )

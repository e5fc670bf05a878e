"""Contract tests for the render request handler."""

from __future__ import annotations

import asyncio
import json
import threading
import time
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import pytest

from vis_render.config import DeliveryMode
from vis_render.errors import StorageError, ValidationError
from vis_render.schemas import DeliveryResult, InlineEncoded
from vis_render.services.delivery import InlineDelivery, StoredDelivery
from vis_render.services.render_service import RenderService, parse_render_request
from vis_render.store import FileArtifactStore


class _FakeChart:
    def __init__(self, payload: bytes, *, buffer_error: Exception | None = None) -> None:
        self.payload = payload
        self.buffer_error = buffer_error
        self.destroy_calls = 0

    def to_buffer(self) -> bytes:
        if self.buffer_error is not None:
            raise self.buffer_error
        return self.payload

    def destroy(self) -> None:
        self.destroy_calls += 1


class _FakeEngine:
    def __init__(self, *, buffer_error: Exception | None = None, delay: float = 0.0) -> None:
        self.buffer_error = buffer_error
        self.delay = delay
        self.charts: list[_FakeChart] = []
        self._lock = threading.Lock()
        self._active = 0
        self.max_active = 0

    def render(self, options: Mapping[str, Any]) -> _FakeChart:
        with self._lock:
            self._active += 1
            self.max_active = max(self.max_active, self._active)
        try:
            if self.delay:
                time.sleep(self.delay)
            chart = _FakeChart(json.dumps(dict(options), sort_keys=True).encode(), buffer_error=self.buffer_error)
            with self._lock:
                self.charts.append(chart)
            return chart
        finally:
            with self._lock:
                self._active -= 1


class _FailingDelivery:
    mode = DeliveryMode.INLINE

    def __init__(self, error: Exception) -> None:
        self.error = error

    async def deliver(self, buffer: bytes) -> DeliveryResult:
        raise self.error


def _body(payload: object) -> bytes:
    return json.dumps(payload).encode()


def _handle(service: RenderService, payload: object) -> Any:
    return asyncio.run(service.handle(_body(payload), request_id="req-test"))


def test_success_releases_chart_exactly_once() -> None:
    engine = _FakeEngine()
    service = RenderService(engine=engine, delivery=InlineDelivery())

    outcome = _handle(service, {"type": "pie", "data": []})

    assert outcome.status_code == 200
    assert outcome.response.success is True
    assert [chart.destroy_calls for chart in engine.charts] == [1]


def test_delivery_failure_still_releases_chart() -> None:
    engine = _FakeEngine()
    service = RenderService(engine=engine, delivery=_FailingDelivery(StorageError("disk full")))

    outcome = _handle(service, {"type": "line"})

    assert outcome.status_code == 500
    assert outcome.response.error_message == "disk full"
    assert [chart.destroy_calls for chart in engine.charts] == [1]


def test_buffer_failure_releases_chart_and_reports_render_error() -> None:
    engine = _FakeEngine(buffer_error=RuntimeError("canvas gone"))
    service = RenderService(engine=engine, delivery=InlineDelivery())

    outcome = _handle(service, {"type": "line"})

    assert outcome.status_code == 500
    assert outcome.response.to_wire() == {"success": False, "errorMessage": "canvas gone"}
    assert [chart.destroy_calls for chart in engine.charts] == [1]


def test_unexpected_failure_keeps_its_message() -> None:
    service = RenderService(engine=_FakeEngine(), delivery=_FailingDelivery(KeyError("slot")))
    outcome = _handle(service, {"type": "line"})
    assert outcome.status_code == 500
    assert outcome.response.error_message == "'slot'"


def test_unexpected_failure_without_message_uses_generic_text() -> None:
    service = RenderService(engine=_FakeEngine(), delivery=_FailingDelivery(ValueError()))
    outcome = _handle(service, {"type": "line"})
    assert outcome.status_code == 500
    assert outcome.response.error_message == "Internal server error"


def test_handler_never_raises_on_garbage() -> None:
    service = RenderService(engine=_FakeEngine(), delivery=InlineDelivery())
    outcome = asyncio.run(service.handle(b"\xff\xfe\x00", request_id="req-test"))
    assert outcome.status_code == 400
    assert outcome.response.success is False


@pytest.mark.parametrize("payload", [None, [], "line", {}, {"type": ""}, {"type": False}])
def test_parse_render_request_rejects_missing_type(payload: object) -> None:
    with pytest.raises(ValidationError) as exc_info:
        parse_render_request(_body(payload))
    assert exc_info.value.status_code == 400


def test_parse_render_request_keeps_extra_fields() -> None:
    request = parse_render_request(_body({"type": "area", "stack": True, "data": [{"time": 1}]}))
    assert request.to_engine_options() == {"type": "area", "stack": True, "data": [{"time": 1}]}


def test_inline_delivery_result_is_tagged() -> None:
    result = asyncio.run(InlineDelivery().deliver(b"abc"))
    assert isinstance(result, InlineEncoded)
    assert result.kind == "inline"
    assert result.result_obj == "data:image/png;base64,YWJj"


def test_concurrent_stored_renders_keep_their_own_bytes(tmp_path: Path) -> None:
    store = FileArtifactStore(directory=tmp_path, base_url="http://localhost:3000", url_prefix="/images")
    service = RenderService(engine=_FakeEngine(delay=0.01), delivery=StoredDelivery(store))

    async def _run() -> list[Any]:
        return await asyncio.gather(
            *(service.handle(_body({"type": "line", "seq": index}), request_id=f"req-{index}") for index in range(16))
        )

    outcomes = asyncio.run(_run())

    urls = [outcome.response.result_obj for outcome in outcomes]
    assert len(set(urls)) == 16
    for index, url in enumerate(urls):
        filename = url.rsplit("/", 1)[-1]
        stored = json.loads((tmp_path / filename).read_bytes())
        assert stored == {"type": "line", "seq": index}


def test_render_concurrency_cap_serialises_engine_calls() -> None:
    engine = _FakeEngine(delay=0.02)
    service = RenderService(engine=engine, delivery=InlineDelivery(), max_concurrent_renders=1)

    async def _run() -> None:
        await asyncio.gather(*(service.handle(_body({"type": "line"}), request_id="req-cap") for _ in range(4)))

    asyncio.run(_run())

    assert len(engine.charts) == 4
    assert engine.max_active == 1

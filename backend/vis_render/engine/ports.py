"""Rendering engine boundary consumed by the request handler."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol


class ChartSpecError(ValueError):
    """Raised by an engine when a chart description cannot be drawn."""


class RenderedChart(Protocol):
    """Engine-side result of one render call.

    ``destroy`` releases whatever the engine holds for the chart and must be
    called once the buffer has been taken, whatever happens next.
    """

    def to_buffer(self) -> bytes:
        ...

    def destroy(self) -> None:
        ...


class RenderEnginePort(Protocol):
    """Render boundary: chart options in, rendered chart out."""

    def render(self, options: Mapping[str, Any]) -> RenderedChart:
        ...


__all__ = [
    "ChartSpecError",
    "RenderEnginePort",
    "RenderedChart",
]

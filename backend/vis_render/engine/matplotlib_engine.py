"""Matplotlib binding for the rendering engine port."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from io import BytesIO
from typing import Any

from matplotlib.backends.backend_agg import FigureCanvasAgg
from matplotlib.figure import Figure

from vis_render.engine.charts import CHART_DRAWERS, ChartDrawer, supported_chart_types
from vis_render.engine.ports import ChartSpecError, RenderEnginePort

logger = logging.getLogger(__name__)

_MAX_DIMENSION_PX = 4096


def _dimension(options: Mapping[str, Any], key: str, default: int) -> int:
    value = options.get(key)
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ChartSpecError(f"{key} must be a number.")
    if not 0 < value <= _MAX_DIMENSION_PX:
        raise ChartSpecError(f"{key} must be between 1 and {_MAX_DIMENSION_PX}.")
    return int(value)


class MatplotlibRenderedChart:
    """One rendered figure; owns the figure until destroyed."""

    def __init__(self, figure: Figure) -> None:
        self._figure: Figure | None = figure

    @property
    def destroyed(self) -> bool:
        return self._figure is None

    def to_buffer(self) -> bytes:
        if self._figure is None:
            raise RuntimeError("Rendered chart has already been destroyed.")
        buf = BytesIO()
        self._figure.savefig(buf, format="png")
        png_data = buf.getvalue()
        buf.close()
        return png_data

    def destroy(self) -> None:
        if self._figure is None:
            return
        self._figure.clear()
        self._figure = None


class MatplotlibRenderEngine(RenderEnginePort):
    """Draws each chart on its own figure, so calls never share state."""

    def __init__(self, *, width: int = 600, height: int = 400, dpi: int = 100) -> None:
        self._width = width
        self._height = height
        self._dpi = dpi

    def render(self, options: Mapping[str, Any]) -> MatplotlibRenderedChart:
        chart_type = options.get("type")
        drawer: ChartDrawer | None = CHART_DRAWERS.get(chart_type) if isinstance(chart_type, str) else None
        if drawer is None:
            raise ChartSpecError(
                f"Unsupported chart type: {chart_type!r}. "
                f"Supported types: {', '.join(supported_chart_types())}."
            )

        width = _dimension(options, "width", self._width)
        height = _dimension(options, "height", self._height)
        fig = Figure(figsize=(width / self._dpi, height / self._dpi), dpi=self._dpi)
        FigureCanvasAgg(fig)
        try:
            drawer(fig, options)
            fig.tight_layout()
        except Exception:
            fig.clear()
            raise
        logger.debug("Drew %s chart at %dx%d", chart_type, width, height)
        return MatplotlibRenderedChart(fig)

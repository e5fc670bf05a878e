"""Rendering engine ports and the matplotlib binding."""

from vis_render.engine.matplotlib_engine import MatplotlibRenderEngine, MatplotlibRenderedChart
from vis_render.engine.ports import ChartSpecError, RenderedChart, RenderEnginePort

__all__ = [
    "ChartSpecError",
    "MatplotlibRenderEngine",
    "MatplotlibRenderedChart",
    "RenderEnginePort",
    "RenderedChart",
]

"""Chart drawers for the matplotlib engine.

Each drawer receives a fresh figure and the chart options posted by the
caller, and draws one chart type. Data items follow the GPT-Vis shapes, e.g.
``{"time": "2020", "value": 1}`` for line charts.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from matplotlib.axes import Axes
from matplotlib.figure import Figure

from vis_render.engine.ports import ChartSpecError

ChartDrawer = Callable[[Figure, Mapping[str, Any]], None]

_DEFAULT_GROUP = ""


def _data_items(options: Mapping[str, Any]) -> list[Mapping[str, Any]]:
    data = options.get("data")
    if not isinstance(data, Sequence) or isinstance(data, (str, bytes, bytearray)):
        raise ChartSpecError("data must be a list of items.")
    if not data:
        raise ChartSpecError("data must not be empty.")
    items: list[Mapping[str, Any]] = []
    for index, item in enumerate(data):
        if not isinstance(item, Mapping):
            raise ChartSpecError(f"data[{index}] must be an object.")
        items.append(item)
    return items


def _number(value: object, *, field: str, index: int) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ChartSpecError(f"data[{index}].{field} must be a number.")
    number = float(value)
    if not math.isfinite(number):
        raise ChartSpecError(f"data[{index}].{field} must be finite.")
    return number


def _label(item: Mapping[str, Any], *, field: str, index: int) -> str:
    value = item.get(field)
    if value is None or isinstance(value, (Mapping, list)):
        raise ChartSpecError(f"data[{index}].{field} is required.")
    return str(value)


def _grouped_series(
    items: Sequence[Mapping[str, Any]], *, key_field: str
) -> tuple[list[str], dict[str, dict[str, float]]]:
    """Split items into per-group series keyed by ``key_field``.

    Keys and groups keep first-seen order.
    """
    keys: list[str] = []
    series: dict[str, dict[str, float]] = {}
    for index, item in enumerate(items):
        key = _label(item, field=key_field, index=index)
        value = _number(item.get("value"), field="value", index=index)
        group = item.get("group")
        group_name = _DEFAULT_GROUP if group is None else str(group)
        if key not in keys:
            keys.append(key)
        series.setdefault(group_name, {})[key] = value
    return keys, series


def _apply_titles(ax: Axes, options: Mapping[str, Any]) -> None:
    if title := options.get("title"):
        ax.set_title(str(title))
    if x_title := options.get("axisXTitle"):
        ax.set_xlabel(str(x_title))
    if y_title := options.get("axisYTitle"):
        ax.set_ylabel(str(y_title))


def _maybe_legend(ax: Axes, series: Mapping[str, object]) -> None:
    if len(series) > 1 or _DEFAULT_GROUP not in series:
        ax.legend()


def draw_line(fig: Figure, options: Mapping[str, Any]) -> None:
    ax = fig.add_subplot(111)
    keys, series = _grouped_series(_data_items(options), key_field="time")
    positions = list(range(len(keys)))
    for group, values in series.items():
        xs = [positions[keys.index(key)] for key in values]
        ax.plot(xs, list(values.values()), marker="o", label=group or None)
    ax.set_xticks(positions, keys)
    _apply_titles(ax, options)
    _maybe_legend(ax, series)


def draw_area(fig: Figure, options: Mapping[str, Any]) -> None:
    ax = fig.add_subplot(111)
    keys, series = _grouped_series(_data_items(options), key_field="time")
    positions = list(range(len(keys)))
    rows = [[values.get(key, 0.0) for key in keys] for values in series.values()]
    labels = [group or None for group in series]
    if options.get("stack") and len(rows) > 1:
        ax.stackplot(positions, rows, labels=labels, alpha=0.8)
    else:
        for row, label in zip(rows, labels):
            ax.fill_between(positions, row, alpha=0.4, label=label)
            ax.plot(positions, row)
    ax.set_xticks(positions, keys)
    _apply_titles(ax, options)
    _maybe_legend(ax, series)


def _draw_bars(fig: Figure, options: Mapping[str, Any], *, horizontal: bool) -> None:
    ax = fig.add_subplot(111)
    keys, series = _grouped_series(_data_items(options), key_field="category")
    positions = list(range(len(keys)))
    stacked = bool(options.get("stack"))
    group_count = len(series)
    width = 0.8 if stacked else 0.8 / group_count
    offsets = [0.0] * len(keys)
    for group_index, (group, values) in enumerate(series.items()):
        heights = [values.get(key, 0.0) for key in keys]
        if stacked:
            at = positions
        else:
            shift = (group_index - (group_count - 1) / 2) * width
            at = [position + shift for position in positions]
        if horizontal:
            ax.barh(at, heights, height=width, left=offsets if stacked else None, label=group or None)
        else:
            ax.bar(at, heights, width=width, bottom=offsets if stacked else None, label=group or None)
        if stacked:
            offsets = [offset + height for offset, height in zip(offsets, heights)]
    if horizontal:
        ax.set_yticks(positions, keys)
        ax.invert_yaxis()
    else:
        ax.set_xticks(positions, keys)
    _apply_titles(ax, options)
    _maybe_legend(ax, series)


def draw_column(fig: Figure, options: Mapping[str, Any]) -> None:
    _draw_bars(fig, options, horizontal=False)


def draw_bar(fig: Figure, options: Mapping[str, Any]) -> None:
    _draw_bars(fig, options, horizontal=True)


def draw_pie(fig: Figure, options: Mapping[str, Any]) -> None:
    ax = fig.add_subplot(111)
    items = _data_items(options)
    labels = [_label(item, field="category", index=index) for index, item in enumerate(items)]
    values = [_number(item.get("value"), field="value", index=index) for index, item in enumerate(items)]
    if any(value < 0 for value in values):
        raise ChartSpecError("pie values must not be negative.")
    if sum(values) <= 0:
        raise ChartSpecError("pie values must add up to more than zero.")
    inner_radius = options.get("innerRadius", 0)
    wedgeprops = None
    if isinstance(inner_radius, (int, float)) and not isinstance(inner_radius, bool) and 0 < inner_radius < 1:
        wedgeprops = {"width": 1 - float(inner_radius)}
    ax.pie(values, labels=labels, autopct="%1.1f%%", wedgeprops=wedgeprops)
    ax.set_aspect("equal")
    if title := options.get("title"):
        ax.set_title(str(title))


def draw_scatter(fig: Figure, options: Mapping[str, Any]) -> None:
    ax = fig.add_subplot(111)
    items = _data_items(options)
    xs = [_number(item.get("x"), field="x", index=index) for index, item in enumerate(items)]
    ys = [_number(item.get("y"), field="y", index=index) for index, item in enumerate(items)]
    ax.scatter(xs, ys)
    _apply_titles(ax, options)


def draw_histogram(fig: Figure, options: Mapping[str, Any]) -> None:
    ax = fig.add_subplot(111)
    data = options.get("data")
    if not isinstance(data, Sequence) or isinstance(data, (str, bytes, bytearray)) or not data:
        raise ChartSpecError("data must be a non-empty list of numbers.")
    values = [_number(value, field="value", index=index) for index, value in enumerate(data)]
    bins = options.get("binNumber")
    if isinstance(bins, bool) or not isinstance(bins, int) or bins <= 0:
        bins = "auto"
    ax.hist(values, bins=bins)
    _apply_titles(ax, options)


def draw_radar(fig: Figure, options: Mapping[str, Any]) -> None:
    ax = fig.add_subplot(111, projection="polar")
    keys, series = _grouped_series(_data_items(options), key_field="name")
    if len(keys) < 3:
        raise ChartSpecError("radar charts need at least three dimensions.")
    angles = [2 * math.pi * position / len(keys) for position in range(len(keys))]
    closed_angles = angles + angles[:1]
    for group, values in series.items():
        row = [values.get(key, 0.0) for key in keys]
        closed_row = row + row[:1]
        ax.plot(closed_angles, closed_row, label=group or None)
        ax.fill(closed_angles, closed_row, alpha=0.25)
    ax.set_xticks(angles, keys)
    if title := options.get("title"):
        ax.set_title(str(title))
    _maybe_legend(ax, series)


CHART_DRAWERS: dict[str, ChartDrawer] = {
    "area": draw_area,
    "bar": draw_bar,
    "column": draw_column,
    "histogram": draw_histogram,
    "line": draw_line,
    "pie": draw_pie,
    "radar": draw_radar,
    "scatter": draw_scatter,
}


def supported_chart_types() -> list[str]:
    return sorted(CHART_DRAWERS)

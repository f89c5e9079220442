"""
Rectangle gates and the gate hierarchy.

A gate is an axis-aligned rectangle over two channels in corrected value
space. Gates form a tree rooted at "root" (all events); the population of
a gate is the set of events passing every rectangle from the root down to
that gate. Pixel helpers map a drag rectangle on a plot to a gate and back.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from cyto_workbench.core.transforms import (
    TransformParams,
    inverse_transform_value,
    transform_value,
)

logger = logging.getLogger(__name__)


ROOT_GATE_ID = "root"
ROOT_GATE_NAME = "All Events"


# =============================================================================
# Data Classes
# =============================================================================

@dataclass(frozen=True)
class GateRect:
    """
    Axis-aligned rectangle in corrected value space (bounds inclusive).

    Attributes:
        x_param: Channel index on the x axis
        y_param: Channel index on the y axis
        x_min, x_max: Horizontal bounds
        y_min, y_max: Vertical bounds
    """
    x_param: int
    y_param: int
    x_min: float
    x_max: float
    y_min: float
    y_max: float

    def contains(self, x: float, y: float) -> bool:
        return self.x_min <= x <= self.x_max and self.y_min <= y <= self.y_max

    def key(self) -> str:
        return (f"{self.x_param}:{self.y_param}:{self.x_min!r}:{self.x_max!r}:"
                f"{self.y_min!r}:{self.y_max!r}")


@dataclass
class Gate:
    """Named node of the gate tree."""
    id: str
    name: str
    parent_id: Optional[str]
    rect: Optional[GateRect] = None


@dataclass(frozen=True)
class AxisRanges:
    """Visible axis range in raw value space."""
    x_min: float = 0.0
    x_max: float = 1.0
    y_min: float = 0.0
    y_max: float = 1.0


@dataclass(frozen=True)
class PlotArea:
    """Pixel rectangle the data is drawn into."""
    left: float
    top: float
    width: float
    height: float


@dataclass(frozen=True)
class PixelRect:
    """Two corners of a rectangle in pixel space, in any order."""
    x0: float
    y0: float
    x1: float
    y1: float


# =============================================================================
# Gate Tree
# =============================================================================

@dataclass
class GateTree:
    """
    Hierarchy of named rectangle gates.

    New gates become children of the selected gate and are selected in
    turn. Ids are "1", "2", ... in creation order and restart after clear().
    """
    gates: List[Gate] = field(default_factory=list)
    selected_id: str = ROOT_GATE_ID
    next_id: int = 1

    def add_gate(self, rect: GateRect) -> Gate:
        gate = Gate(
            id=str(self.next_id),
            name=f"Gate {self.next_id}",
            parent_id=self.selected_id,
            rect=rect,
        )
        self.next_id += 1
        self.gates.append(gate)
        self.selected_id = gate.id
        logger.debug("Added %s under %s", gate.name, gate.parent_id)
        return gate

    def get_gate(self, gate_id: str) -> Optional[Gate]:
        if gate_id == ROOT_GATE_ID:
            return Gate(id=ROOT_GATE_ID, name=ROOT_GATE_NAME, parent_id=None)
        for gate in self.gates:
            if gate.id == gate_id:
                return gate
        return None

    def select(self, gate_id: str) -> None:
        if self.get_gate(gate_id) is None:
            raise KeyError(gate_id)
        self.selected_id = gate_id

    def ancestors(self, gate_id: str) -> List[Gate]:
        """Parent chain of a gate, nearest first, excluding root."""
        result = []
        current = self.get_gate(gate_id)
        while current is not None and current.parent_id not in (None, ROOT_GATE_ID):
            current = self.get_gate(current.parent_id)
            if current is not None:
                result.append(current)
        return result

    def chain(self, gate_id: str) -> Tuple[GateRect, ...]:
        """Rectangles from the root down to gate_id; empty for root."""
        gate = self.get_gate(gate_id)
        if gate is None or gate.rect is None:
            return ()
        rects = [g.rect for g in reversed(self.ancestors(gate_id)) if g.rect is not None]
        rects.append(gate.rect)
        return tuple(rects)

    def clear(self) -> None:
        self.gates.clear()
        self.selected_id = ROOT_GATE_ID
        self.next_id = 1


# =============================================================================
# Pixel Mapping
# =============================================================================

def _clamp(x: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, x))


def _lerp(a: float, b: float, t: float) -> float:
    return a + (b - a) * t


def _transformed_ranges(scale, axis: AxisRanges, params: TransformParams):
    return (
        float(transform_value(scale, axis.x_min, params)),
        float(transform_value(scale, axis.x_max, params)),
        float(transform_value(scale, axis.y_min, params)),
        float(transform_value(scale, axis.y_max, params)),
    )


def gate_from_pixel_rect(
    x_param: int,
    y_param: int,
    scale,
    pixel_rect: PixelRect,
    plot_area: PlotArea,
    axis: AxisRanges,
    params: TransformParams = TransformParams(),
) -> GateRect:
    """
    Convert a dragged pixel rectangle into a gate.

    The rectangle is clamped to the plot area, interpolated in transformed
    axis space (pixel y grows downwards) and inverse-transformed back to
    raw values.
    """
    left, top = plot_area.left, plot_area.top
    width, height = plot_area.width, plot_area.height
    x0 = _clamp(pixel_rect.x0, left, left + width)
    x1 = _clamp(pixel_rect.x1, left, left + width)
    y0 = _clamp(pixel_rect.y0, top, top + height)
    y1 = _clamp(pixel_rect.y1, top, top + height)

    # A zero-size plot area collapses the gate onto one edge of the axis
    span_x = width or 1.0
    span_y = height or 1.0

    x_min_t, x_max_t, y_min_t, y_max_t = _transformed_ranges(scale, axis, params)

    tx0 = _lerp(x_min_t, x_max_t, (min(x0, x1) - left) / span_x)
    tx1 = _lerp(x_min_t, x_max_t, (max(x0, x1) - left) / span_x)
    ty0 = _lerp(y_max_t, y_min_t, (min(y0, y1) - top) / span_y)
    ty1 = _lerp(y_max_t, y_min_t, (max(y0, y1) - top) / span_y)

    rx0 = float(inverse_transform_value(scale, tx0, params))
    rx1 = float(inverse_transform_value(scale, tx1, params))
    ry0 = float(inverse_transform_value(scale, ty0, params))
    ry1 = float(inverse_transform_value(scale, ty1, params))

    return GateRect(
        x_param=x_param,
        y_param=y_param,
        x_min=min(rx0, rx1),
        x_max=max(rx0, rx1),
        y_min=min(ry0, ry1),
        y_max=max(ry0, ry1),
    )


def gate_to_pixel_rect(
    gate: Optional[GateRect],
    x_param: int,
    y_param: int,
    scale,
    plot_area: PlotArea,
    axis: AxisRanges,
    params: TransformParams = TransformParams(),
) -> Optional[PixelRect]:
    """Pixel rectangle of a gate on a plot, None if the plot shows other channels."""
    if gate is None:
        return None
    if gate.x_param != x_param or gate.y_param != y_param:
        return None

    x_min_t, x_max_t, y_min_t, y_max_t = _transformed_ranges(scale, axis, params)
    dx = (x_max_t - x_min_t) or 1.0
    dy = (y_max_t - y_min_t) or 1.0

    gx0 = float(transform_value(scale, gate.x_min, params))
    gx1 = float(transform_value(scale, gate.x_max, params))
    gy0 = float(transform_value(scale, gate.y_min, params))
    gy1 = float(transform_value(scale, gate.y_max, params))

    return PixelRect(
        x0=plot_area.left + (gx0 - x_min_t) / dx * plot_area.width,
        y0=plot_area.top + (1 - (gy0 - y_min_t) / dy) * plot_area.height,
        x1=plot_area.left + (gx1 - x_min_t) / dx * plot_area.width,
        y1=plot_area.top + (1 - (gy1 - y_min_t) / dy) * plot_area.height,
    )


__all__ = [
    'ROOT_GATE_ID',
    'GateRect',
    'Gate',
    'AxisRanges',
    'PlotArea',
    'PixelRect',
    'GateTree',
    'gate_from_pixel_rect',
    'gate_to_pixel_rect',
]

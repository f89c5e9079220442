"""
2D density aggregation.

Bins corrected events into a fixed grid over two transformed axes after
filtering them through a gate chain. Row 0 of the grid is the top of the
plot, so the y bin index is flipped.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence, Tuple

import numpy as np

from cyto_workbench.core.compensation import CompensationMatrix
from cyto_workbench.core.gating import AxisRanges, GateRect
from cyto_workbench.core.transforms import ScaleKind, TransformParams, transform_value
from cyto_workbench.fcs.errors import NoFullData

logger = logging.getLogger(__name__)


DEFAULT_GRID = 128
MIN_GRID = 8
MAX_GRID = 512


def clamp_grid(value, default: int = DEFAULT_GRID) -> int:
    """Clamp a grid dimension to [8, 512]; unusable values give the default."""
    try:
        v = int(value)
    except (TypeError, ValueError):
        v = default
    return max(MIN_GRID, min(MAX_GRID, v))


# =============================================================================
# Data Classes
# =============================================================================

@dataclass(frozen=True)
class DensityQuery:
    """
    Everything that determines a density grid.

    Two queries with equal ``key`` always produce identical results over
    the same data.
    """
    x_param: int = 0
    y_param: int = 1
    scale: ScaleKind = ScaleKind.LINEAR
    params: TransformParams = field(default_factory=TransformParams)
    axis: AxisRanges = field(default_factory=AxisRanges)
    gates: Tuple[GateRect, ...] = ()
    bins_w: int = DEFAULT_GRID
    bins_h: int = DEFAULT_GRID

    def __post_init__(self):
        object.__setattr__(self, "scale", ScaleKind.parse(self.scale))
        object.__setattr__(self, "gates", tuple(self.gates))
        object.__setattr__(self, "bins_w", clamp_grid(self.bins_w))
        object.__setattr__(self, "bins_h", clamp_grid(self.bins_h))

    @property
    def key(self) -> str:
        a = self.axis
        gates = "|".join(g.key() for g in self.gates if g is not None)
        return (
            f"{self.x_param}-{self.y_param}-{self.scale.value}"
            f":{self.params.arcsinh_cofactor!r}:{self.params.symlog_linthresh!r}"
            f"-{a.x_min!r}:{a.x_max!r}:{a.y_min!r}:{a.y_max!r}"
            f"-[{gates}]-{self.bins_w}x{self.bins_h}"
        )


@dataclass(frozen=True)
class DensityResult:
    """
    Binned event counts.

    Attributes:
        key: Key of the query that produced this result
        width, height: Grid size
        counts: Flat uint32 counts, row-major, row 0 at the top
        max_count: Largest bin count
        n_passed: Events that passed the gates and fell inside the axes
        total: Events considered
    """
    key: str
    width: int
    height: int
    counts: np.ndarray
    max_count: int
    n_passed: int
    total: int

    def grid(self) -> np.ndarray:
        """Counts as a (height, width) array."""
        return self.counts.reshape(self.height, self.width)


# =============================================================================
# Aggregation
# =============================================================================

def _channel(channels: Sequence[np.ndarray], index: int) -> Optional[np.ndarray]:
    if 0 <= index < len(channels):
        return np.asarray(channels[index], dtype=np.float64)
    return None


def _gate_mask(channels: Sequence[np.ndarray], gates: Sequence[GateRect], n_events: int) -> np.ndarray:
    mask = np.ones(n_events, dtype=bool)
    for g in gates:
        if g is None:
            continue
        gx = _channel(channels, g.x_param)
        gy = _channel(channels, g.y_param)
        if gx is None or gy is None:
            mask[:] = False
            break
        mask &= (gx >= g.x_min) & (gx <= g.x_max) & (gy >= g.y_min) & (gy <= g.y_max)
    return mask


def compute_density(full_channels: Optional[Sequence[np.ndarray]], query: DensityQuery) -> DensityResult:
    """
    Bin fully corrected events into a density grid.

    Args:
        full_channels: Corrected values, one array per channel
        query: Channels, transform, axis ranges, gates and grid size

    Returns:
        DensityResult; ``total`` is the number of events in the data

    Raises:
        NoFullData: If no full dataset is available
    """
    if full_channels is None:
        raise NoFullData("No full data")

    w, h = query.bins_w, query.bins_h
    n_events = len(full_channels[0]) if len(full_channels) else 0
    counts = np.zeros(w * h, dtype=np.uint32)

    xv = _channel(full_channels, query.x_param)
    yv = _channel(full_channels, query.y_param)
    if xv is None or yv is None or n_events == 0:
        counts.setflags(write=False)
        return DensityResult(query.key, w, h, counts, 0, 0, n_events)

    scale, params, a = query.scale, query.params, query.axis
    x_min_t = float(transform_value(scale, a.x_min, params))
    x_max_t = float(transform_value(scale, a.x_max, params))
    y_min_t = float(transform_value(scale, a.y_min, params))
    y_max_t = float(transform_value(scale, a.y_max, params))
    dx = (x_max_t - x_min_t) or 1.0
    dy = (y_max_t - y_min_t) or 1.0

    with np.errstate(invalid="ignore", over="ignore", divide="ignore"):
        nx = (transform_value(scale, xv, params) - x_min_t) / dx
        ny = (transform_value(scale, yv, params) - y_min_t) / dy
        keep = _gate_mask(full_channels, query.gates, n_events)
        keep &= np.isfinite(nx) & np.isfinite(ny)
        keep &= (nx >= 0) & (nx <= 1) & (ny >= 0) & (ny <= 1)

    nx, ny = nx[keep], ny[keep]
    bx = np.clip(np.floor(nx * w), 0, w - 1).astype(np.int64)
    by = np.clip(h - 1 - np.floor(ny * h), 0, h - 1).astype(np.int64)
    counts += np.bincount(by * w + bx, minlength=w * h).astype(np.uint32)

    n_passed = int(keep.sum())
    max_count = int(counts.max()) if n_passed else 0
    counts.setflags(write=False)

    logger.debug("Density %dx%d over %d events: %d passed, max %d",
                 w, h, n_events, n_passed, max_count)
    return DensityResult(query.key, w, h, counts, max_count, n_passed, n_events)


def compute_preview_density(
    preview_channels: Sequence[np.ndarray],
    matrix: CompensationMatrix,
    query: DensityQuery,
) -> DensityResult:
    """Density over the raw preview sample, corrected with the live matrix."""
    return compute_density(matrix.apply(preview_channels), query)


__all__ = [
    'DEFAULT_GRID',
    'MIN_GRID',
    'MAX_GRID',
    'clamp_grid',
    'DensityQuery',
    'DensityResult',
    'compute_density',
    'compute_preview_density',
]

"""
Core functionality for Cyto Workbench.

This module provides axis transforms, the spillover compensation matrix,
rectangle gating, density aggregation and dataset loading. Settings live
in cyto_workbench.core.settings and are imported from there directly.
"""

from cyto_workbench.core.transforms import (
    ScaleKind,
    TransformParams,
    transform_value,
    inverse_transform_value,
)

from cyto_workbench.core.compensation import (
    SpilloverPair,
    CoeffSnapshot,
    CompensationMatrix,
    save_compensation,
    load_compensation,
)

from cyto_workbench.core.gating import (
    GateRect,
    Gate,
    GateTree,
    AxisRanges,
    PlotArea,
    PixelRect,
    gate_from_pixel_rect,
    gate_to_pixel_rect,
)

from cyto_workbench.core.density import (
    DensityQuery,
    DensityResult,
    compute_density,
    compute_preview_density,
)

from cyto_workbench.core.dataset import (
    Dataset,
    load_dataset,
)

__all__ = [
    # Transforms
    "ScaleKind",
    "TransformParams",
    "transform_value",
    "inverse_transform_value",

    # Compensation
    "SpilloverPair",
    "CoeffSnapshot",
    "CompensationMatrix",
    "save_compensation",
    "load_compensation",

    # Gating
    "GateRect",
    "Gate",
    "GateTree",
    "AxisRanges",
    "PlotArea",
    "PixelRect",
    "gate_from_pixel_rect",
    "gate_to_pixel_rect",

    # Density
    "DensityQuery",
    "DensityResult",
    "compute_density",
    "compute_preview_density",

    # Dataset
    "Dataset",
    "load_dataset",
]

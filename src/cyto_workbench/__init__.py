"""
Cyto Workbench - flow cytometry compensation workbench.

Decodes FCS event-list files, corrects channel cross-talk with an editable
spillover matrix, and aggregates corrected events into density grids.
Full-dataset work runs on a background thread and can be cancelled.
"""

__version__ = "0.3.0"
__license__ = "MIT"

from cyto_workbench.fcs import FCSError, decode_metadata
from cyto_workbench.core import (
    CompensationMatrix,
    Dataset,
    DensityQuery,
    compute_density,
    load_dataset,
)

__all__ = [
    "__version__",
    "FCSError",
    "decode_metadata",
    "CompensationMatrix",
    "Dataset",
    "DensityQuery",
    "compute_density",
    "load_dataset",
]

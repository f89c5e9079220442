"""
Spillover compensation matrix.

Models linear cross-talk between detector channels. For each target
channel the corrected value is

    corrected[to] = raw[to] - sum(coeff[to, from] * raw[from])

over every other channel. Coefficients are stored flat as
coeffs[to * n + from], the diagonal is always zero, and every coefficient
is clamped to [-10, 10].

The matrix keeps a sparse adjacency list of non-zero coefficients per
target so per-event correction cost scales with the number of real
cross-talk edges rather than n^2. The adjacency is rebuilt in full on
every edit, which is fine for the tens of channels an instrument carries;
far larger panels would want incremental edge updates instead.

Every mutating operation bumps ``revision``. Background jobs record the
revision they were started with so callers can tell when a computed
full-dataset result has gone stale relative to later edits.
"""

import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import List, NamedTuple, Optional, Sequence, Tuple, Union

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from cyto_workbench.fcs.errors import CoeffShapeMismatch

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

COEFF_MIN = -10.0
COEFF_MAX = 10.0

# Coefficients at or below this magnitude are not cross-talk edges
NONZERO_EPSILON = 1e-12

COMP_FILE_VERSION = 1


# =============================================================================
# Data Classes
# =============================================================================

class SpilloverPair(NamedTuple):
    """One non-zero cross-talk edge."""
    source: int
    target: int
    coeff: float


# Per target channel: [(source, coeff), ...] in ascending source order
Adjacency = List[List[Tuple[int, float]]]


@dataclass(frozen=True)
class CoeffSnapshot:
    """
    Immutable copy of the coefficients handed to the background context.

    Attributes:
        n: Channel count
        coeffs: Read-only flat array of n*n coefficients (to * n + from)
        revision: Matrix revision at the time of the snapshot
    """
    n: int
    coeffs: np.ndarray
    revision: int


class CompensationFile(BaseModel):
    """On-disk compensation JSON: {"version": 1, "nParams": n, "coeffs": [...]}"""

    model_config = ConfigDict(populate_by_name=True)

    version: int
    n_params: int = Field(alias="nParams")
    coeffs: List[float]


# =============================================================================
# Helpers
# =============================================================================

def clamp_coeff(value: float) -> float:
    """Clamp to [-10, 10]; non-finite input becomes 0."""
    try:
        v = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(v):
        return 0.0
    return min(COEFF_MAX, max(COEFF_MIN, v))


def build_adjacency(coeffs: np.ndarray, n: int) -> Adjacency:
    """Collect non-zero off-diagonal coefficients per target channel."""
    adjacency: Adjacency = [[] for _ in range(n)]
    for to in range(n):
        row = coeffs[to * n:(to + 1) * n]
        for source in range(n):
            if source == to:
                continue
            c = float(row[source])
            if abs(c) > NONZERO_EPSILON:
                adjacency[to].append((source, c))
    return adjacency


def apply_adjacency(
    adjacency: Adjacency,
    raw_channels: Sequence[np.ndarray],
    dtype=np.float32,
) -> List[np.ndarray]:
    """
    Correct every channel of a block of events.

    All corrections read the raw (uncorrected) values.

    Args:
        adjacency: Output of build_adjacency
        raw_channels: One array of raw values per channel
        dtype: Storage type of the returned arrays

    Returns:
        One corrected array per channel
    """
    out = []
    for to, edges in enumerate(adjacency):
        if not edges:
            out.append(np.asarray(raw_channels[to], dtype=dtype).copy())
            continue
        v = np.asarray(raw_channels[to], dtype=np.float64).copy()
        for source, coeff in edges:
            v -= coeff * np.asarray(raw_channels[source], dtype=np.float64)
        out.append(v.astype(dtype))
    return out


# =============================================================================
# Compensation Matrix
# =============================================================================

class CompensationMatrix:
    """
    Editable n x n spillover correction matrix.

    Holds the working coefficients, the baseline they were loaded from,
    and the sparse adjacency used for correction. ``dirty`` is True while
    any coefficient differs from the baseline.

    Example:
        comp = CompensationMatrix(4, initial=meta.spillover)
        comp.set_coeff(0, 1, 0.12)
        corrected = comp.apply(preview.channels)
        comp.worst_pairs()[:5]
    """

    def __init__(self, n: int, initial: Optional[np.ndarray] = None):
        """
        Create the matrix.

        Args:
            n: Channel count
            initial: Optional seed, either n x n or flat n*n in
                to * n + from order; ignored if the size does not match
        """
        if n <= 0:
            raise ValueError("Compensation matrix needs at least one channel")
        self.n = n
        self.coeffs = np.zeros(n * n, dtype=np.float64)
        self.original = np.zeros(n * n, dtype=np.float64)
        self.revision = 0
        self._adjacency: Adjacency = [[] for _ in range(n)]

        if initial is not None:
            seed = np.asarray(initial, dtype=np.float64).reshape(-1)
            if seed.size == n * n:
                self.coeffs[:] = [clamp_coeff(v) for v in seed]
                self._zero_diagonal(self.coeffs)
                self.original[:] = self.coeffs
            else:
                logger.warning(
                    "Ignoring compensation seed of %d values for %d channels",
                    seed.size, n,
                )

        self.dirty = False
        self._rebuild()

    # =========================================================================
    # Internal State
    # =========================================================================

    def _index(self, source: int, to: int) -> int:
        if not (0 <= source < self.n and 0 <= to < self.n):
            raise IndexError(f"Channel pair ({source}, {to}) outside 0..{self.n - 1}")
        return to * self.n + source

    def _zero_diagonal(self, arr: np.ndarray) -> None:
        arr[:: self.n + 1] = 0.0

    def _rebuild(self) -> None:
        self._adjacency = build_adjacency(self.coeffs, self.n)

    def _changed(self) -> None:
        self.dirty = not np.array_equal(self.coeffs, self.original)
        self._rebuild()
        self.revision += 1

    # =========================================================================
    # Editing
    # =========================================================================

    def get_coeff(self, source: int, to: int) -> float:
        """Coefficient for spill from source into to; 0 on the diagonal."""
        if source == to:
            return 0.0
        return float(self.coeffs[self._index(source, to)])

    def set_coeff(self, source: int, to: int, value: float) -> None:
        """Set one coefficient (clamped). Diagonal writes are ignored."""
        if source == to:
            return
        self.coeffs[self._index(source, to)] = clamp_coeff(value)
        self._changed()

    def reset_pair(self, source: int, to: int) -> None:
        """Restore one coefficient from the baseline."""
        if source == to:
            return
        i = self._index(source, to)
        self.coeffs[i] = self.original[i]
        self._changed()

    def reset_all(self) -> None:
        """Restore every coefficient from the baseline."""
        self.coeffs[:] = self.original
        self._changed()

    @property
    def adjacency(self) -> Adjacency:
        return self._adjacency

    def snapshot(self) -> CoeffSnapshot:
        """Read-only copy of the coefficients and current revision."""
        coeffs = self.coeffs.copy()
        coeffs.setflags(write=False)
        return CoeffSnapshot(n=self.n, coeffs=coeffs, revision=self.revision)

    # =========================================================================
    # Correction
    # =========================================================================

    def apply_value(self, to: int, raw_by_channel: Sequence):
        """
        Corrected value of one channel.

        raw_by_channel[p] may be a scalar (one event) or an array (many
        events); the result has the same shape.
        """
        v = np.asarray(raw_by_channel[to], dtype=np.float64)
        for source, coeff in self._adjacency[to]:
            v = v - coeff * np.asarray(raw_by_channel[source], dtype=np.float64)
        return v if v.ndim else float(v)

    def apply(self, raw_channels: Sequence[np.ndarray], dtype=np.float32) -> List[np.ndarray]:
        """Correct every channel of a block of events."""
        return apply_adjacency(self._adjacency, raw_channels, dtype=dtype)

    def gate_passes(self, event_index: int, raw_by_channel: Sequence[np.ndarray],
                    gate_chain: Sequence) -> bool:
        """
        True if one event lies inside every rectangle of the chain.

        Rectangles are tested in corrected value space, in order, and the
        first failure short-circuits. An empty chain always passes.
        """
        if not gate_chain:
            return True
        event = [ch[event_index] for ch in raw_by_channel]
        for gate in gate_chain:
            if gate is None:
                continue
            gx = self.apply_value(gate.x_param, event)
            gy = self.apply_value(gate.y_param, event)
            if not (gate.x_min <= gx <= gate.x_max and gate.y_min <= gy <= gate.y_max):
                return False
        return True

    def gate_mask(self, raw_channels: Sequence[np.ndarray], gate_chain: Sequence) -> np.ndarray:
        """Vectorized gate_passes over every event of a block."""
        n_events = len(raw_channels[0]) if len(raw_channels) else 0
        mask = np.ones(n_events, dtype=bool)
        for gate in gate_chain or ():
            if gate is None:
                continue
            gx = self.apply_value(gate.x_param, raw_channels)
            gy = self.apply_value(gate.y_param, raw_channels)
            mask &= (gx >= gate.x_min) & (gx <= gate.x_max)
            mask &= (gy >= gate.y_min) & (gy <= gate.y_max)
        return mask

    def worst_pairs(self) -> List[SpilloverPair]:
        """All non-zero edges, strongest |coeff| first (stable on target, then source)."""
        pairs = [
            SpilloverPair(source, to, coeff)
            for to, edges in enumerate(self._adjacency)
            for source, coeff in edges
        ]
        pairs.sort(key=lambda p: abs(p.coeff), reverse=True)
        return pairs

    # =========================================================================
    # Serialization
    # =========================================================================

    def to_json(self) -> dict:
        """Serializable form: {"version": 1, "nParams": n, "coeffs": [...]}"""
        model = CompensationFile(
            version=COMP_FILE_VERSION,
            n_params=self.n,
            coeffs=[float(v) for v in self.coeffs],
        )
        return model.model_dump(by_alias=True)

    def load_json(self, obj: Union[dict, CompensationFile]) -> None:
        """
        Replace coefficients and baseline from a serialized matrix.

        Values are clamped, the diagonal re-zeroed, and the result becomes
        the new baseline. The matrix is untouched on failure.

        Raises:
            CoeffShapeMismatch: Wrong version, channel count or length
        """
        if isinstance(obj, CompensationFile):
            model = obj
        else:
            try:
                model = CompensationFile.model_validate(obj)
            except ValidationError as e:
                raise CoeffShapeMismatch(f"Invalid compensation JSON: {e.error_count()} errors") from e

        if model.version != COMP_FILE_VERSION:
            raise CoeffShapeMismatch(
                "Unsupported compensation JSON version",
                expected=COMP_FILE_VERSION, actual=model.version,
            )
        if model.n_params != self.n:
            raise CoeffShapeMismatch(
                "Compensation JSON parameter count mismatch",
                expected=self.n, actual=model.n_params,
            )
        if len(model.coeffs) != self.n * self.n:
            raise CoeffShapeMismatch(
                "Invalid coeffs length",
                expected=self.n * self.n, actual=len(model.coeffs),
            )

        loaded = np.array([clamp_coeff(v) for v in model.coeffs], dtype=np.float64)
        self._zero_diagonal(loaded)
        self.coeffs[:] = loaded
        self.original[:] = loaded
        self._changed()
        logger.info("Loaded compensation matrix (%d channels)", self.n)


# =============================================================================
# File Helpers
# =============================================================================

def save_compensation(matrix: CompensationMatrix, path: Union[str, Path]) -> None:
    """Write the matrix as compensation JSON."""
    model = CompensationFile.model_validate(matrix.to_json())
    Path(path).write_text(model.model_dump_json(by_alias=True, indent=2), encoding="utf-8")
    logger.info("Saved compensation matrix to %s", path)


def load_compensation(matrix: CompensationMatrix, path: Union[str, Path]) -> None:
    """
    Load compensation JSON from a file into the matrix.

    Raises:
        CoeffShapeMismatch: If the file is not valid compensation JSON or
            does not fit the matrix
        OSError: If the file cannot be read
    """
    text = Path(path).read_text(encoding="utf-8")
    try:
        model = CompensationFile.model_validate_json(text)
    except ValidationError as e:
        raise CoeffShapeMismatch(f"Invalid compensation JSON in {path}") from e
    matrix.load_json(model)


__all__ = [
    'COEFF_MIN',
    'COEFF_MAX',
    'NONZERO_EPSILON',
    'COMP_FILE_VERSION',
    'SpilloverPair',
    'CoeffSnapshot',
    'CompensationFile',
    'clamp_coeff',
    'build_adjacency',
    'apply_adjacency',
    'CompensationMatrix',
    'save_compensation',
    'load_compensation',
]

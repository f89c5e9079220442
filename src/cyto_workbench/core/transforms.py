"""
Axis value transforms.

Pure, stateless functions used to stretch or compress plot axes and to
map gate rectangles between raw and display space. Each transform has an
exact or near-exact inverse. All functions accept scalars or numpy arrays.
"""

import math
from dataclasses import dataclass
from enum import Enum

import numpy as np


DEFAULT_ARCSINH_COFACTOR = 150.0
DEFAULT_SYMLOG_LINTHRESH = 100.0

_LN10 = math.log(10.0)


class ScaleKind(Enum):
    """Available axis transforms."""
    LINEAR = "linear"
    ARCSINH = "arcsinh"
    SYMLOG = "symlog"

    @classmethod
    def parse(cls, value) -> "ScaleKind":
        """Resolve a scale name; "logicle" is accepted for SYMLOG, unknown names are LINEAR."""
        if isinstance(value, cls):
            return value
        name = str(value).strip().lower()
        if name == "logicle":
            return cls.SYMLOG
        for member in cls:
            if member.value == name:
                return member
        return cls.LINEAR


@dataclass(frozen=True)
class TransformParams:
    """Transform parameters; invalid values fall back to the defaults when used."""
    arcsinh_cofactor: float = DEFAULT_ARCSINH_COFACTOR
    symlog_linthresh: float = DEFAULT_SYMLOG_LINTHRESH


def _positive_or(value: float, default: float) -> float:
    try:
        v = float(value)
    except (TypeError, ValueError):
        return default
    return v if math.isfinite(v) and v > 0 else default


def linear(x):
    return x


def inv_linear(y):
    return y


def arcsinh(x, cofactor: float = DEFAULT_ARCSINH_COFACTOR):
    c = _positive_or(cofactor, DEFAULT_ARCSINH_COFACTOR)
    return np.arcsinh(np.divide(x, c))


def inv_arcsinh(y, cofactor: float = DEFAULT_ARCSINH_COFACTOR):
    c = _positive_or(cofactor, DEFAULT_ARCSINH_COFACTOR)
    return np.sinh(y) * c


def symlog(x, linthresh: float = DEFAULT_SYMLOG_LINTHRESH):
    """sign(x) * log10(1 + |x| / linthresh)"""
    t = _positive_or(linthresh, DEFAULT_SYMLOG_LINTHRESH)
    return np.sign(x) * (np.log1p(np.abs(x) / t) / _LN10)


def inv_symlog(y, linthresh: float = DEFAULT_SYMLOG_LINTHRESH):
    """sign(y) * (10^|y| - 1) * linthresh"""
    t = _positive_or(linthresh, DEFAULT_SYMLOG_LINTHRESH)
    return np.sign(y) * np.expm1(np.abs(y) * _LN10) * t


def transform_value(scale, x, params: TransformParams = TransformParams()):
    """Apply the named transform to x."""
    kind = ScaleKind.parse(scale)
    if kind is ScaleKind.ARCSINH:
        return arcsinh(x, params.arcsinh_cofactor)
    if kind is ScaleKind.SYMLOG:
        return symlog(x, params.symlog_linthresh)
    return linear(x)


def inverse_transform_value(scale, y, params: TransformParams = TransformParams()):
    """Invert the named transform."""
    kind = ScaleKind.parse(scale)
    if kind is ScaleKind.ARCSINH:
        return inv_arcsinh(y, params.arcsinh_cofactor)
    if kind is ScaleKind.SYMLOG:
        return inv_symlog(y, params.symlog_linthresh)
    return inv_linear(y)


__all__ = [
    'DEFAULT_ARCSINH_COFACTOR',
    'DEFAULT_SYMLOG_LINTHRESH',
    'ScaleKind',
    'TransformParams',
    'linear',
    'inv_linear',
    'arcsinh',
    'inv_arcsinh',
    'symlog',
    'inv_symlog',
    'transform_value',
    'inverse_transform_value',
]

"""
Unit tests for axis transforms.
"""

import math

import numpy as np
import pytest

from cyto_workbench.core.transforms import (
    DEFAULT_ARCSINH_COFACTOR,
    ScaleKind,
    TransformParams,
    arcsinh,
    inv_arcsinh,
    inv_symlog,
    inverse_transform_value,
    symlog,
    transform_value,
)


VALUES = np.array([-5000.0, -150.0, -1.0, 0.0, 0.5, 150.0, 262144.0])


class TestScaleKind:
    """Test ScaleKind.parse()."""

    @pytest.mark.parametrize("value,expected", [
        ("linear", ScaleKind.LINEAR),
        ("ARCSINH", ScaleKind.ARCSINH),
        (" symlog ", ScaleKind.SYMLOG),
        ("logicle", ScaleKind.SYMLOG),
        ("bogus", ScaleKind.LINEAR),
        (ScaleKind.ARCSINH, ScaleKind.ARCSINH),
    ])
    def test_parse(self, value, expected):
        assert ScaleKind.parse(value) is expected


class TestArcsinh:
    """Test the arcsinh transform."""

    def test_value(self):
        assert arcsinh(150.0, 150.0) == pytest.approx(math.asinh(1.0))

    def test_inverse(self):
        np.testing.assert_allclose(inv_arcsinh(arcsinh(VALUES, 50.0), 50.0), VALUES, rtol=1e-9, atol=1e-9)

    @pytest.mark.parametrize("cofactor", [0.0, -3.0, float("nan"), "abc", None])
    def test_invalid_cofactor_uses_default(self, cofactor):
        assert arcsinh(300.0, cofactor) == arcsinh(300.0, DEFAULT_ARCSINH_COFACTOR)


class TestSymlog:
    """Test the symmetric log transform."""

    def test_zero_and_sign(self):
        assert symlog(0.0) == 0.0
        assert symlog(-500.0, 100.0) == pytest.approx(-symlog(500.0, 100.0))

    def test_value(self):
        """Test sign(x) * log10(1 + |x| / linthresh)."""
        assert symlog(900.0, 100.0) == pytest.approx(1.0)

    def test_inverse(self):
        np.testing.assert_allclose(inv_symlog(symlog(VALUES, 10.0), 10.0), VALUES, rtol=1e-9, atol=1e-9)


class TestDispatch:
    """Test transform_value() and inverse_transform_value()."""

    def test_linear_identity(self):
        assert transform_value("linear", 42.0) == 42.0
        assert inverse_transform_value(ScaleKind.LINEAR, 42.0) == 42.0

    @pytest.mark.parametrize("scale", ["arcsinh", "symlog", "logicle"])
    def test_round_trip(self, scale):
        params = TransformParams(arcsinh_cofactor=5.0, symlog_linthresh=20.0)
        y = transform_value(scale, VALUES, params)
        np.testing.assert_allclose(inverse_transform_value(scale, y, params), VALUES, rtol=1e-9, atol=1e-9)

    @pytest.mark.parametrize("scale,params", [
        ("arcsinh", TransformParams(arcsinh_cofactor=150.0)),
        ("logicle", TransformParams(symlog_linthresh=100.0)),
    ])
    def test_random_round_trip(self, scale, params):
        """Test the inverse recovers x to within 1e-12 of 1 + |x|."""
        x = np.random.default_rng(11).uniform(-1e5, 1e5, 2000)
        back = inverse_transform_value(scale, transform_value(scale, x, params), params)
        assert np.all(np.abs(back - x) / (1.0 + np.abs(x)) < 1e-12)

    def test_params_used(self):
        params = TransformParams(arcsinh_cofactor=10.0)
        assert transform_value("arcsinh", 10.0, params) == pytest.approx(math.asinh(1.0))

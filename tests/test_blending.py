"""SST blending functions."""

import numpy as np
import pytest

from dolfinx_pans.config import SSTCoeffs
from dolfinx_pans.models.blending import BlendingFunctions

Y = np.array([1e-4, 1e-3, 1e-2, 0.1, 0.5, 1.0])
K = np.full(Y.size, 0.01)
OMEGA = np.full(Y.size, 50.0)


def _blending(**coeffs):
    return BlendingFunctions(SSTCoeffs(**coeffs), Y, nu=1e-4)


def test_values_in_unit_interval():
    b = _blending(F3=True)
    CD = np.full(Y.size, 1e-3)
    for F in (b.F1(K, OMEGA, CD), b.F2(K, OMEGA), b.F3(OMEGA), b.F23(K, OMEGA)):
        assert np.all(F >= 0.0) and np.all(F <= 1.0)


def test_F1_near_wall_is_inner_layer():
    b = _blending()
    F1 = b.F1(K, OMEGA, np.zeros(Y.size))
    assert F1[0] == pytest.approx(1.0)
    # Decays towards the outer layer
    assert F1[-1] < F1[0]


def test_F1_handles_zero_k_and_omega():
    b = _blending()
    F1 = b.F1(np.zeros(Y.size), np.zeros(Y.size), np.zeros(Y.size))
    assert np.all(np.isfinite(F1))


def test_F3_disabled_is_one():
    b = _blending()
    np.testing.assert_array_equal(b.F3(OMEGA), np.ones(Y.size))
    np.testing.assert_array_equal(b.F23(K, OMEGA), b.F2(K, OMEGA))


def test_F23_with_roughness_term():
    b = _blending(F3=True)
    np.testing.assert_allclose(b.F23(K, OMEGA), b.F2(K, OMEGA) * b.F3(OMEGA))
    # Near the wall the roughness term switches the limiter blend off
    assert b.F3(OMEGA)[0] == pytest.approx(0.0)


def test_blend():
    assert BlendingFunctions.blend(1.0, 0.85, 1.0) == pytest.approx(0.85)
    assert BlendingFunctions.blend(0.0, 0.85, 1.0) == pytest.approx(1.0)
    assert BlendingFunctions.blend(0.5, 0.5, 0.856) == pytest.approx(0.678)


def test_F1_takes_max_with_F3():
    CD = np.full(Y.size, 1e-3)
    plain = _blending().F1(K, OMEGA, CD)
    b = _blending(F3=True)
    F1 = b.F1(K, OMEGA, CD)
    assert np.all(F1 >= b.F3(OMEGA))
    np.testing.assert_allclose(F1, np.maximum(plain, b.F3(OMEGA)))
    # Outer layer: k-epsilon branch without the roughness term, k-omega with it
    assert plain[-1] < 1e-3
    assert F1[-1] == pytest.approx(1.0)

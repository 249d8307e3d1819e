"""Test the window table and spectral transform primitives in isolation.

Run: uv run pytest tests/test_primitives.py   (or python tests/test_primitives.py)
"""

import os
import sys

import numpy as np
import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from primitives.transform import create_transform, get_transform_names
from primitives.window import WindowTable
from shared.errors import InvalidConfigurationError


# ---------------------------------------------------------------------------
# Window table
# ---------------------------------------------------------------------------
def test_hann_matches_formula():
    print("Hann window: 0.5 * (1 - cos(2 pi n / (W - 1)))")
    win = WindowTable.hann(5)
    assert np.allclose(win.coefficients, [0.0, 0.5, 1.0, 0.5, 0.0])
    assert np.allclose(WindowTable.hann(1024).coefficients, np.hanning(1024))


def test_window_is_read_only():
    win = WindowTable.hann(16)
    with pytest.raises(ValueError):
        win.coefficients[0] = 1.0
    with pytest.raises(ValueError):
        win.squared[3] = 0.0


def test_apply_is_elementwise_and_pure():
    win = WindowTable.from_coefficients([0.0, 1.0, 1.0, 0.0])
    frame = np.array([2.0, 3.0, 4.0, 5.0])
    out = win.apply(frame)
    assert np.array_equal(out, [0.0, 3.0, 4.0, 0.0])
    assert np.array_equal(frame, [2.0, 3.0, 4.0, 5.0])
    with pytest.raises(ValueError):
        win.apply(np.ones(5))


def test_invalid_coefficients():
    with pytest.raises(ValueError):
        WindowTable.from_coefficients([])
    with pytest.raises(ValueError):
        WindowTable.from_coefficients([0.5, -0.1, 0.5])
    with pytest.raises(ValueError):
        WindowTable.from_coefficients([0.5, np.nan])
    with pytest.raises(ValueError):
        WindowTable.by_name("kaiser", 64)


def test_cola_sums():
    print("COLA: toy [0,1,1,0] @ hop 2, periodic Hann @ hop W/4")
    toy = WindowTable.from_coefficients([0.0, 1.0, 1.0, 0.0])
    assert np.allclose(toy.cola_sum(2), [1.0, 1.0])
    assert toy.is_cola(2)

    periodic = WindowTable.hann(64, periodic=True)
    assert periodic.is_cola(16)
    assert np.allclose(periodic.cola_sum(16), 1.5)

    # Non-overlapping Hann frames leave gaps
    assert not WindowTable.hann(64).is_cola(64)


# ---------------------------------------------------------------------------
# Spectral transform
# ---------------------------------------------------------------------------
@pytest.mark.parametrize("name", ["numpy", "scipy"])
def test_transform_round_trip(name):
    rng = np.random.default_rng(1)
    x = rng.standard_normal(256)
    t = create_transform(name, 256)
    bins = t.forward(x)
    assert bins.shape == (256,)
    assert np.iscomplexobj(bins)
    assert np.allclose(bins, np.fft.fft(x))
    y = t.inverse(bins)
    assert y.dtype == np.float64
    assert np.allclose(y, x, atol=1e-12)


@pytest.mark.parametrize("name", ["numpy", "scipy"])
def test_transform_is_linear(name):
    rng = np.random.default_rng(2)
    x, y = rng.standard_normal((2, 64))
    t = create_transform(name, 64)
    assert np.allclose(t.forward(2.0 * x - 0.5 * y), 2.0 * t.forward(x) - 0.5 * t.forward(y))


def test_transform_rejects_wrong_size():
    t = create_transform("numpy", 32)
    with pytest.raises(ValueError):
        t.forward(np.zeros(31))
    with pytest.raises(ValueError):
        t.inverse(np.zeros(64, dtype=complex))


def test_transform_registry():
    assert {"numpy", "scipy"} <= set(get_transform_names())
    with pytest.raises(InvalidConfigurationError):
        create_transform("fftw", 32)


if __name__ == "__main__":
    test_hann_matches_formula()
    test_window_is_read_only()
    test_apply_is_elementwise_and_pure()
    test_invalid_coefficients()
    test_cola_sums()
    for backend in ("numpy", "scipy"):
        test_transform_round_trip(backend)
        test_transform_is_linear(backend)
    test_transform_rejects_wrong_size()
    test_transform_registry()
    print("\nDone!")

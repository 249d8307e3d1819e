"""Parameter schema and validation tests.

Run: uv run pytest tests/test_params.py
"""

import os
import sys

import numpy as np
import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from shared.errors import InvalidConfigurationError, StretchError
from stretch.engine.params import (PARAM_RANGES, PARAM_SECTIONS, SCHEMA, default_params,
                                   validate_params)


def test_defaults():
    p = default_params()
    assert p["frame_size"] == 1024
    assert p["hop_size"] == 256
    assert p["stretch_factor"] == 1.5
    assert p["noise_calibration_duration"] == 0.5
    assert validate_params() == validate_params(p)
    assert set(PARAM_RANGES) <= set(p)
    assert sum(len(keys) for keys in PARAM_SECTIONS.values()) == len(SCHEMA)


def test_validate_returns_new_dict():
    raw = {"stretch_factor": 2}
    p = validate_params(raw)
    assert p is not raw
    assert raw == {"stretch_factor": 2}
    assert isinstance(p["stretch_factor"], float)


def test_numpy_scalars_accepted():
    p = validate_params({"frame_size": np.int64(512), "hop_size": np.int32(128),
                         "stretch_factor": np.float32(0.75)})
    assert p["frame_size"] == 512 and type(p["frame_size"]) is int
    assert p["hop_size"] == 128


def test_hop_equal_to_frame_allowed():
    assert validate_params({"frame_size": 256, "hop_size": 256})["hop_size"] == 256


@pytest.mark.parametrize("bad", [
    {"frame_size": 0},
    {"frame_size": -4},
    {"frame_size": 256.5},
    {"hop_size": 0},
    {"frame_size": 256, "hop_size": 512},
    {"stretch_factor": 0},
    {"stretch_factor": -1.0},
    {"stretch_factor": float("nan")},
    {"stretch_factor": float("inf")},
    {"stretch_factor": "fast"},
    {"frame_size": True},
    {"normalization_target": 0.0},
    {"noise_calibration_duration": -0.1},
    {"noise_calibration_frames": -2},
    {"oversubtraction": -1.0},
    {"queue_size": 0},
    {"window": "blackman"},
    {"transform": "fftw"},
    {"sample_rate": 0},
    {"not_a_param": 1},
])
def test_invalid_parameters(bad):
    with pytest.raises(InvalidConfigurationError):
        validate_params(bad)


def test_error_hierarchy():
    assert issubclass(InvalidConfigurationError, ValueError)
    assert issubclass(InvalidConfigurationError, StretchError)


def test_preset_clamping():
    raw = {"stretch_factor": 1000, "frame_size": 512.4, "window": "bogus",
           "unknown": 3, "hop_size": "many", "window_compensation": 0}
    clean = SCHEMA.validate_and_clamp(raw)
    assert clean["stretch_factor"] == 100.0
    assert clean["frame_size"] == 512
    assert clean["window_compensation"] is False
    assert "window" not in clean
    assert "unknown" not in clean
    assert "hop_size" not in clean


if __name__ == "__main__":
    test_defaults()
    test_validate_returns_new_dict()
    test_numpy_scalars_accepted()
    test_hop_equal_to_frame_allowed()
    test_error_hierarchy()
    test_preset_clamping()
    print("\nDone!")

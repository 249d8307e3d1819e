"""Peak normalization, WAV I/O and the command-line renderer.

Run: uv run pytest tests/test_output.py
"""

import os
import sys
import tempfile

import numpy as np
import pytest
from scipy.io import wavfile

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from shared.audio import load_wav, save_wav
from shared.normalize import normalize_peak, safety_check
from stretch.audio.render import main


# ---- Normalization ----

def test_peak_lands_at_target():
    x = np.array([0.5, -2.0, 1.0])
    out = normalize_peak(x)
    assert np.max(np.abs(out)) <= 1.0
    assert np.isclose(np.max(np.abs(out)), 1.0)
    assert np.allclose(out / out[1], x / x[1])


def test_large_peaks_respect_target():
    rng = np.random.default_rng(0)
    for scale in (3.0, 1e3, 1e5):
        out = normalize_peak(scale * rng.standard_normal(1000), target=0.7)
        assert np.max(np.abs(out)) <= 0.7


def test_silence_returned_unchanged():
    x = np.zeros(16)
    out = normalize_peak(x)
    assert out is not x
    assert np.array_equal(out, x)
    assert normalize_peak(np.zeros(0)).size == 0


def test_normalize_does_not_mutate():
    x = np.array([0.1, 4.0, -3.0])
    normalize_peak(x, target=0.5)
    assert np.array_equal(x, [0.1, 4.0, -3.0])


def test_normalize_rejects_bad_target():
    with pytest.raises(ValueError):
        normalize_peak(np.ones(4), target=0.0)


def test_safety_check():
    assert safety_check(np.ones(8))[0]
    assert safety_check(np.zeros(0))[0]
    ok, msg = safety_check(np.array([0.0, np.nan]))
    assert not ok and "non-finite" in msg
    # Large but finite output is valid unless the caller sets a limit
    assert safety_check(np.array([2e9, -2e9]))[0]
    assert not safety_check(np.array([1e9]), limit=1e6)[0]
    assert safety_check(np.array([1e5]), limit=1e6)[0]


# ---- WAV I/O ----

def test_wav_round_trip():
    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, "x.wav")
        x = np.array([0.0, 0.5, -0.5, 2.0, -2.0])
        save_wav(path, x, 8000)
        y, sr = load_wav(path)
    assert sr == 8000
    assert np.allclose(y, np.clip(x, -1.0, 1.0), atol=1.0 / 16384)


def test_multichannel_reduction():
    stereo = np.stack([np.full(100, 16384), np.full(100, -16384)], axis=1).astype(np.int16)
    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, "stereo.wav")
        wavfile.write(path, 8000, stereo)
        first, _ = load_wav(path, channel="first")
        mean, _ = load_wav(path, channel="mean")
        resampled, sr = load_wav(path, sr=16000)
    assert np.allclose(first, 0.5)
    assert np.allclose(mean, 0.0)
    assert sr == 16000 and resampled.size == 200
    with pytest.raises(ValueError):
        load_wav("unused.wav", channel="left")


# ---- CLI ----

def test_cli_renders_file():
    rng = np.random.default_rng(1)
    with tempfile.TemporaryDirectory() as tmp:
        src = os.path.join(tmp, "in.wav")
        dst = os.path.join(tmp, "out.wav")
        save_wav(src, 0.1 * rng.standard_normal(8000), 8000)
        assert main([src, dst, "--stretch", "1.5", "--noise-seconds", "0.1"]) == 0
        out, sr = load_wav(dst)
    assert sr == 8000
    # 28 frames, 1 calibration, 27 streamed -> 41 output frames
    assert out.size == 40 * 256 + 1024


def test_cli_reports_short_input():
    with tempfile.TemporaryDirectory() as tmp:
        src = os.path.join(tmp, "short.wav")
        save_wav(src, np.zeros(500), 8000)
        assert main([src, os.path.join(tmp, "out.wav")]) == 1


if __name__ == "__main__":
    test_peak_lands_at_target()
    test_large_peaks_respect_target()
    test_silence_returned_unchanged()
    test_normalize_does_not_mutate()
    test_normalize_rejects_bad_target()
    test_safety_check()
    test_wav_round_trip()
    test_multichannel_reduction()
    test_cli_renders_file()
    test_cli_reports_short_input()
    print("\nDone!")

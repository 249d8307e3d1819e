"""Threaded staged pipeline: equivalence, cancellation, error propagation.

Run: uv run pytest tests/test_staged.py
"""

import os
import sys
import threading

import numpy as np
import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from shared.errors import (InsufficientDataError, InsufficientSamplesError,
                           InvalidConfigurationError)
from stretch.engine.noise import NoiseProfile
from stretch.engine.pipeline import PipelineState, StretchPipeline
from stretch.engine.staged import StagedStretchPipeline


def params(**overrides):
    p = {"sample_rate": 8000, "frame_size": 64, "hop_size": 16,
         "noise_calibration_frames": 4, "stretch_factor": 1.5}
    p.update(overrides)
    return p


def make_noise(n, seed=0):
    return 0.2 * np.random.default_rng(seed).standard_normal(n)


def chunks(x, size):
    for start in range(0, x.size, size):
        yield x[start:start + size]


@pytest.mark.parametrize("stretch", [0.6, 1.0, 1.5, 2.5])
def test_matches_sequential(stretch):
    x = make_noise(6000)
    p = params(stretch_factor=stretch)
    expected = StretchPipeline(p).process(x)
    staged = StagedStretchPipeline(p)
    result = staged.run(chunks(x, 500))
    assert staged.state == PipelineState.DONE
    assert result.output_frames == expected.output_frames
    assert np.array_equal(result.output, expected.output)
    assert np.array_equal(result.noise_profile.magnitude, expected.noise_profile.magnitude)


def test_tiny_queues_still_complete():
    x = make_noise(4000, seed=1)
    p = params(queue_size=1)
    expected = StretchPipeline(p).process(x).output
    assert np.array_equal(StagedStretchPipeline(p).run(x).output, expected)


def test_precomputed_profile():
    x = make_noise(3000, seed=2)
    profile = NoiseProfile(np.full(64, 0.1))
    expected = StretchPipeline(params(), noise_profile=profile).process(x)
    result = StagedStretchPipeline(params(), noise_profile=profile).run(x)
    assert result.calibration_frames == 0
    assert np.array_equal(result.output, expected.output)


def test_cancel_mid_stream():
    x = make_noise(10000, seed=3)
    cancel = threading.Event()

    def source():
        for i, chunk in enumerate(chunks(x, 500)):
            if i == 3:
                cancel.set()
            yield chunk

    full = StretchPipeline(params()).process(x)
    result = StagedStretchPipeline(params()).run(source(), cancel_event=cancel)
    assert result.cancelled
    assert result.output_frames < full.output_frames
    if result.output_frames:
        assert result.output.size == (result.output_frames - 1) * 16 + 64
    else:
        assert result.output.size == 0
    assert np.all(np.isfinite(result.output))
    assert np.max(np.abs(result.output), initial=0.0) <= 1.0


def test_state_readable_while_running():
    x = make_noise(8000, seed=4)
    staged = StagedStretchPipeline(params(queue_size=2))
    order = [PipelineState.CALIBRATING, PipelineState.STREAMING,
             PipelineState.FLUSHING, PipelineState.DONE]
    seen = []

    def source():
        # Runs on the segment thread, concurrently with the other stages
        for chunk in chunks(x, 250):
            seen.append(staged.state)
            yield chunk

    staged.run(source())
    seen.append(staged.state)
    assert all(s in order for s in seen)
    ranks = [order.index(s) for s in seen]
    assert ranks == sorted(ranks)
    assert seen[0] == PipelineState.CALIBRATING
    assert seen[-1] == PipelineState.DONE


def test_errors_reach_the_caller():
    with pytest.raises(InsufficientSamplesError):
        StagedStretchPipeline(params(noise_calibration_frames=0)).run(np.ones(40))
    with pytest.raises(InsufficientDataError):
        StagedStretchPipeline(params(noise_calibration_frames=50)).run(make_noise(400))


def test_invalid_configuration():
    with pytest.raises(InvalidConfigurationError):
        StagedStretchPipeline(params(hop_size=65))
    with pytest.raises(InvalidConfigurationError):
        StagedStretchPipeline(params(queue_size=0))
    with pytest.raises(InvalidConfigurationError):
        StagedStretchPipeline(params(), noise_profile=NoiseProfile.zeros(16))


def test_single_use():
    staged = StagedStretchPipeline(params())
    staged.run(make_noise(1000))
    with pytest.raises(RuntimeError):
        staged.run(make_noise(1000))


if __name__ == "__main__":
    for s in [0.6, 1.0, 1.5, 2.5]:
        test_matches_sequential(s)
    test_tiny_queues_still_complete()
    test_precomputed_profile()
    test_cancel_mid_stream()
    test_state_readable_while_running()
    test_errors_reach_the_caller()
    test_invalid_configuration()
    test_single_use()
    print("\nDone!")

"""Main render entry point for the denoising time stretcher.

Signal chain:
    Input -> Segment -> Window -> FFT -> [Noise calibration | Denoise]
          -> Phase-vocoder interpolate -> IFFT -> Window -> Overlap-add
          -> Window-sum compensation -> Peak normalize -> Output

State machine:
    CALIBRATING  the first K frames only feed the noise estimator
    STREAMING    every later frame is denoised, interpolated, synthesized
    FLUSHING     interpolator drains output frames past the last input
    DONE         accumulator finalized, normalizer has run once

All callers -- CLI, tests, staged pipeline -- use the same components;
render_stretch() is the one-call entry point.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum

import numpy as np

from primitives.framing import FrameSegmenter
from primitives.overlap_add import OutputAccumulator, OverlapAddSynthesizer
from primitives.transform import create_transform
from primitives.window import WindowTable
from shared.errors import (InsufficientSamplesError, InvalidConfigurationError,
                           NumericalInstabilityError)
from shared.normalize import normalize_peak, safety_check
from stretch.engine.interpolator import PhaseVocoderInterpolator
from stretch.engine.noise import (NoiseProfile, NoiseProfileEstimator, SpectralDenoiser,
                                  calibration_frame_count)
from stretch.engine.params import validate_params
from stretch.engine.spectrum import analyze_frame

log = logging.getLogger(__name__)


class PipelineState(Enum):
    CALIBRATING = "calibrating"
    STREAMING = "streaming"
    FLUSHING = "flushing"
    DONE = "done"


@dataclass
class StretchResult:
    accumulator: OutputAccumulator   # raw overlap-add sum, pre-normalization
    compensated: np.ndarray          # after window-sum compensation (if enabled)
    output: np.ndarray               # peak normalized
    noise_profile: NoiseProfile | None
    calibration_frames: int
    input_frames: int
    output_frames: int
    cancelled: bool = False

    @property
    def raw(self) -> np.ndarray:
        return self.accumulator.samples


def resolve_calibration_frames(params) -> int:
    """K from an explicit frame count, else from the calibration duration."""
    k = int(params["noise_calibration_frames"])
    if k >= 0:
        return k
    return calibration_frame_count(params["noise_calibration_duration"],
                                   params["sample_rate"],
                                   params["frame_size"], params["hop_size"])


def build_window(params, window=None) -> WindowTable:
    if window is None:
        return WindowTable.by_name(params["window"], params["frame_size"])
    if window.size != params["frame_size"]:
        raise InvalidConfigurationError(
            f"window size {window.size} does not match frame_size {params['frame_size']}")
    return window


def finish_output(accumulator, params):
    """Compensate, safety-check and normalize a finalized accumulator."""
    if params["window_compensation"]:
        compensated = accumulator.compensated()
    else:
        compensated = accumulator.samples.copy()
    ok, message = safety_check(compensated)
    if not ok:
        raise NumericalInstabilityError(message)
    output = normalize_peak(compensated, params["normalization_target"])
    return compensated, output


class StretchPipeline:
    """Sequential pipeline: push chunks with feed(), then finish().

    Usage:
        pipe = StretchPipeline({"stretch_factor": 2.0})
        for chunk in chunks:
            pipe.feed(chunk)
        result = pipe.finish()

    A pipeline instance processes exactly one stream.
    """

    def __init__(self, params=None, noise_profile: NoiseProfile | None = None,
                 window: WindowTable | None = None):
        self.params = validate_params(params)
        p = self.params
        self.frame_size = p["frame_size"]
        self.hop_size = p["hop_size"]

        self.window = build_window(p, window)
        self.transform = create_transform(p["transform"], self.frame_size)
        self.segmenter = FrameSegmenter(self.frame_size, self.hop_size)
        self.interpolator = PhaseVocoderInterpolator(p["stretch_factor"], self.frame_size)
        self.synthesizer = OverlapAddSynthesizer(self.window, self.hop_size, self.transform)

        self._state = PipelineState.CALIBRATING
        self._denoiser = None
        self._streamed = 0
        self._cancelled = False
        self._result = None

        if noise_profile is not None:
            if noise_profile.size != self.frame_size:
                raise InvalidConfigurationError(
                    f"noise profile has {noise_profile.size} bins, frame_size is {self.frame_size}")
            self.estimator = None
            self.calibration_frames = 0
            self._start_streaming(noise_profile)
        else:
            self.calibration_frames = resolve_calibration_frames(p)
            self.estimator = NoiseProfileEstimator(self.calibration_frames, self.frame_size)
            if self.estimator.frozen:
                self._start_streaming(self.estimator.profile)

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def noise_profile(self) -> NoiseProfile | None:
        return None if self._denoiser is None else self._denoiser.profile

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def feed(self, chunk):
        """Segment and process a chunk of samples."""
        if self._cancelled:
            return
        if self._state not in (PipelineState.CALIBRATING, PipelineState.STREAMING):
            raise RuntimeError(f"Cannot feed samples in state {self._state.name}")
        for frame in self.segmenter.push(chunk):
            self._process_frame(frame)

    def cancel(self):
        """Stop taking input; finish() returns the partial output."""
        if self._state != PipelineState.DONE and not self._cancelled:
            self._cancelled = True
            log.debug("cancelled after %d streamed frame(s)", self._streamed)

    def finish(self) -> StretchResult:
        if self._state == PipelineState.DONE:
            return self._result

        if not self._cancelled:
            self.segmenter.close()
            if self.estimator is not None:
                self.estimator.finish()
            if self._streamed == 0:
                raise InsufficientSamplesError(
                    f"No frames left after {self.calibration_frames} calibration frame(s)")
            self._set_state(PipelineState.FLUSHING)
            for out in self.interpolator.flush():
                self.synthesizer.add(out)
        else:
            self._set_state(PipelineState.FLUSHING)

        self._set_state(PipelineState.DONE)
        accumulator = self.synthesizer.finalize()
        compensated, output = finish_output(accumulator, self.params)
        self._result = StretchResult(
            accumulator=accumulator,
            compensated=compensated,
            output=output,
            noise_profile=self.noise_profile,
            calibration_frames=self.calibration_frames,
            input_frames=self._streamed,
            output_frames=accumulator.frames_added,
            cancelled=self._cancelled,
        )
        return self._result

    def process(self, source) -> StretchResult:
        """Feed a whole ndarray (or iterable of chunks) and finish."""
        if isinstance(source, np.ndarray):
            source = [source]
        for chunk in source:
            self.feed(chunk)
        return self.finish()

    # ---------- internal ----------

    def _process_frame(self, frame):
        spectral = analyze_frame(frame, self.window, self.transform)
        if self._state == PipelineState.CALIBRATING:
            if self.estimator.add(spectral):
                self._start_streaming(self.estimator.profile)
            return
        denoised = self._denoiser.apply(spectral.with_index(self._streamed))
        self._streamed += 1
        for out in self.interpolator.push(denoised):
            self.synthesizer.add(out)

    def _start_streaming(self, profile):
        self._denoiser = SpectralDenoiser(profile, self.params["oversubtraction"])
        self._set_state(PipelineState.STREAMING)

    def _set_state(self, state):
        log.debug("%s -> %s", self._state.name, state.name)
        self._state = state


def render_stretch(input_audio: np.ndarray, params: dict,
                   noise_profile: NoiseProfile | None = None) -> np.ndarray:
    """The single entry point. CLI and batch rendering call this.

    Args:
        input_audio: mono float64 array (samples,)
        params: parameter dict (see engine/params.py)
        noise_profile: optional precomputed profile; skips calibration

    Returns:
        stretched, denoised, peak-normalized mono float64 array
    """
    t0 = time.perf_counter()
    pipe = StretchPipeline(params, noise_profile=noise_profile)
    result = pipe.process(np.asarray(input_audio, dtype=np.float64))

    elapsed = time.perf_counter() - t0
    duration = len(input_audio) / pipe.params["sample_rate"]
    rtf = duration / elapsed if elapsed > 0 else float('inf')
    log.info("stretch %.1fs audio x%.2f in %.3fs (%d -> %d frames, %.0fx RT)",
             duration, pipe.params["stretch_factor"], elapsed,
             result.input_frames, result.output_frames, rtf)
    return result.output

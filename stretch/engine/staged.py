"""Staged pipeline: one worker thread per stage, bounded FIFOs between them.

    segment -> analyse -> calibrate/denoise -> interpolate -> synthesize

Queues carry immutable Frame / SpectralFrame values in index order. Each
stateful component (noise estimator, phase accumulator, output accumulator)
lives in exactly one stage. A full queue blocks its producer, so a slow
synthesizer throttles everything upstream instead of buffering unbounded.

Cancellation (a threading.Event from the caller) stops every stage at the
next frame boundary. Overlap-add additions are whole-frame, so the partial
accumulator is still valid and gets normalized and returned.
"""

import logging
import queue
import threading
import time

import numpy as np

from primitives.framing import FrameSegmenter
from primitives.overlap_add import OverlapAddSynthesizer
from primitives.transform import create_transform
from shared.errors import InsufficientSamplesError, InvalidConfigurationError
from stretch.engine.interpolator import PhaseVocoderInterpolator
from stretch.engine.noise import NoiseProfileEstimator, SpectralDenoiser
from stretch.engine.params import validate_params
from stretch.engine.pipeline import (PipelineState, StretchResult, build_window,
                                     finish_output, resolve_calibration_frames)
from stretch.engine.spectrum import analyze_frame

log = logging.getLogger(__name__)

_END = object()    # end-of-stream marker
_STOP = object()   # returned by _get when the pipeline is stopping
_POLL = 0.05       # seconds between cancellation checks while blocked


class StagedStretchPipeline:
    """Threaded equivalent of StretchPipeline; produces identical output.

    Usage:
        cancel = threading.Event()
        result = StagedStretchPipeline(params).run(chunks, cancel_event=cancel)
    """

    def __init__(self, params=None, noise_profile=None, window=None):
        self.params = validate_params(params)
        p = self.params
        self.frame_size = p["frame_size"]
        self.hop_size = p["hop_size"]
        self.queue_size = p["queue_size"]

        self.window = build_window(p, window)
        self.transform = create_transform(p["transform"], self.frame_size)
        self.segmenter = FrameSegmenter(self.frame_size, self.hop_size)
        self.interpolator = PhaseVocoderInterpolator(p["stretch_factor"], self.frame_size)
        self.synthesizer = OverlapAddSynthesizer(self.window, self.hop_size, self.transform)

        self._noise_profile = noise_profile
        if noise_profile is not None:
            if noise_profile.size != self.frame_size:
                raise InvalidConfigurationError(
                    f"noise profile has {noise_profile.size} bins, frame_size is {self.frame_size}")
            self.calibration_frames = 0
        else:
            self.calibration_frames = resolve_calibration_frames(p)

        self._state = PipelineState.CALIBRATING
        self._state_lock = threading.Lock()
        self._streamed = 0
        self._errors: list[BaseException] = []
        self._abort = threading.Event()
        self._cancel = None
        self._ran = False

    @property
    def state(self) -> PipelineState:
        """Current stage of the run; safe to read while run() is in progress."""
        with self._state_lock:
            return self._state

    def run(self, source, cancel_event: threading.Event | None = None) -> StretchResult:
        """Process an ndarray or an iterable of chunks to completion (or cancel)."""
        if self._ran:
            raise RuntimeError("StagedStretchPipeline is single-use")
        self._ran = True
        self._cancel = cancel_event or threading.Event()
        if isinstance(source, np.ndarray):
            source = [source]

        q_frames = queue.Queue(maxsize=self.queue_size)
        q_spectra = queue.Queue(maxsize=self.queue_size)
        q_denoised = queue.Queue(maxsize=self.queue_size)
        q_output = queue.Queue(maxsize=self.queue_size)

        stages = [
            ("segment", self._segment_stage, (source, q_frames)),
            ("analyse", self._analyse_stage, (q_frames, q_spectra)),
            ("denoise", self._denoise_stage, (q_spectra, q_denoised)),
            ("interpolate", self._interpolate_stage, (q_denoised, q_output)),
            ("synthesize", self._synthesize_stage, (q_output,)),
        ]
        t0 = time.perf_counter()
        threads = [threading.Thread(target=self._worker, args=(name, fn, args),
                                    name=f"stretch-{name}", daemon=True)
                   for name, fn, args in stages]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        if self._errors:
            raise self._errors[0]

        cancelled = self._cancel.is_set()
        self._set_state(PipelineState.DONE)
        accumulator = self.synthesizer.finalize()
        compensated, output = finish_output(accumulator, self.params)
        log.info("staged stretch: %d -> %d frames in %.3fs%s",
                 self._streamed, accumulator.frames_added, time.perf_counter() - t0,
                 " (cancelled)" if cancelled else "")
        return StretchResult(
            accumulator=accumulator,
            compensated=compensated,
            output=output,
            noise_profile=self._noise_profile,
            calibration_frames=self.calibration_frames,
            input_frames=self._streamed,
            output_frames=accumulator.frames_added,
            cancelled=cancelled,
        )

    # ---------- stages ----------

    def _segment_stage(self, source, out_q):
        for chunk in source:
            for frame in self.segmenter.push(chunk):
                if not self._put(out_q, frame):
                    return
            if self._stopping():
                return
        self.segmenter.close()
        self._put(out_q, _END)

    def _analyse_stage(self, in_q, out_q):
        while True:
            frame = self._get(in_q)
            if frame is _STOP:
                return
            if frame is _END:
                self._put(out_q, _END)
                return
            if not self._put(out_q, analyze_frame(frame, self.window, self.transform)):
                return

    def _denoise_stage(self, in_q, out_q):
        profile = self._noise_profile
        estimator = None
        if profile is None:
            estimator = NoiseProfileEstimator(self.calibration_frames, self.frame_size)
            if estimator.frozen:
                profile = estimator.profile
        denoiser = None
        if profile is not None:
            denoiser = self._start_streaming(profile)

        while True:
            spectral = self._get(in_q)
            if spectral is _STOP:
                return
            if spectral is _END:
                break
            if denoiser is None:
                if estimator.add(spectral):
                    denoiser = self._start_streaming(estimator.profile)
                continue
            denoised = denoiser.apply(spectral.with_index(self._streamed))
            self._streamed += 1
            if not self._put(out_q, denoised):
                return

        if estimator is not None:
            estimator.finish()
        if self._streamed == 0:
            raise InsufficientSamplesError(
                f"No frames left after {self.calibration_frames} calibration frame(s)")
        self._put(out_q, _END)

    def _interpolate_stage(self, in_q, out_q):
        while True:
            frame = self._get(in_q)
            if frame is _STOP:
                return
            if frame is _END:
                break
            for out in self.interpolator.push(frame):
                if not self._put(out_q, out):
                    return
        self._set_state(PipelineState.FLUSHING)
        for out in self.interpolator.flush():
            if not self._put(out_q, out):
                return
        self._put(out_q, _END)

    def _synthesize_stage(self, in_q):
        while True:
            frame = self._get(in_q)
            if frame is _STOP or frame is _END:
                return
            self.synthesizer.add(frame)

    # ---------- plumbing ----------

    def _start_streaming(self, profile):
        self._noise_profile = profile
        self._set_state(PipelineState.STREAMING)
        log.debug("calibration done (%d frames), streaming", self.calibration_frames)
        return SpectralDenoiser(profile, self.params["oversubtraction"])

    def _set_state(self, state):
        # Written from worker threads, read from any thread
        with self._state_lock:
            log.debug("%s -> %s", self._state.name, state.name)
            self._state = state

    def _worker(self, name, fn, args):
        try:
            fn(*args)
        except Exception as exc:
            # Re-raised from run() in the caller's thread
            log.debug("stage %s failed: %s", name, exc)
            self._errors.append(exc)
            self._abort.set()

    def _stopping(self):
        return self._abort.is_set() or self._cancel.is_set()

    def _put(self, q, item):
        """Blocking put that gives up when the pipeline stops."""
        while not self._stopping():
            try:
                q.put(item, timeout=_POLL)
                return True
            except queue.Full:
                continue
        return False

    def _get(self, q):
        while not self._stopping():
            try:
                return q.get(timeout=_POLL)
            except queue.Empty:
                continue
        return _STOP

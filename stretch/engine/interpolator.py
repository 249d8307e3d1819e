"""Phase-vocoder time-stretch interpolation.

Output frames are laid out at the same hop as the input; output frame i
reads from the fractional input position pos = i / s:

    lo = floor(pos), hi = ceil(pos), frac = pos - lo
    magnitude = (1 - frac) * mag[lo] + frac * mag[hi]
    phase_acc += wrap(phase[b] - phase[a])        # wrap -> (-pi, pi]
    output    = (magnitude, phase_acc)

The accumulated phase is never re-wrapped, so every bin keeps advancing by
one hop's worth of its instantaneous frequency per output frame. That is
what keeps partials continuous when frames are repeated or skipped.

Phase step pair (a, b): always the two adjacent input frames that close
the interval holding pos, i.e. (hi - 1, hi). An exact integer position
pos == lo therefore steps with (lo - 1, lo). At s == 1 this reproduces the
input phase exactly (mod 2*pi).

Output frame 0 copies input frame 0 and seeds the accumulator. Frames whose
hi falls past the last input frame are emitted as silence and leave the
accumulator untouched.
"""

import logging
import math

import numpy as np
from numba import njit

from shared.errors import InvalidConfigurationError
from stretch.engine.spectrum import SpectralFrame

log = logging.getLogger(__name__)

# Positions this close to an integer are treated as integers (i / s rounding)
_POS_SNAP = 1e-9


def output_frame_count(n_input: int, stretch_factor: float) -> int:
    """round(n_input * s), halves away from zero, never below one frame."""
    return max(1, int(math.floor(n_input * stretch_factor + 0.5)))


def source_position(i: int, stretch_factor: float) -> float:
    pos = i / stretch_factor
    nearest = round(pos)
    if abs(pos - nearest) < _POS_SNAP:
        return float(nearest)
    return pos


@njit(cache=True)
def _wrap(d):
    w = d - 2.0 * np.pi * np.floor((d + np.pi) / (2.0 * np.pi))
    if w <= -np.pi or w > np.pi:
        w = np.pi
    return w


def wrap_phase(d):
    """Wrap phase differences into (-pi, pi]."""
    d = np.asarray(d, dtype=np.float64)
    w = d - 2.0 * np.pi * np.floor((d + np.pi) / (2.0 * np.pi))
    return np.where((w <= -np.pi) | (w > np.pi), np.pi, w)


@njit(cache=True)
def _interpolate_bins(mag_lo, mag_hi, frac, phase_a, phase_b, acc, steps):
    """Per-bin magnitude blend + phase accumulation. Mutates acc and steps."""
    n = len(acc)
    out_mag = np.empty(n)
    out_phase = np.empty(n)
    for k in range(n):
        out_mag[k] = (1.0 - frac) * mag_lo[k] + frac * mag_hi[k]
        w = _wrap(phase_b[k] - phase_a[k])
        steps[k] = w
        acc[k] += w
        out_phase[k] = acc[k]
    return out_mag, out_phase


class PhaseVocoderInterpolator:
    """Maps denoised input frames onto ``round(n * s)`` output frames.

    Usage:
        interp = PhaseVocoderInterpolator(1.5, 1024)
        for frame in frames:              # strictly in index order
            for out in interp.push(frame):
                synth.add(out)
        for out in interp.flush():
            synth.add(out)

    push() emits only frames that are certain to belong to the final output
    and whose source frames have arrived; flush() emits the rest once the
    input length is known.
    """

    def __init__(self, stretch_factor: float, size: int):
        if not math.isfinite(stretch_factor) or stretch_factor <= 0:
            raise InvalidConfigurationError(f"stretch_factor must be > 0, got {stretch_factor}")
        self.stretch_factor = float(stretch_factor)
        self.size = size
        self._frames: dict[int, SpectralFrame] = {}
        self._received = 0
        self._next_out = 0
        self._acc = None
        self._zero_filled = 0
        self._flushed = False
        self.last_phase_steps = None

    @property
    def frames_received(self) -> int:
        return self._received

    @property
    def frames_emitted(self) -> int:
        return self._next_out

    @property
    def phase_accumulator(self) -> np.ndarray | None:
        return None if self._acc is None else self._acc.copy()

    def push(self, frame: SpectralFrame) -> list[SpectralFrame]:
        if self._flushed:
            raise RuntimeError("Interpolator already flushed; create a new one per stream")
        if frame.index != self._received:
            raise ValueError(f"Expected input frame {self._received}, got {frame.index}")
        if frame.size != self.size:
            raise ValueError(f"Expected {self.size} bins, got {frame.size}")
        self._frames[frame.index] = frame
        self._received += 1
        return self._drain(output_frame_count(self._received, self.stretch_factor),
                           final=False)

    def flush(self) -> list[SpectralFrame]:
        if self._flushed:
            return []
        self._flushed = True
        if self._received == 0:
            return []
        out = self._drain(output_frame_count(self._received, self.stretch_factor),
                          final=True)
        self._frames.clear()
        if self._zero_filled:
            log.debug("zero-filled %d tail frame(s) past input frame %d",
                      self._zero_filled, self._received - 1)
        return out

    def interpolate(self, frames) -> list[SpectralFrame]:
        """Whole-sequence convenience: push every frame, then flush."""
        out = []
        for frame in frames:
            out.extend(self.push(frame))
        out.extend(self.flush())
        return out

    def _drain(self, limit, final):
        out = []
        while self._next_out < limit:
            i = self._next_out
            if i == 0:
                seed = self._frames[0]
                self._acc = seed.phase.copy()
                out.append(seed.with_index(0))
            else:
                pos = source_position(i, self.stretch_factor)
                lo = int(math.floor(pos))
                hi = int(math.ceil(pos))
                if hi >= self._received:
                    if not final:
                        break
                    self._zero_filled += 1
                    out.append(SpectralFrame.zeros(self.size, i))
                else:
                    out.append(self._step(i, pos, lo, hi))
            self._next_out += 1
            self._prune()
        return out

    def _step(self, i, pos, lo, hi):
        frac = pos - lo
        f_lo = self._frames[lo]
        f_hi = self._frames[hi]
        f_a = self._frames[hi - 1]
        steps = np.empty(self.size)
        mag, phase = _interpolate_bins(f_lo.magnitude, f_hi.magnitude, frac,
                                       f_a.phase, f_hi.phase, self._acc, steps)
        self.last_phase_steps = steps
        return SpectralFrame(mag, phase, i)

    def _prune(self):
        """Forget input frames no later output frame can reference."""
        needed = int(math.ceil(source_position(self._next_out, self.stretch_factor))) - 1
        for idx in [k for k in self._frames if k < needed]:
            del self._frames[idx]

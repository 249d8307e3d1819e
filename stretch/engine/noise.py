"""Static noise profile estimation and magnitude spectral subtraction.

The first K analysed frames of the stream are assumed to contain only the
background noise. Their mean magnitude spectrum becomes the NoiseProfile,
frozen once and then subtracted from every later frame:

    magnitude_out[bin] = max(magnitude_in[bin] - noise[bin], 0)

Phase passes through untouched.
"""

import logging
import math
from dataclasses import dataclass

import numpy as np

from shared.errors import InsufficientDataError
from stretch.engine.spectrum import SpectralFrame

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class NoiseProfile:
    """Per-bin noise magnitude. Read-only once built."""

    magnitude: np.ndarray
    frames: int = 0

    def __post_init__(self):
        mag = np.array(self.magnitude, dtype=np.float64)
        if mag.ndim != 1:
            raise ValueError("noise magnitude must be 1-D")
        if np.any(mag < 0) or not np.all(np.isfinite(mag)):
            raise ValueError("noise magnitude must be finite and non-negative")
        mag.flags.writeable = False
        object.__setattr__(self, "magnitude", mag)

    @classmethod
    def zeros(cls, size: int) -> "NoiseProfile":
        return cls(np.zeros(size), 0)

    @property
    def size(self) -> int:
        return self.magnitude.size


def calibration_frame_count(duration, sr, frame_size, hop_size):
    """Frames that fit entirely inside the first ``duration`` seconds.

    At least one frame whenever a positive duration is requested, so a
    lead-in shorter than a frame still calibrates on the first frame.
    """
    if duration <= 0:
        return 0
    n = int(math.floor(duration * sr + 0.5))
    if n < frame_size:
        return 1
    return (n - frame_size) // hop_size + 1


class NoiseProfileEstimator:
    """Accumulates the magnitude spectra of the first K frames, then freezes.

    add() returns True once the profile is frozen; calls after that are
    no-ops, so later (possibly louder) noise never alters the profile.
    """

    def __init__(self, frames_required: int, size: int):
        if frames_required < 0:
            raise ValueError(f"frames_required must be >= 0, got {frames_required}")
        self.frames_required = frames_required
        self.size = size
        self._sum = np.zeros(size, dtype=np.float64)
        self._count = 0
        self._profile = None
        if frames_required == 0:
            self._freeze()

    @property
    def frozen(self) -> bool:
        return self._profile is not None

    @property
    def frames_seen(self) -> int:
        return self._count

    @property
    def profile(self) -> NoiseProfile:
        if self._profile is None:
            raise RuntimeError(
                f"Noise profile still calibrating ({self._count}/{self.frames_required} frames)")
        return self._profile

    def add(self, frame: SpectralFrame) -> bool:
        if self._profile is not None:
            return True
        if frame.size != self.size:
            raise ValueError(f"Expected {self.size} bins, got {frame.size}")
        self._sum += frame.magnitude
        self._count += 1
        if self._count >= self.frames_required:
            self._freeze()
        return self._profile is not None

    def finish(self) -> NoiseProfile:
        """Called at end of stream; raises if calibration never completed."""
        if self._profile is None:
            raise InsufficientDataError(
                f"Stream ended after {self._count} frames; noise calibration "
                f"needs {self.frames_required}")
        return self._profile

    def _freeze(self):
        if self._count:
            mean = self._sum / self._count
        else:
            mean = np.zeros(self.size)
        self._profile = NoiseProfile(mean, self._count)
        self._sum = None
        log.debug("noise profile frozen after %d frames (mean level %.3g)",
                  self._count, float(np.mean(mean)) if mean.size else 0.0)


class SpectralDenoiser:
    """Magnitude spectral subtraction against a frozen NoiseProfile."""

    def __init__(self, profile: NoiseProfile, oversubtraction: float = 1.0):
        if oversubtraction < 0:
            raise ValueError("oversubtraction must be >= 0")
        self.profile = profile
        self.oversubtraction = float(oversubtraction)
        self._noise = profile.magnitude * self.oversubtraction

    def apply(self, frame: SpectralFrame) -> SpectralFrame:
        if frame.size != self.profile.size:
            raise ValueError(
                f"Frame has {frame.size} bins, noise profile has {self.profile.size}")
        magnitude = np.maximum(frame.magnitude - self._noise, 0.0)
        return SpectralFrame(magnitude, frame.phase, frame.index)

"""Spectral frame type and analysis helper.

A SpectralFrame is the polar form (magnitude, phase) of one transformed
frame. Analysed frames store phase in (-pi, pi]; frames produced by the
interpolator carry the accumulated, unwrapped phase instead.
"""

from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class SpectralFrame:
    magnitude: np.ndarray
    phase: np.ndarray
    index: int

    def __post_init__(self):
        mag = np.array(self.magnitude, dtype=np.float64)
        phase = np.array(self.phase, dtype=np.float64)
        if mag.ndim != 1 or mag.shape != phase.shape:
            raise ValueError(f"magnitude {mag.shape} and phase {phase.shape} must be equal 1-D")
        if np.any(mag < 0):
            raise ValueError("magnitude must be non-negative")
        mag.flags.writeable = False
        phase.flags.writeable = False
        object.__setattr__(self, "magnitude", mag)
        object.__setattr__(self, "phase", phase)

    @classmethod
    def from_bins(cls, bins, index: int) -> "SpectralFrame":
        bins = np.asarray(bins, dtype=np.complex128)
        return cls(np.abs(bins), principal_phase(np.angle(bins)), index)

    @classmethod
    def zeros(cls, size: int, index: int) -> "SpectralFrame":
        return cls(np.zeros(size), np.zeros(size), index)

    @property
    def size(self) -> int:
        return self.magnitude.size

    @property
    def bins(self) -> np.ndarray:
        """Rectangular form: magnitude * exp(j * phase)."""
        return self.magnitude * np.exp(1j * self.phase)

    def with_index(self, index: int) -> "SpectralFrame":
        return SpectralFrame(self.magnitude, self.phase, index)


def principal_phase(phase):
    """Map angles from np.angle's [-pi, pi] onto (-pi, pi]."""
    phase = np.array(phase, dtype=np.float64)
    phase[phase <= -np.pi] = np.pi
    return phase


def analyze_frame(frame, window, transform) -> SpectralFrame:
    """Window a time-domain Frame and take its forward transform."""
    return SpectralFrame.from_bins(transform.forward(window.apply(frame.samples)),
                                   frame.index)

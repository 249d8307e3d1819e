"""Overlap-add resynthesis with a parallel window-energy buffer.

Each synthesis frame is inverse-transformed, multiplied by the synthesis
window and summed into the output at offset i * hop. The squared window is
summed at the same offsets, so regions of partial overlap (the first and
last hop) can be compensated instead of dipping at the hop rate.
"""

import numpy as np
from numba import njit


@njit(cache=True)
def _accumulate(buf, wsum, frame, window, offset):
    for k in range(len(frame)):
        buf[offset + k] += frame[k] * window[k]
        wsum[offset + k] += window[k] * window[k]


class OutputAccumulator:
    """Growable sum buffer plus window-energy buffer.

    Addition of whole frames is the only mutation. Once finalized the
    buffers are trimmed to ``(frames - 1) * hop + frame_size`` samples and
    become read-only.
    """

    def __init__(self, frame_size: int, hop: int, capacity_frames: int = 64):
        self.frame_size = frame_size
        self.hop = hop
        capacity = (max(1, capacity_frames) - 1) * hop + frame_size
        self._buf = np.zeros(capacity, dtype=np.float64)
        self._wsum = np.zeros(capacity, dtype=np.float64)
        self._frames = 0
        self._finalized = False

    @property
    def frames_added(self) -> int:
        return self._frames

    @property
    def finalized(self) -> bool:
        return self._finalized

    @property
    def length(self) -> int:
        if self._frames == 0:
            return 0
        return (self._frames - 1) * self.hop + self.frame_size

    @property
    def samples(self) -> np.ndarray:
        return self._buf[:self.length]

    @property
    def window_sum(self) -> np.ndarray:
        return self._wsum[:self.length]

    def add(self, frame, window, index: int):
        """Add one windowed frame at ``index * hop``. Indices must be 0, 1, 2, ..."""
        if self._finalized:
            raise RuntimeError("OutputAccumulator is finalized")
        if index != self._frames:
            raise ValueError(f"Expected frame {self._frames}, got {index}")
        end = index * self.hop + self.frame_size
        if end > self._buf.size:
            self._grow(end)
        _accumulate(self._buf, self._wsum, frame, window, index * self.hop)
        self._frames += 1

    def finalize(self) -> "OutputAccumulator":
        if not self._finalized:
            self._buf = self._buf[:self.length].copy()
            self._wsum = self._wsum[:self.length].copy()
            self._buf.flags.writeable = False
            self._wsum.flags.writeable = False
            self._finalized = True
        return self

    def compensated(self, floor: float = 0.5) -> np.ndarray:
        """New buffer divided by the window-energy sum.

        ``floor`` is relative to the largest (steady-state) sum: below
        ``floor * max`` the divisor is held at that level, so untapered
        frame ends (after denoising or stretching) get at most
        1/sqrt(floor * max) gain rather than ~1/w.
        """
        wsum = self.window_sum
        if wsum.size == 0 or wsum.max() <= 0:
            return self.samples.copy()
        return self.samples / np.maximum(wsum, floor * wsum.max())

    def _grow(self, needed):
        size = max(needed, 2 * self._buf.size)
        buf = np.zeros(size, dtype=np.float64)
        wsum = np.zeros(size, dtype=np.float64)
        buf[:self._buf.size] = self._buf
        wsum[:self._wsum.size] = self._wsum
        self._buf = buf
        self._wsum = wsum


class OverlapAddSynthesizer:
    """inverse() -> synthesis window -> add at i * hop.

    Usage:
        synth = OverlapAddSynthesizer(window, hop, transform)
        for frame in spectral_frames:      # strictly increasing index
            synth.add(frame)
        acc = synth.finalize()
    """

    def __init__(self, window, hop: int, transform=None, capacity_frames: int = 64):
        if hop <= 0 or hop > window.size:
            raise ValueError(f"hop must be in 1..{window.size}, got {hop}")
        if transform is not None and transform.size != window.size:
            raise ValueError("transform size must match the window size")
        self.window = window
        self.hop = hop
        self.transform = transform
        self.accumulator = OutputAccumulator(window.size, hop, capacity_frames)

    def add(self, spectral_frame):
        """Resynthesize one SpectralFrame and overlap-add it."""
        if self.transform is None:
            raise RuntimeError("No transform configured; use add_time_frame()")
        samples = self.transform.inverse(spectral_frame.bins)
        self.accumulator.add(samples, self.window.coefficients, spectral_frame.index)

    def add_time_frame(self, samples, index: int):
        """Overlap-add an already time-domain frame."""
        samples = np.asarray(samples, dtype=np.float64)
        if samples.shape != (self.window.size,):
            raise ValueError(f"Expected {self.window.size} samples, got {samples.shape}")
        self.accumulator.add(samples, self.window.coefficients, index)

    def finalize(self) -> OutputAccumulator:
        return self.accumulator.finalize()

    def compensated(self, floor: float = 0.5) -> np.ndarray:
        return self.accumulator.compensated(floor)

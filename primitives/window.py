"""Window table: immutable analysis/synthesis window coefficients."""

import numpy as np


class WindowTable:
    """Precomputed, read-only window of ``size`` non-negative coefficients.

    Usage:
        win = WindowTable.hann(1024)
        windowed = win.apply(frame)      # analysis, before forward()
        out = win.apply(time_frame)      # synthesis, after inverse()

    The same table is used for analysis and synthesis, so each overlap-add
    contribution carries ``window ** 2``.
    """

    def __init__(self, coefficients, name="custom"):
        coeffs = np.array(coefficients, dtype=np.float64).ravel()
        if coeffs.size == 0:
            raise ValueError("Window table must not be empty")
        if not np.all(np.isfinite(coeffs)):
            raise ValueError("Window coefficients must be finite")
        if np.any(coeffs < 0):
            raise ValueError("Window coefficients must be non-negative")
        coeffs.flags.writeable = False
        self._coeffs = coeffs
        self._squared = coeffs * coeffs
        self._squared.flags.writeable = False
        self.name = name

    @classmethod
    def hann(cls, size: int, periodic: bool = False) -> "WindowTable":
        """Hann window: 0.5 * (1 - cos(2*pi*n / (W-1))).

        periodic=True divides by W instead, which makes the squared window
        sum exactly constant at hop W/4.
        """
        if size <= 0:
            raise ValueError(f"Window size must be positive, got {size}")
        if size == 1:
            return cls([1.0], name="hann")
        n = np.arange(size)
        denom = size if periodic else size - 1
        coeffs = 0.5 * (1.0 - np.cos(2.0 * np.pi * n / denom))
        return cls(coeffs, name="hann_periodic" if periodic else "hann")

    @classmethod
    def from_coefficients(cls, coefficients) -> "WindowTable":
        return cls(coefficients)

    @classmethod
    def by_name(cls, name: str, size: int) -> "WindowTable":
        if name not in WINDOW_BUILDERS:
            raise ValueError(f"Unknown window '{name}'. Options: {list(WINDOW_BUILDERS)}")
        return WINDOW_BUILDERS[name](size)

    @property
    def size(self) -> int:
        return self._coeffs.size

    @property
    def coefficients(self) -> np.ndarray:
        return self._coeffs

    @property
    def squared(self) -> np.ndarray:
        return self._squared

    def apply(self, frame) -> np.ndarray:
        """Elementwise multiply; returns a new array."""
        frame = np.asarray(frame, dtype=np.float64)
        if frame.shape != self._coeffs.shape:
            raise ValueError(f"Frame length {frame.shape} does not match window size {self.size}")
        return frame * self._coeffs

    def cola_sum(self, hop: int) -> np.ndarray:
        """Sum of squared windows shifted by multiples of ``hop``, over one hop.

        Index j of the result is the steady-state overlap-add weight at
        offset j inside any hop once the overlap is complete.
        """
        if hop <= 0 or hop > self.size:
            raise ValueError(f"hop must be in 1..{self.size}, got {hop}")
        total = np.zeros(hop)
        for start in range(0, self.size, hop):
            chunk = self._squared[start:start + hop]
            total[:len(chunk)] += chunk
        return total

    def is_cola(self, hop: int, tol: float = 1e-9) -> bool:
        """True when the shifted squared windows sum to a constant."""
        total = self.cola_sum(hop)
        return bool(np.max(total) - np.min(total) <= tol * max(1.0, np.max(total)))

    def __len__(self):
        return self.size

    def __repr__(self):
        return f"WindowTable(name={self.name!r}, size={self.size})"


WINDOW_BUILDERS = {
    "hann": lambda size: WindowTable.hann(size),
    "hann_periodic": lambda size: WindowTable.hann(size, periodic=True),
}

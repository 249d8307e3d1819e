"""Spectral transform capability and its registry.

The pipeline only relies on forward()/inverse() being linear and invertible
at one fixed block size; which FFT computes them is a backend choice.
"""

from abc import ABC, abstractmethod

import numpy as np
import scipy.fft

from shared.errors import InvalidConfigurationError


class SpectralTransform(ABC):
    """Full-length complex transform of a fixed block size."""

    name: str = "base"

    def __init__(self, size: int):
        if size <= 0:
            raise InvalidConfigurationError(f"Transform size must be positive, got {size}")
        self.size = size

    def forward(self, frame) -> np.ndarray:
        """``size`` reals -> ``size`` complex bins."""
        frame = self._check(frame)
        return self._forward(frame)

    def inverse(self, spectrum) -> np.ndarray:
        """``size`` complex bins -> ``size`` reals (imaginary residue dropped)."""
        spectrum = self._check(spectrum)
        return np.real(self._inverse(spectrum)).astype(np.float64)

    @abstractmethod
    def _forward(self, frame: np.ndarray) -> np.ndarray:
        ...

    @abstractmethod
    def _inverse(self, spectrum: np.ndarray) -> np.ndarray:
        ...

    def _check(self, values):
        values = np.asarray(values)
        if values.shape != (self.size,):
            raise ValueError(f"Expected {self.size} values, got shape {values.shape}")
        return values


# Transform registry - populated by the decorator below
_TRANSFORM_REGISTRY: dict[str, type[SpectralTransform]] = {}


def register_transform(cls: type[SpectralTransform]) -> type[SpectralTransform]:
    _TRANSFORM_REGISTRY[cls.name] = cls
    return cls


def get_transform_names() -> list[str]:
    return list(_TRANSFORM_REGISTRY.keys())


def create_transform(name: str, size: int) -> SpectralTransform:
    if name not in _TRANSFORM_REGISTRY:
        raise InvalidConfigurationError(
            f"Unknown transform '{name}'. Options: {get_transform_names()}")
    return _TRANSFORM_REGISTRY[name](size)


@register_transform
class NumpyFFT(SpectralTransform):
    name = "numpy"

    def _forward(self, frame):
        return np.fft.fft(frame, n=self.size)

    def _inverse(self, spectrum):
        return np.fft.ifft(spectrum, n=self.size)


@register_transform
class ScipyFFT(SpectralTransform):
    name = "scipy"

    def _forward(self, frame):
        return scipy.fft.fft(frame, n=self.size)

    def _inverse(self, spectrum):
        return scipy.fft.ifft(spectrum, n=self.size)

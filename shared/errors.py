"""Exceptions raised by the stretch pipeline and its primitives."""


class StretchError(Exception):
    """Base class for every error the engine raises on purpose."""


class InvalidConfigurationError(StretchError, ValueError):
    """Parameters that can never produce a valid pipeline (bad sizes, s <= 0...)."""


class InsufficientSamplesError(StretchError):
    """The input stream is too short to produce a single usable frame."""


class InsufficientDataError(InsufficientSamplesError):
    """The stream ended before noise calibration collected its frames."""


class NumericalInstabilityError(StretchError):
    """The rendered output contains non-finite or exploded values."""

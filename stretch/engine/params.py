"""Parameter schema for the denoising time stretcher.

All callers (CLI, presets, tests) build a params dict in this format.
Defined declaratively using ParamDef; validate_params() is the single gate
every pipeline constructor goes through.
"""

import math
import numbers

from shared.errors import InvalidConfigurationError
from shared.params import ParamType as T, ParamDef, ParamSchema

SR = 44100

WINDOW_NAMES = ["hann", "hann_periodic"]
TRANSFORM_NAMES = ["numpy", "scipy"]

# ── Schema ────────────────────────────────────────────────────────────

_PARAMS = [
    # --- Analysis ---
    ParamDef("sample_rate", T.INT, section="analysis",
             default=SR, range=(1, 768000)),

    ParamDef("frame_size", T.INT, section="analysis",
             default=1024, range=(2, 65536)),

    ParamDef("hop_size", T.INT, section="analysis",
             default=256, range=(1, 65536)),

    ParamDef("window", T.CHOICE, section="analysis",
             default="hann", choices=WINDOW_NAMES),

    ParamDef("transform", T.CHOICE, section="analysis",
             default="numpy", choices=TRANSFORM_NAMES),

    # --- Noise ---
    ParamDef("noise_calibration_duration", T.FLOAT, section="noise",
             default=0.5, range=(0.0, 60.0)),

    # -1 derives K from the duration above
    ParamDef("noise_calibration_frames", T.INT, section="noise",
             default=-1, range=(-1, 100000)),

    ParamDef("oversubtraction", T.FLOAT, section="noise",
             default=1.0, range=(0.0, 10.0)),

    # --- Stretch ---
    ParamDef("stretch_factor", T.FLOAT, section="stretch",
             default=1.5, range=(0.01, 100.0)),

    # --- Output ---
    ParamDef("window_compensation", T.BOOL, section="output",
             default=True),

    ParamDef("normalization_target", T.FLOAT, section="output",
             default=1.0, range=(1e-6, 1.0)),

    # --- Staged pipeline ---
    ParamDef("queue_size", T.INT, section="staged",
             default=8, range=(1, 4096)),
]

SCHEMA = ParamSchema(_PARAMS)

default_params = SCHEMA.default_params
PARAM_RANGES = SCHEMA.param_ranges()
PARAM_SECTIONS = SCHEMA.param_sections()


def validate_params(params=None):
    """Merge ``params`` over the defaults and reject impossible settings.

    Raises InvalidConfigurationError; never clamps. Returns a new dict.
    """
    params = params or {}
    unknown = SCHEMA.unknown_keys(params)
    if unknown:
        raise InvalidConfigurationError(f"Unknown parameter(s): {', '.join(unknown)}")
    p = SCHEMA.merge(params)

    frame_size = _as_int(p, "frame_size")
    hop_size = _as_int(p, "hop_size")
    if frame_size <= 0:
        raise InvalidConfigurationError(f"frame_size must be positive, got {frame_size}")
    if hop_size <= 0:
        raise InvalidConfigurationError(f"hop_size must be positive, got {hop_size}")
    if hop_size > frame_size:
        raise InvalidConfigurationError(
            f"hop_size ({hop_size}) must not exceed frame_size ({frame_size})")

    stretch = _as_float(p, "stretch_factor")
    if not math.isfinite(stretch) or stretch <= 0:
        raise InvalidConfigurationError(f"stretch_factor must be > 0, got {stretch}")

    if _as_int(p, "sample_rate") <= 0:
        raise InvalidConfigurationError("sample_rate must be positive")

    target = _as_float(p, "normalization_target")
    if not math.isfinite(target) or target <= 0:
        raise InvalidConfigurationError(f"normalization_target must be > 0, got {target}")

    duration = _as_float(p, "noise_calibration_duration")
    if not math.isfinite(duration) or duration < 0:
        raise InvalidConfigurationError("noise_calibration_duration must be >= 0")
    if _as_int(p, "noise_calibration_frames") < -1:
        raise InvalidConfigurationError("noise_calibration_frames must be >= 0 (or -1 for auto)")

    oversub = _as_float(p, "oversubtraction")
    if not math.isfinite(oversub) or oversub < 0:
        raise InvalidConfigurationError("oversubtraction must be >= 0")

    if _as_int(p, "queue_size") < 1:
        raise InvalidConfigurationError("queue_size must be >= 1")

    if p["window"] not in WINDOW_NAMES:
        raise InvalidConfigurationError(
            f"Unknown window '{p['window']}'. Options: {WINDOW_NAMES}")
    if p["transform"] not in TRANSFORM_NAMES:
        raise InvalidConfigurationError(
            f"Unknown transform '{p['transform']}'. Options: {TRANSFORM_NAMES}")

    p["window_compensation"] = bool(p["window_compensation"])
    return p


def _as_int(p, key):
    value = p[key]
    if (isinstance(value, bool) or not isinstance(value, numbers.Real)
            or not math.isfinite(value) or value != int(value)):
        raise InvalidConfigurationError(f"{key} must be an integer, got {value!r}")
    p[key] = int(value)
    return p[key]


def _as_float(p, key):
    value = p[key]
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise InvalidConfigurationError(f"{key} must be a number, got {value!r}")
    p[key] = float(value)
    return p[key]

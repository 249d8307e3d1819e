"""Post-render output helpers.

safety_check rejects diverged output; normalize_peak scales a finished
buffer to a peak ceiling. Both leave their input untouched.
"""

import numpy as np

EPS = np.finfo(np.float64).eps


def safety_check(output, limit=None):
    """Reject non-finite output, and with ``limit`` set, peaks above it.

    Input scale is arbitrary (int32 full scale is ~2e9), so there is no
    absolute ceiling unless the caller asks for one.

    Returns (ok, error_message).
    """
    if output.size == 0:
        return True, ""
    if not np.all(np.isfinite(output)):
        return False, "ERROR: output diverged (non-finite values)"
    if limit is not None:
        peak = np.max(np.abs(output))
        if peak > limit:
            return False, f"ERROR: output exploded (peak={peak:.0e})"
    return True, ""


def normalize_peak(buffer, target=1.0, eps=EPS):
    """Scale so that max(|x|) lands just under ``target``.

    Silence (peak == 0) is returned as an unchanged copy, not an error.
    Always returns a new array.
    """
    if target <= 0:
        raise ValueError(f"target must be positive, got {target}")
    buffer = np.asarray(buffer, dtype=np.float64)
    if buffer.size == 0:
        return buffer.copy()
    peak = np.max(np.abs(buffer))
    if peak == 0:
        return buffer.copy()
    out = buffer * (target / (peak + eps))
    # eps vanishes against peaks above ~2; keep the ceiling exact
    np.clip(out, -target, target, out=out)
    return out

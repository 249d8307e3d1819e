"""WAV I/O for the offline renderer.

The stretch core only sees mono float64 sample arrays; decoding, channel
reduction and resampling happen here, before the core is invoked.
"""

from math import gcd

import numpy as np
from scipy.io import wavfile

CHANNEL_MODES = ["first", "mean"]


def load_wav(path, sr=None, channel="first"):
    """Load a WAV file as mono float64 in [-1, 1].

    channel="first" keeps the first channel, "mean" downmixes. With ``sr``
    set, audio is resampled to that rate.

    Returns (audio_array, sample_rate).
    """
    if channel not in CHANNEL_MODES:
        raise ValueError(f"channel must be one of {CHANNEL_MODES}, got {channel!r}")
    file_sr, data = wavfile.read(path)
    if data.dtype == np.int16:
        audio = data.astype(np.float64) / 32768.0
    elif data.dtype == np.int32:
        audio = data.astype(np.float64) / 2147483648.0
    elif data.dtype == np.uint8:
        audio = (data.astype(np.float64) - 128.0) / 128.0
    else:
        audio = data.astype(np.float64)

    if audio.ndim == 2:
        audio = audio[:, 0] if channel == "first" else audio.mean(axis=1)

    if sr is not None and file_sr != sr:
        from scipy.signal import resample_poly
        g = gcd(sr, file_sr)
        audio = resample_poly(audio, sr // g, file_sr // g)
        file_sr = sr
    return audio, file_sr


def save_wav(path, audio, sr):
    """Save mono float audio as 16-bit PCM. Samples beyond [-1, 1] are clipped."""
    out = (np.clip(audio, -1.0, 1.0) * 32767).astype(np.int16)
    wavfile.write(path, sr, out)

"""Frame segmenter: slices a sample stream into overlapping fixed frames."""

from dataclasses import dataclass

import numpy as np

from shared.errors import InsufficientSamplesError, InvalidConfigurationError


@dataclass(frozen=True)
class Frame:
    """W real samples starting at ``index * hop`` in the source stream."""

    samples: np.ndarray
    index: int
    hop: int

    def __post_init__(self):
        samples = np.array(self.samples, dtype=np.float64)
        samples.flags.writeable = False
        object.__setattr__(self, "samples", samples)

    @property
    def start(self) -> int:
        return self.index * self.hop

    @property
    def size(self) -> int:
        return self.samples.size


class FrameSegmenter:
    """Single-use segmenter: frame i starts at i*hop and spans frame_size samples.

    Usage:
        seg = FrameSegmenter(1024, 256)
        for chunk in source:
            for frame in seg.push(chunk):
                ...
        seg.close()

    or lazily:
        for frame in FrameSegmenter(1024, 256).segment(audio):
            ...

    Only full frames are produced. Callers that want the tail covered must
    zero-pad before segmenting.
    """

    def __init__(self, frame_size: int, hop_size: int):
        if frame_size <= 0:
            raise InvalidConfigurationError(f"frame_size must be positive, got {frame_size}")
        if hop_size <= 0 or hop_size > frame_size:
            raise InvalidConfigurationError(
                f"hop_size must be in 1..{frame_size}, got {hop_size}")
        self.frame_size = frame_size
        self.hop_size = hop_size
        self._buffer = np.zeros(0, dtype=np.float64)
        self._buffer_start = 0   # absolute sample index of _buffer[0]
        self._next_index = 0
        self._samples_seen = 0
        self._closed = False
        self._started = False

    @property
    def samples_seen(self) -> int:
        return self._samples_seen

    @property
    def frames_emitted(self) -> int:
        return self._next_index

    @property
    def closed(self) -> bool:
        return self._closed

    def push(self, chunk) -> list:
        """Append samples and return every frame that became complete."""
        if self._closed:
            raise RuntimeError("FrameSegmenter is closed; create a new one to reprocess")
        self._started = True
        chunk = np.asarray(chunk, dtype=np.float64)
        if chunk.ndim != 1:
            raise ValueError("Input audio must be 1-D (mono)")
        if chunk.size == 0:
            return []
        self._buffer = np.concatenate([self._buffer, chunk])
        self._samples_seen += chunk.size

        frames = []
        while True:
            start = self._next_index * self.hop_size - self._buffer_start
            if start + self.frame_size > self._buffer.size:
                break
            frames.append(Frame(self._buffer[start:start + self.frame_size],
                                self._next_index, self.hop_size))
            self._next_index += 1

        # Drop samples no future frame can reach
        keep_from = self._next_index * self.hop_size - self._buffer_start
        if keep_from > 0:
            keep_from = min(keep_from, self._buffer.size)
            self._buffer = self._buffer[keep_from:]
            self._buffer_start += keep_from
        return frames

    def close(self):
        """End the stream. Raises if not even one frame could be formed."""
        if self._closed:
            return
        self._closed = True
        self._buffer = np.zeros(0, dtype=np.float64)
        if self._samples_seen < self.frame_size:
            raise InsufficientSamplesError(
                f"Stream ended after {self._samples_seen} samples; "
                f"at least {self.frame_size} are needed for one frame")

    def segment(self, source):
        """Lazily yield frames from an ndarray or an iterable of chunks."""
        if self._started or self._closed:
            raise RuntimeError("FrameSegmenter already consumed; create a new one to reprocess")
        if isinstance(source, np.ndarray):
            source = [source]
        for chunk in source:
            yield from self.push(chunk)
        self.close()


def frame_count(n_samples: int, frame_size: int, hop_size: int) -> int:
    """Number of whole frames a stream of ``n_samples`` yields."""
    if n_samples < frame_size:
        return 0
    return (n_samples - frame_size) // hop_size + 1

"""Framing of the powermetrics byte stream into individual plist records."""

from collections.abc import Iterator
from typing import BinaryIO

from loguru import logger

from socpulse.errors import FramingError

START_MARKERS: tuple[bytes, ...] = (b"<?xml", b"<plist")
END_MARKER = b"</plist>"

DEFAULT_MAX_BUFFER = 10 * 1024 * 1024  # 10MB
DEFAULT_CHUNK_SIZE = 64 * 1024
MAX_CONSECUTIVE_FAILURES = 3


def is_complete(sample: bytes) -> bool:
    """Return True if ``sample`` carries a start marker and the end marker."""
    return END_MARKER in sample and any(marker in sample for marker in START_MARKERS)


class PlistFramer:
    """
    Incremental splitter for a stream of concatenated plist documents.

    Bytes are pushed in with :meth:`feed`, which returns every record
    completed so far. Anything in front of a start marker is log noise and is
    dropped. When the stream ends, :meth:`finish` hands back a dangling
    partial record once, so the caller can attempt (and count) it.
    """

    def __init__(self, max_buffer: int = DEFAULT_MAX_BUFFER) -> None:
        """
        Initialize the framer.

        Args:
            max_buffer: Hard cap on buffered bytes while waiting for an end
                marker. Exceeding it raises a fatal FramingError.
        """
        self._max_buffer = max_buffer
        self._buffer = bytearray()
        # Offset from which the end marker still has to be searched for
        self._scan_from = 0
        self._marker_tail = max(len(m) for m in START_MARKERS) - 1

    @property
    def buffered(self) -> int:
        """Number of bytes currently held back."""
        return len(self._buffer)

    def feed(self, chunk: bytes) -> list[bytes]:
        """
        Append ``chunk`` and return all records it completes.

        Raises:
            FramingError: (fatal) if the buffer outgrows ``max_buffer``
                without producing a record.
        """
        self._buffer.extend(chunk)
        samples: list[bytes] = []
        while True:
            sample = self._next_sample()
            if sample is None:
                break
            samples.append(sample)

        if len(self._buffer) > self._max_buffer:
            size = len(self._buffer)
            self._reset()
            raise FramingError(
                f"no complete record within {self._max_buffer} bytes (buffered {size})",
                fatal=True,
            )
        return samples

    def finish(self) -> bytes | None:
        """Return the dangling partial record at end of stream, if any."""
        start = self._find_start()
        token = bytes(self._buffer[start:]) if start >= 0 else None
        self._reset()
        return token

    def _next_sample(self) -> bytes | None:
        start = self._find_start()
        if start < 0:
            # Keep just enough bytes to recognise a marker split across reads
            if len(self._buffer) > self._marker_tail:
                del self._buffer[: len(self._buffer) - self._marker_tail]
            self._scan_from = 0
            return None

        if start > 0:
            del self._buffer[:start]
            self._scan_from = max(0, self._scan_from - start)

        end = self._buffer.find(END_MARKER, max(self._scan_from, 1))
        if end < 0:
            self._scan_from = max(0, len(self._buffer) - len(END_MARKER) + 1)
            return None

        stop = end + len(END_MARKER)
        sample = bytes(self._buffer[:stop])
        del self._buffer[:stop]
        self._scan_from = 0
        return sample

    def _find_start(self) -> int:
        positions = [pos for pos in (self._buffer.find(m) for m in START_MARKERS) if pos >= 0]
        return min(positions) if positions else -1

    def _reset(self) -> None:
        self._buffer.clear()
        self._scan_from = 0


class MalformedCounter:
    """Counts consecutive malformed records; soft degrade, never fatal."""

    def __init__(self, limit: int = MAX_CONSECUTIVE_FAILURES) -> None:
        self.limit = limit
        self.consecutive = 0
        self.total = 0

    def failure(self) -> bool:
        """Record a malformed record. Returns True when the limit was hit."""
        self.total += 1
        self.consecutive += 1
        if self.consecutive >= self.limit:
            logger.warning(f"{self.consecutive} consecutive malformed records, resetting")
            self.consecutive = 0
            return True
        return False

    def success(self) -> None:
        """Record a well-formed record."""
        self.consecutive = 0


def iter_samples(
    stream: BinaryIO,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    max_buffer: int = DEFAULT_MAX_BUFFER,
) -> Iterator[bytes]:
    """
    Yield framed records from a binary stream until it is exhausted.

    The dangling partial record at end of stream, if any, is yielded last.
    """
    framer = PlistFramer(max_buffer=max_buffer)
    # read1 returns as soon as some bytes are available on a pipe
    read = getattr(stream, "read1", stream.read)
    while True:
        chunk = read(chunk_size)
        if not chunk:
            break
        yield from framer.feed(chunk)

    tail = framer.finish()
    if tail is not None:
        logger.debug(f"stream ended inside a record ({len(tail)} bytes)")
        yield tail

"""
Fixed-size buffered read/write primitives used by every pipeline stage.
"""
from __future__ import annotations
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO, Iterator, Union

from .config import IO_CONFIG
from .errors import PipelineIOError

logger = logging.getLogger("VocalOnly")

PathLike = Union[str, Path]


class ChunkedReader:
    """
    Reads a binary stream in chunks of at most ``buffer_size`` bytes.
    A chunk is only shorter than the buffer at end of stream.
    """
    __slots__ = ('_stream', '_buffer_size', '_name', 'bytes_read', '_eof')

    def __init__(self, stream: BinaryIO, buffer_size: int = IO_CONFIG.buffer_size, name: str = "") -> None:
        if buffer_size <= 0:
            raise ValueError(f"buffer_size must be positive, got {buffer_size}")
        self._stream = stream
        self._buffer_size = buffer_size
        self._name = name or getattr(stream, 'name', '<stream>')
        self.bytes_read = 0
        self._eof = False

    @property
    def buffer_size(self) -> int:
        return self._buffer_size

    @property
    def exhausted(self) -> bool:
        """True once a read has hit end of stream."""
        return self._eof

    def read_chunk(self) -> bytes:
        """Read up to one buffer, looping over short reads. Returns b"" at EOF."""
        if self._eof:
            return b""
        buf = bytearray(self._buffer_size)
        view = memoryview(buf)
        filled = 0
        try:
            while filled < self._buffer_size:
                n = self._stream.readinto(view[filled:])
                if not n:
                    self._eof = True
                    break
                filled += n
        except OSError as e:
            raise PipelineIOError(f"Read failed on {self._name}: {e}", self._name) from e
        self.bytes_read += filled
        return bytes(buf[:filled])

    def __iter__(self) -> Iterator[bytes]:
        while True:
            chunk = self.read_chunk()
            if not chunk:
                return
            yield chunk


class ChunkedWriter:
    """Writes whole chunks to a binary stream and counts bytes."""
    __slots__ = ('_stream', '_name', 'bytes_written')

    def __init__(self, stream: BinaryIO, name: str = "") -> None:
        self._stream = stream
        self._name = name or getattr(stream, 'name', '<stream>')
        self.bytes_written = 0

    def write(self, data: bytes) -> int:
        if not data:
            return 0
        try:
            self._stream.write(data)
        except OSError as e:
            raise PipelineIOError(f"Write failed on {self._name}: {e}", self._name) from e
        self.bytes_written += len(data)
        return len(data)

    def flush(self) -> None:
        try:
            self._stream.flush()
        except OSError as e:
            raise PipelineIOError(f"Flush failed on {self._name}: {e}", self._name) from e


@contextmanager
def open_reader(path: PathLike, buffer_size: int = IO_CONFIG.buffer_size) -> Iterator[ChunkedReader]:
    """Open a file for chunked reading."""
    try:
        stream = open(path, 'rb')
    except OSError as e:
        raise PipelineIOError(f"Cannot open {path} for reading: {e}", path) from e
    with stream:
        yield ChunkedReader(stream, buffer_size, name=str(path))


@contextmanager
def open_writer(path: PathLike) -> Iterator[ChunkedWriter]:
    """Create (or truncate) a file for chunked writing."""
    try:
        stream = open(path, 'wb')
    except OSError as e:
        raise PipelineIOError(f"Cannot open {path} for writing: {e}", path) from e
    with stream:
        writer = ChunkedWriter(stream, name=str(path))
        yield writer
        writer.flush()


def copy_stream(src: BinaryIO, dst: BinaryIO, buffer_size: int = IO_CONFIG.buffer_size) -> int:
    """Copy src to dst chunk by chunk. Returns the number of bytes copied."""
    reader = ChunkedReader(src, buffer_size)
    writer = ChunkedWriter(dst)
    for chunk in reader:
        writer.write(chunk)
    writer.flush()
    logger.debug(f"Copied {writer.bytes_written} bytes")
    return writer.bytes_written

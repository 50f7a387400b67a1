"""
Subtraction engine: removes the instrumental from the full mix.

Works on the decoded raw streams byte by byte with 8-bit wraparound, in
lock-step fixed-size chunks, so memory use does not depend on track length.

Note that the difference is taken per byte, not per sample. For the int16
raw layout this is not signal-level phase cancellation (the borrow between a
sample's low and high byte is lost), but silence still subtracts to a no-op
and identical inputs still cancel to zero.
"""
from __future__ import annotations
import logging
import threading
from pathlib import Path
from typing import BinaryIO, Optional, Union

import numpy as np

from .chunked_io import ChunkedReader, ChunkedWriter, open_reader, open_writer
from .config import IO_CONFIG
from .errors import PipelineCancelled

logger = logging.getLogger("VocalOnly")


def subtract_chunk(first: bytes, second: bytes) -> bytes:
    """
    Byte-wise ``(first[i] - second[i]) mod 256``.

    Only the positions valid in both buffers are computed, so a short
    buffer's missing tail is never read and the result has the length of
    the shorter input.
    """
    n = min(len(first), len(second))
    if n == 0:
        return b""
    a = np.frombuffer(first, dtype=np.uint8, count=n)
    b = np.frombuffer(second, dtype=np.uint8, count=n)
    return np.subtract(a, b, dtype=np.uint8).tobytes()


def subtract_streams(
    first: BinaryIO,
    second: BinaryIO,
    out: BinaryIO,
    buffer_size: int = IO_CONFIG.buffer_size,
    cancel_event: Optional[threading.Event] = None
) -> int:
    """
    Write ``first - second`` to ``out`` and return the number of bytes written.

    Both inputs are consumed in lock-step. The run stops as soon as either
    input is exhausted; the tail of the longer one is discarded.
    """
    writer = ChunkedWriter(out)
    written = _subtract_readers(
        ChunkedReader(first, buffer_size),
        ChunkedReader(second, buffer_size),
        writer,
        cancel_event,
    )
    writer.flush()
    return written


def subtract_files(
    first_path: Union[str, Path],
    second_path: Union[str, Path],
    out_path: Union[str, Path],
    buffer_size: int = IO_CONFIG.buffer_size,
    cancel_event: Optional[threading.Event] = None
) -> int:
    """File based variant of :func:`subtract_streams`."""
    logger.info(f"Extracting vocals: {Path(first_path).name} - {Path(second_path).name}")
    with open_reader(first_path, buffer_size) as first, \
            open_reader(second_path, buffer_size) as second, \
            open_writer(out_path) as out:
        written = _subtract_readers(first, second, out, cancel_event)
    logger.info(f"Extraction wrote {written} bytes to {Path(out_path).name}")
    return written


def _subtract_readers(
    first: ChunkedReader,
    second: ChunkedReader,
    writer: ChunkedWriter,
    cancel_event: Optional[threading.Event]
) -> int:
    a = b = b""
    while True:
        if cancel_event is not None and cancel_event.is_set():
            raise PipelineCancelled("Subtraction cancelled")

        a = first.read_chunk()
        b = second.read_chunk()
        writer.write(subtract_chunk(a, b))

        if first.exhausted or second.exhausted:
            break

    if len(a) != len(b):
        logger.warning(
            "Subtraction inputs differ in length; output truncated to %d bytes",
            writer.bytes_written,
        )
    return writer.bytes_written

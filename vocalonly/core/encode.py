"""
Encode stage: raw int16 PCM file -> compressed, muxed audio file.
"""
from __future__ import annotations
import logging
import threading
from pathlib import Path
from typing import Callable, Optional, Union

from .chunked_io import ChunkedReader, open_reader
from .codecs import PcmEncoder, SoundFileMuxer
from .config import ENCODE_PROFILE, IO_CONFIG, EncodeProfile
from .errors import CodecInitError, PipelineCancelled
from .types import EncodedChunk, EncoderCapability, FormatChanged, Muxer

logger = logging.getLogger("VocalOnly")

EncoderFactory = Callable[[], EncoderCapability]
MuxerFactory = Callable[[Path], Muxer]


class _MuxSession:
    """Routes encoder outputs to the muxer once its track exists."""
    __slots__ = ('muxer', 'track', 'written', 'dropped')

    def __init__(self, muxer: Muxer) -> None:
        self.muxer = muxer
        self.track: Optional[int] = None
        self.written = 0
        self.dropped = 0

    @property
    def started(self) -> bool:
        return self.track is not None

    def handle(self, output) -> None:
        if isinstance(output, FormatChanged):
            if self.track is not None:
                raise CodecInitError("Encoder changed its output format twice")
            self.track = self.muxer.add_track(output.format)
            self.muxer.start()
        elif isinstance(output, EncodedChunk):
            if self.track is None:
                # format not negotiated yet, nowhere to put it
                self.dropped += 1
                return
            self.muxer.write_sample(self.track, output)
            self.written += 1


def run_encode(
    reader: ChunkedReader,
    encoder: EncoderCapability,
    muxer: Muxer,
    profile: EncodeProfile = ENCODE_PROFILE,
    cancel_event: Optional[threading.Event] = None
) -> int:
    """
    Feed raw PCM from ``reader`` through ``encoder`` into ``muxer``.
    Returns the number of chunks written to the container.
    """
    try:
        encoder.configure(profile)
    except (ValueError, RuntimeError) as e:
        raise CodecInitError(f"Encoder rejected profile {profile}: {e}") from e

    session = _MuxSession(muxer)
    try:
        input_done = False
        while True:
            if cancel_event is not None and cancel_event.is_set():
                raise PipelineCancelled("Encode cancelled")

            if not input_done:
                chunk = reader.read_chunk()
                if chunk:
                    encoder.feed(chunk)
                else:
                    encoder.feed(None)
                    input_done = True

            while True:
                output = encoder.drain()
                if output is None:
                    break
                session.handle(output)

            if input_done and encoder.is_finished():
                break
    finally:
        if session.started:
            muxer.stop()

    if session.dropped:
        logger.debug(f"Dropped {session.dropped} chunks produced before the output format")
    if not session.started:
        raise CodecInitError("Encoder finished without announcing an output format")
    return session.written


def encode_file(
    raw_path: Union[str, Path],
    out_path: Union[str, Path],
    profile: EncodeProfile = ENCODE_PROFILE,
    buffer_size: int = IO_CONFIG.buffer_size,
    cancel_event: Optional[threading.Event] = None,
    encoder_factory: EncoderFactory = PcmEncoder,
    muxer_factory: MuxerFactory = SoundFileMuxer
) -> Path:
    """Encode a raw file with ``profile`` and mux it into ``out_path``."""
    out_path = Path(out_path)
    rate = "lossless" if profile.lossless else f"{profile.bitrate} bps"
    logger.info(
        f"Encoding {Path(raw_path).name} -> {out_path.name} "
        f"({profile.codec}, {profile.sample_rate} Hz, {profile.channels} ch, {rate})"
    )
    with open_reader(raw_path, buffer_size) as reader:
        chunks = run_encode(reader, encoder_factory(), muxer_factory(out_path), profile, cancel_event)
    logger.info(f"Encoded {chunks} chunks into {out_path.name}")
    return out_path

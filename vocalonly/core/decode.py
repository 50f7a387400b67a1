"""
Decode stage: compressed track -> raw interleaved int16 PCM file.
"""
from __future__ import annotations
import dataclasses
import logging
import threading
from pathlib import Path
from typing import BinaryIO, Callable, Optional, Union

from .chunked_io import ChunkedWriter, open_writer
from .codecs import PcmDecoder, SoundFileDemuxer
from .config import IO_CONFIG
from .errors import CodecInitError, NoAudioStreamError, PipelineCancelled
from .types import AudioFormat, DecoderCapability, Demuxer, StreamInfo

logger = logging.getLogger("VocalOnly")

DemuxerFactory = Callable[[BinaryIO], Demuxer]
DecoderFactory = Callable[[], DecoderCapability]


def select_audio_stream(demuxer: Demuxer) -> StreamInfo:
    """Return the first audio stream of the container."""
    for stream in demuxer.streams:
        if stream.is_audio:
            return stream
    raise NoAudioStreamError("Container holds no audio stream")


def run_decode(
    demuxer: Demuxer,
    decoder: DecoderCapability,
    sink: Union[BinaryIO, ChunkedWriter],
    cancel_event: Optional[threading.Event] = None
) -> AudioFormat:
    """
    Pump access units from ``demuxer`` through ``decoder`` into ``sink``.

    Runs until the demuxer is exhausted and the decoder reports end of
    stream. Returns the source format with the raw sample layout.
    """
    stream = select_audio_stream(demuxer)
    try:
        decoder.configure(stream.format)
    except (ValueError, RuntimeError) as e:
        raise CodecInitError(f"Decoder rejected {stream.media_type}: {e}") from e
    demuxer.select(stream.index)

    writer = sink if isinstance(sink, ChunkedWriter) else ChunkedWriter(sink)
    input_done = False
    units = 0
    while True:
        if cancel_event is not None and cancel_event.is_set():
            raise PipelineCancelled("Decode cancelled")

        if not input_done:
            unit = demuxer.read_unit()
            decoder.feed(unit)  # None marks end of input
            input_done = unit is None
            if unit is not None:
                units += 1

        while True:
            pcm = decoder.drain()
            if pcm is None:
                break
            writer.write(pcm)

        if input_done and decoder.is_finished():
            break

    writer.flush()
    logger.debug(f"Decoded {units} access units into {writer.bytes_written} bytes")
    return dataclasses.replace(stream.format, sample_format=IO_CONFIG.raw_sample_format)


def decode_to_file(
    source: BinaryIO,
    out_path: Union[str, Path],
    cancel_event: Optional[threading.Event] = None,
    demuxer_factory: DemuxerFactory = SoundFileDemuxer,
    decoder_factory: DecoderFactory = PcmDecoder
) -> AudioFormat:
    """Decode one track into a raw file inside the work area."""
    name = getattr(source, 'name', '<stream>')
    logger.info(f"Decoding {name} -> {Path(out_path).name}")
    demuxer = demuxer_factory(source)
    try:
        with open_writer(out_path) as writer_file:
            fmt = run_decode(demuxer, decoder_factory(), writer_file, cancel_event)
    finally:
        demuxer.close()
    logger.info(
        f"Decoded {name}: {fmt.container}/{fmt.codec} {fmt.sample_rate} Hz, {fmt.channels} ch"
    )
    return fmt


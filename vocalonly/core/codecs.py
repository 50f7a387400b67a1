"""
libsndfile backed codec and container adapters.

soundfile performs the actual entropy decoding/encoding; these classes expose
it through the narrow push/pull protocols in ``types`` so the decode and
encode stages stay plain loops.
"""
from __future__ import annotations
import logging
from collections import deque
from pathlib import Path
from typing import BinaryIO, Optional, Union

import numpy as np
import soundfile as sf

from .config import IO_CONFIG, EncodeProfile
from .errors import CodecInitError, PipelineIOError, SourceError
from .types import AccessUnit, AudioFormat, EncodedChunk, EncoderOutput, FormatChanged, StreamInfo

logger = logging.getLogger("VocalOnly")

# Nominal Vorbis bitrates (kbps, stereo 44.1 kHz) for quality levels 0..10
_VORBIS_KBPS = np.array([64, 80, 96, 112, 128, 160, 192, 224, 256, 320, 500], dtype=np.float64)
_VORBIS_QUALITY = np.linspace(0.0, 1.0, len(_VORBIS_KBPS))


def compression_level_for(fmt: AudioFormat) -> Optional[float]:
    """
    Map a target bitrate onto libsndfile's 0..1 compression level.
    Returns None for lossless codecs or when no bitrate is requested.
    """
    if not fmt.bitrate or fmt.codec.upper().startswith(("PCM_", "ALAC_")):
        return None
    kbps = fmt.bitrate / 1000.0
    if fmt.codec.upper() == "VORBIS":
        quality = float(np.interp(kbps, _VORBIS_KBPS, _VORBIS_QUALITY))
    else:
        quality = float(np.interp(kbps, [32.0, 320.0], [0.0, 1.0]))
    return round(1.0 - quality, 3)


# =============================================================================
# DECODE SIDE
# =============================================================================

class SoundFileDemuxer:
    """
    Opens a compressed audio source with libsndfile and hands out blocks of
    frames as access units. Audio files carry a single audio stream.
    """

    def __init__(
        self,
        source: Union[str, Path, BinaryIO],
        block_frames: int = IO_CONFIG.decode_block_frames
    ) -> None:
        self._name = str(getattr(source, 'name', source))
        try:
            self._file = sf.SoundFile(source)
        except (sf.SoundFileError, RuntimeError) as e:
            raise SourceError(f"Cannot parse container {self._name}: {e}") from e
        self._block_frames = block_frames
        self._selected: Optional[int] = None
        self._position = 0

    @property
    def streams(self) -> list[StreamInfo]:
        f = self._file
        fmt = AudioFormat(
            sample_rate=f.samplerate,
            channels=f.channels,
            sample_format=f.subtype,
            container=f.format,
            codec=f.subtype,
        )
        return [StreamInfo(index=0, media_type=f"audio/{f.format.lower()}", format=fmt)]

    def select(self, index: int) -> None:
        if index != 0:
            raise SourceError(f"{self._name} has no stream {index}")
        self._selected = index

    def read_unit(self) -> Optional[AccessUnit]:
        if self._selected is None:
            raise SourceError(f"No stream selected on {self._name}")
        try:
            frames = self._file.read(self._block_frames, dtype='int16', always_2d=True)
        except (sf.SoundFileError, RuntimeError) as e:
            raise SourceError(f"Corrupt data in {self._name}: {e}") from e
        if len(frames) == 0:
            return None
        pts = self._position / self._file.samplerate
        self._position += len(frames)
        return AccessUnit(data=frames.tobytes(), pts=pts, frames=len(frames))

    def close(self) -> None:
        self._file.close()

    def __enter__(self) -> "SoundFileDemuxer":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class PcmDecoder:
    """Turns native int16 access units into interleaved little-endian int16 PCM."""

    def __init__(self) -> None:
        self._format: Optional[AudioFormat] = None
        self._pending: deque[bytes] = deque()
        self._eos = False

    def configure(self, fmt: AudioFormat) -> None:
        if fmt.sample_rate <= 0 or fmt.channels <= 0:
            raise CodecInitError(
                f"Unsupported input format: {fmt.sample_rate} Hz, {fmt.channels} channels"
            )
        self._format = fmt

    def feed(self, unit: Optional[AccessUnit]) -> bool:
        if self._format is None:
            raise CodecInitError("Decoder used before configure()")
        if self._eos:
            return False
        if unit is None:
            self._eos = True
            return True
        samples = np.frombuffer(unit.data, dtype=np.int16)
        if samples.size != unit.frames * self._format.channels:
            raise SourceError(
                f"Access unit at {unit.pts:.3f}s holds {samples.size} samples, "
                f"expected {unit.frames * self._format.channels}"
            )
        self._pending.append(samples.astype('<i2').tobytes())
        return True

    def drain(self) -> Optional[bytes]:
        return self._pending.popleft() if self._pending else None

    def is_finished(self) -> bool:
        return self._eos and not self._pending


# =============================================================================
# ENCODE SIDE
# =============================================================================

class PcmEncoder:
    """
    Accepts raw int16 PCM and emits frame aligned chunks for the
    muxer, which hands them to libsndfile for the actual compression.
    The output format is only announced once the first input arrives.
    """

    def __init__(self) -> None:
        self._profile: Optional[EncodeProfile] = None
        self._buffer = bytearray()
        self._pending: deque[EncoderOutput] = deque()
        self._format_sent = False
        self._frames_out = 0
        self._eos = False

    def configure(self, profile: EncodeProfile) -> None:
        if profile.sample_rate <= 0 or profile.channels <= 0:
            raise CodecInitError(
                f"Invalid encode profile: {profile.sample_rate} Hz, {profile.channels} channels"
            )
        if not sf.check_format(profile.container, profile.codec):
            raise CodecInitError(
                f"libsndfile cannot write {profile.codec} into {profile.container}"
            )
        self._profile = profile

    @property
    def frame_size(self) -> int:
        return 2 * self._profile.channels

    def feed(self, data: Optional[bytes]) -> bool:
        if self._profile is None:
            raise CodecInitError("Encoder used before configure()")
        if self._eos:
            return False

        if not self._format_sent:
            p = self._profile
            self._pending.append(FormatChanged(AudioFormat(
                sample_rate=p.sample_rate,
                channels=p.channels,
                sample_format="PCM_16",
                container=p.container,
                codec=p.codec,
                bitrate=p.bitrate,
            )))
            self._format_sent = True

        if data is None:
            self._eos = True
            if self._buffer:
                logger.warning(f"Dropping {len(self._buffer)} trailing bytes (partial frame)")
                self._buffer.clear()
            return True

        self._buffer += data
        whole = len(self._buffer) - len(self._buffer) % self.frame_size
        if whole:
            frames = whole // self.frame_size
            payload = bytes(self._buffer[:whole])
            del self._buffer[:whole]
            self._pending.append(EncodedChunk(
                data=payload,
                pts=self._frames_out / self._profile.sample_rate,
                frames=frames,
            ))
            self._frames_out += frames
        return True

    def drain(self) -> Optional[EncoderOutput]:
        return self._pending.popleft() if self._pending else None

    def is_finished(self) -> bool:
        return self._eos and not self._pending


class SoundFileMuxer:
    """Writes one audio track into a container file through libsndfile."""

    def __init__(self, path: Union[str, Path]) -> None:
        self._path = Path(path)
        self._format: Optional[AudioFormat] = None
        self._file: Optional[sf.SoundFile] = None
        self.frames_written = 0

    @property
    def started(self) -> bool:
        return self._file is not None

    def add_track(self, fmt: AudioFormat) -> int:
        if self._format is not None:
            raise CodecInitError("Muxer already has a track")
        self._format = fmt
        return 0

    def start(self) -> None:
        if self._format is None:
            raise CodecInitError("Muxer started without a track")
        fmt = self._format
        kwargs = {}
        level = compression_level_for(fmt)
        if level is not None:
            kwargs['compression_level'] = level
        try:
            self._file = sf.SoundFile(
                str(self._path), 'w',
                samplerate=fmt.sample_rate,
                channels=fmt.channels,
                format=fmt.container,
                subtype=fmt.codec,
                **kwargs,
            )
        except (sf.SoundFileError, RuntimeError) as e:
            raise PipelineIOError(f"Cannot create {self._path}: {e}", self._path) from e
        logger.debug(f"Muxer started: {fmt.container}/{fmt.codec} {fmt.sample_rate} Hz x{fmt.channels}")

    def write_sample(self, track: int, chunk: EncodedChunk) -> None:
        if self._file is None or track != 0:
            raise CodecInitError(f"Track {track} is not writable")
        frames = np.frombuffer(chunk.data, dtype='<i2').reshape(-1, self._format.channels)
        try:
            self._file.write(frames)
        except (sf.SoundFileError, RuntimeError) as e:
            raise PipelineIOError(f"Write failed on {self._path}: {e}", self._path) from e
        self.frames_written += len(frames)

    def stop(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None

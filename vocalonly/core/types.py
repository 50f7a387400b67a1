"""
Type definitions for the VocalOnly core module.
Provides type aliases, data records and the capability protocols that the
decode/encode stages drive, so tests can inject fakes in place of libsndfile.
"""
from __future__ import annotations
import os
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Callable, Optional, Protocol, Union

from .config import EncodeProfile, PipelineState

# Caller supplied reference to a compressed track
TrackRef = Union[str, os.PathLike]

# Callback types
ProgressCallback = Callable[[PipelineState], None]


@dataclass(frozen=True, slots=True)
class AudioFormat:
    """Audio format descriptor discovered by demuxing or negotiated by an encoder."""
    sample_rate: int
    channels: int
    sample_format: str = "PCM_16"
    container: str = ""
    codec: str = ""
    bitrate: Optional[int] = None

    @property
    def frame_size(self) -> int:
        """Bytes per interleaved frame of the raw int16 layout."""
        return 2 * self.channels


@dataclass(frozen=True, slots=True)
class StreamInfo:
    """One elementary stream inside a container."""
    index: int
    media_type: str  # e.g. "audio/flac"
    format: AudioFormat

    @property
    def is_audio(self) -> bool:
        return self.media_type.startswith("audio/")


@dataclass(frozen=True, slots=True)
class AccessUnit:
    """A unit of compressed-side data handed from a demuxer to a decoder."""
    data: bytes
    pts: float  # seconds
    frames: int


@dataclass(frozen=True, slots=True)
class EncodedChunk:
    """A unit produced by an encoder, ready to be written to a muxer track."""
    data: bytes
    pts: float
    frames: int


@dataclass(frozen=True, slots=True)
class FormatChanged:
    """The encoder's one finalized-format event."""
    format: AudioFormat


EncoderOutput = Union[EncodedChunk, FormatChanged]


class Demuxer(Protocol):
    """Container reader exposing its streams and their access units."""
    @property
    def streams(self) -> list[StreamInfo]: ...
    def select(self, index: int) -> None: ...
    def read_unit(self) -> Optional[AccessUnit]: ...
    def close(self) -> None: ...


class DecoderCapability(Protocol):
    """Push/pull decoder: feed access units, drain raw PCM bytes."""
    def configure(self, fmt: AudioFormat) -> None: ...
    def feed(self, unit: Optional[AccessUnit]) -> bool: ...
    def drain(self) -> Optional[bytes]: ...
    def is_finished(self) -> bool: ...


class EncoderCapability(Protocol):
    """Push/pull encoder: feed raw PCM bytes, drain chunks and one format event."""
    def configure(self, profile: EncodeProfile) -> None: ...
    def feed(self, data: Optional[bytes]) -> bool: ...
    def drain(self) -> Optional[EncoderOutput]: ...
    def is_finished(self) -> bool: ...


class Muxer(Protocol):
    """Single-file container writer."""
    def add_track(self, fmt: AudioFormat) -> int: ...
    def start(self) -> None: ...
    def write_sample(self, track: int, chunk: EncodedChunk) -> None: ...
    def stop(self) -> None: ...


class SourceResolver(Protocol):
    """Opens caller track references and looks up their display names."""
    def open(self, ref: TrackRef) -> BinaryIO: ...
    def display_name(self, ref: TrackRef) -> str: ...


class MediaLibrary(Protocol):
    """Durable storage that allocates named locations in logical folders."""
    def insert(self, display_name: str, folder: str) -> Path: ...
    def open_sink(self, location: Path) -> BinaryIO: ...


class PipelineResult:
    """Result of one extraction run."""
    __slots__ = ('success', 'output', 'error')

    def __init__(
        self,
        success: bool,
        output: Optional[Path] = None,
        error: Optional[BaseException] = None
    ):
        self.success = success
        self.output = output
        self.error = error

    def __repr__(self) -> str:
        return f"PipelineResult(success={self.success}, output={self.output!r}, error={self.error!r})"

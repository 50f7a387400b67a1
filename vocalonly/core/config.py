"""
Centralized configuration for VocalOnly.
All magic numbers and default settings in one place.
"""
from __future__ import annotations
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class PipelineState(Enum):
    """Coarse progress of one extraction run."""
    IDLE = "idle"
    DECODING = "decoding"
    EXTRACTING = "extracting"
    ENCODING = "encoding"
    FINALIZING = "finalizing"


@dataclass(frozen=True, slots=True)
class IOConfig:
    """Chunked I/O settings shared by every stage."""
    buffer_size: int = 8192
    decode_block_frames: int = 4096  # frames per access unit read from a container
    raw_sample_format: str = "PCM_16"  # interleaved little-endian int16


@dataclass(frozen=True, slots=True)
class EncodeProfile:
    """Fixed target profile for the encode stage."""
    container: str = "OGG"
    codec: str = "VORBIS"
    sample_rate: int = 44100
    channels: int = 2
    bitrate: int | None = 192_000
    extension: str = ".ogg"

    @property
    def lossless(self) -> bool:
        return self.codec.upper().startswith(("PCM_", "ALAC_"))


@dataclass(frozen=True, slots=True)
class StorageConfig:
    """Durable media library settings."""
    root: Path = field(default_factory=lambda: Path(
        os.getenv("VOCALONLY_LIBRARY_DIR", str(Path.home()))
    ))
    folder: str = "Music/VocalOnlyTrack"


@dataclass(frozen=True, slots=True)
class PipelineConfig:
    """Settings for one orchestrated run."""
    io: IOConfig = field(default_factory=IOConfig)
    profile: EncodeProfile = field(default_factory=EncodeProfile)
    work_root: Path | None = None  # None uses the system temp dir
    work_prefix: str = "vocalonly_"


# Global config instances (immutable singletons)
IO_CONFIG = IOConfig()
ENCODE_PROFILE = EncodeProfile()
LOSSLESS_PROFILE = EncodeProfile(container="FLAC", codec="PCM_16", bitrate=None, extension=".flac")
STORAGE_CONFIG = StorageConfig()
PIPELINE_CONFIG = PipelineConfig()

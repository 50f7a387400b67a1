"""
Pytest configuration and fixtures for VocalOnly tests.
"""
import pytest
import numpy as np
import soundfile as sf

from vocalonly.core.config import LOSSLESS_PROFILE, PipelineConfig
from vocalonly.core.pipeline import VocalExtractionPipeline
from vocalonly.core.storage import LocalMediaLibrary

SAMPLE_RATE = 44100


def sine_stereo(seconds=1.0, sr=SAMPLE_RATE, amplitude=0.5):
    """Stereo int16 sine (440 Hz left, 880 Hz right)."""
    t = np.arange(int(sr * seconds)) / sr
    left = amplitude * np.sin(2 * np.pi * 440 * t)
    right = amplitude * np.sin(2 * np.pi * 880 * t)
    return (np.column_stack((left, right)) * 32767).astype(np.int16)


def raw_bytes(samples):
    """Raw stream layout: interleaved little-endian int16."""
    return samples.astype('<i2').tobytes()


@pytest.fixture
def full_mix_samples() -> np.ndarray:
    """1 second of stereo 44.1 kHz audio."""
    return sine_stereo()


@pytest.fixture
def full_mix_file(tmp_path, full_mix_samples):
    """The full mix written as a FLAC file."""
    path = tmp_path / "full_mix.flac"
    sf.write(path, full_mix_samples, SAMPLE_RATE, format="FLAC", subtype="PCM_16")
    return path


@pytest.fixture
def silent_instrumental_file(tmp_path, full_mix_samples):
    """A silent instrumental of the same format and length."""
    path = tmp_path / "instrumental.flac"
    sf.write(path, np.zeros_like(full_mix_samples), SAMPLE_RATE, format="FLAC", subtype="PCM_16")
    return path


@pytest.fixture
def identical_instrumental_file(tmp_path, full_mix_samples):
    """An instrumental identical to the full mix."""
    path = tmp_path / "instrumental_same.flac"
    sf.write(path, full_mix_samples, SAMPLE_RATE, format="FLAC", subtype="PCM_16")
    return path


@pytest.fixture
def library(tmp_path) -> LocalMediaLibrary:
    return LocalMediaLibrary(tmp_path / "library")


@pytest.fixture
def work_root(tmp_path):
    path = tmp_path / "work"
    path.mkdir()
    return path


@pytest.fixture
def lossless_config(work_root) -> PipelineConfig:
    """Pipeline config that encodes to lossless FLAC so outputs compare exactly."""
    return PipelineConfig(profile=LOSSLESS_PROFILE, work_root=work_root)


@pytest.fixture
def pipeline(library, lossless_config) -> VocalExtractionPipeline:
    return VocalExtractionPipeline(library=library, config=lossless_config)


class DeniedLibrary(LocalMediaLibrary):
    """Media library whose store refuses every insert."""
    __slots__ = ()

    def insert(self, display_name, folder="Music/VocalOnlyTrack"):
        raise PermissionError("media store denied")

"""
VocalOnly Core Module

This module contains the streaming media pipeline:
- VocalExtractionPipeline: Orchestrates decode -> extract -> encode -> publish
- PipelineRun: Per-run progress channel and handle
- decode / subtract / encode: The individual stages
- codecs: libsndfile backed demuxer, decoder, encoder and muxer
- storage: Source resolver and media library
"""
from .pipeline import PipelineRun, VocalExtractionPipeline, work_area
from .storage import LocalMediaLibrary, LocalSourceResolver, output_name
from .subtract import subtract_chunk, subtract_files, subtract_streams
from .types import AudioFormat, PipelineResult
from .errors import (
    CodecInitError,
    NoAudioStreamError,
    PipelineCancelled,
    PipelineError,
    PipelineIOError,
    SourceError,
)
from .config import (
    ENCODE_PROFILE,
    IO_CONFIG,
    LOSSLESS_PROFILE,
    PIPELINE_CONFIG,
    STORAGE_CONFIG,
    EncodeProfile,
    PipelineConfig,
    PipelineState
)
from . import codecs
from . import decode
from . import encode

__all__ = [
    # Main classes
    'VocalExtractionPipeline',
    'PipelineRun',
    'PipelineResult',
    'AudioFormat',
    'LocalMediaLibrary',
    'LocalSourceResolver',
    # Functions
    'work_area',
    'output_name',
    'subtract_chunk',
    'subtract_files',
    'subtract_streams',
    # Errors
    'PipelineError',
    'SourceError',
    'NoAudioStreamError',
    'CodecInitError',
    'PipelineIOError',
    'PipelineCancelled',
    # Config
    'ENCODE_PROFILE',
    'IO_CONFIG',
    'LOSSLESS_PROFILE',
    'PIPELINE_CONFIG',
    'STORAGE_CONFIG',
    'EncodeProfile',
    'PipelineConfig',
    'PipelineState',
    # Submodules
    'codecs',
    'decode',
    'encode',
]

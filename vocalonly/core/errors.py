from __future__ import annotations


class PipelineError(Exception):
    """Base error for the vocal extraction pipeline."""


class SourceError(PipelineError):
    """Raised when a track cannot be opened or its container cannot be parsed."""


class NoAudioStreamError(SourceError):
    """Raised when a container holds no audio stream."""


class CodecInitError(PipelineError):
    """Raised when a decoder or encoder rejects its format or profile."""


class PipelineIOError(PipelineError):
    """Raised when reading or writing the work area or media library fails."""

    def __init__(self, message: str, path: object = None) -> None:
        super().__init__(message)
        self.path = path


class PipelineCancelled(PipelineError):
    """Raised inside a stage when its run was cancelled."""

"""
Source access and durable media library for VocalOnly.
Both sides are filesystem backed here; other hosts can supply their own
objects matching the SourceResolver / MediaLibrary protocols.
"""
from __future__ import annotations
import logging
import os
from pathlib import Path
from typing import BinaryIO, Optional

from .config import STORAGE_CONFIG
from .errors import PipelineIOError, SourceError
from .types import TrackRef

logger = logging.getLogger("VocalOnly")


def output_name(display_name: str, extension: str) -> str:
    """Name of the published file: the full mix's display name plus the codec extension."""
    if not extension.startswith("."):
        extension = "." + extension
    return f"{display_name}{extension}"


class LocalSourceResolver:
    """Opens track references that are local file paths."""

    def open(self, ref: TrackRef) -> BinaryIO:
        try:
            return open(ref, 'rb')
        except OSError as e:
            raise SourceError(f"Cannot open track {ref}: {e}") from e

    def display_name(self, ref: TrackRef) -> str:
        return Path(os.fspath(ref)).name


class LocalMediaLibrary:
    """
    Stores published tracks under ``root/<folder>``.
    Like a media store, a name that is already taken gets a " (n)" suffix
    instead of being overwritten.
    """
    __slots__ = ('_root',)

    def __init__(self, root: Optional[Path] = None) -> None:
        self._root = Path(root) if root is not None else STORAGE_CONFIG.root

    @property
    def root(self) -> Path:
        return self._root

    def insert(self, display_name: str, folder: str = STORAGE_CONFIG.folder) -> Path:
        """Allocate a new, empty location for ``display_name`` and return it."""
        target_dir = self._root / folder
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PipelineIOError(f"Cannot create {target_dir}: {e}", target_dir) from e

        stem, suffix = _split_name(display_name)
        candidate = target_dir / display_name
        n = 0
        while True:
            try:
                # 'x' refuses existing files
                with open(candidate, 'xb'):
                    pass
                break
            except FileExistsError:
                n += 1
                candidate = target_dir / f"{stem} ({n}){suffix}"
            except OSError as e:
                raise PipelineIOError(f"Cannot create {candidate}: {e}", candidate) from e
        logger.debug(f"Allocated library location {candidate}")
        return candidate

    def open_sink(self, location: Path) -> BinaryIO:
        try:
            return open(location, 'wb')
        except OSError as e:
            raise PipelineIOError(f"Cannot write {location}: {e}", location) from e


def _split_name(name: str) -> tuple[str, str]:
    path = Path(name)
    return path.stem, path.suffix

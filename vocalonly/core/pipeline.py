"""
Pipeline orchestrator for VocalOnly.

Runs decode (both tracks in parallel) -> extract -> encode -> publish for one
pair of tracks. Every run owns a fresh work area that is removed on all exit
paths, and its own progress channel (PipelineRun) instead of shared state.
"""
from __future__ import annotations
import asyncio
import shutil
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Union

from .chunked_io import copy_stream
from .codecs import PcmDecoder, PcmEncoder, SoundFileDemuxer, SoundFileMuxer
from .config import PIPELINE_CONFIG, STORAGE_CONFIG, PipelineConfig, PipelineState
from .decode import DecoderFactory, DemuxerFactory, decode_to_file
from .encode import EncoderFactory, MuxerFactory, encode_file
from .errors import PipelineCancelled, PipelineError, PipelineIOError
from .storage import LocalMediaLibrary, LocalSourceResolver, output_name
from .subtract import subtract_files
from .types import AudioFormat, MediaLibrary, PipelineResult, ProgressCallback, SourceResolver, TrackRef
from ..utils.logger import logger


@contextmanager
def work_area(root: Optional[Union[str, Path]] = None, prefix: str = "vocalonly_") -> Iterator[Path]:
    """Create a fresh temporary directory and remove it recursively on exit."""
    try:
        path = Path(tempfile.mkdtemp(prefix=prefix, dir=root))
    except OSError as e:
        raise PipelineIOError(f"Cannot create work area in {root or tempfile.gettempdir()}: {e}", root) from e
    logger.debug(f"Work area created: {path}")
    try:
        yield path
    finally:
        try:
            shutil.rmtree(path)
            logger.debug(f"Work area removed: {path}")
        except OSError as e:
            logger.error(f"Failed to remove work area {path}: {e}")


class PipelineRun:
    """
    Progress channel and handle for one pipeline run.

    The orchestrator is the only writer of ``state``; observers registered
    with :meth:`subscribe` are called on every transition.
    """

    def __init__(self) -> None:
        self._state = PipelineState.IDLE
        self._history: list[PipelineState] = []
        self._observers: list[ProgressCallback] = []
        self._task: Optional[asyncio.Task] = None
        self.cancel_event = threading.Event()

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def history(self) -> list[PipelineState]:
        """Every state entered so far, in order."""
        return list(self._history)

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def subscribe(self, callback: ProgressCallback) -> None:
        self._observers.append(callback)

    def cancel(self) -> None:
        """Ask the run to stop. Running stages exit at their next chunk."""
        if not self.cancel_event.is_set():
            logger.info("Pipeline run cancellation requested")
            self.cancel_event.set()

    async def wait(self) -> PipelineResult:
        """Wait for the run and return its result."""
        if self._task is None:
            raise RuntimeError("Run was not started with VocalExtractionPipeline.start()")
        return await self._task

    def _set_state(self, state: PipelineState) -> None:
        if self._state == state:
            return
        self._state = state
        self._history.append(state)
        logger.debug(f"Pipeline state -> {state.name}")
        for callback in list(self._observers):
            callback(state)

    def _check_cancelled(self) -> None:
        if self.cancelled:
            raise PipelineCancelled("Pipeline run cancelled")


class VocalExtractionPipeline:
    """
    Extracts the vocal track from a full mix and its instrumental version.

    Blocking stage work runs in worker threads so the caller's event loop
    (and any UI thread driving it) stays responsive.
    """

    def __init__(
        self,
        resolver: Optional[SourceResolver] = None,
        library: Optional[MediaLibrary] = None,
        config: PipelineConfig = PIPELINE_CONFIG,
        folder: str = STORAGE_CONFIG.folder,
        demuxer_factory: DemuxerFactory = SoundFileDemuxer,
        decoder_factory: DecoderFactory = PcmDecoder,
        encoder_factory: EncoderFactory = PcmEncoder,
        muxer_factory: MuxerFactory = SoundFileMuxer
    ) -> None:
        self._resolver = resolver or LocalSourceResolver()
        self._library = library or LocalMediaLibrary()
        self._config = config
        self._folder = folder
        self._demuxer_factory = demuxer_factory
        self._decoder_factory = decoder_factory
        self._encoder_factory = encoder_factory
        self._muxer_factory = muxer_factory

    @property
    def config(self) -> PipelineConfig:
        return self._config

    # --- Public API ---

    async def run(
        self,
        full_mix: TrackRef,
        instrumental: TrackRef,
        on_progress: Optional[ProgressCallback] = None
    ) -> Path:
        """
        Run the whole pipeline and return the published file's location.

        Raises:
            PipelineError: any stage failure, after the work area is gone
                and the state is back to IDLE.
        """
        run = PipelineRun()
        if on_progress is not None:
            run.subscribe(on_progress)
        return await self._execute(run, full_mix, instrumental)

    def start(
        self,
        full_mix: TrackRef,
        instrumental: TrackRef,
        on_progress: Optional[ProgressCallback] = None
    ) -> PipelineRun:
        """
        Schedule a run on the running event loop and return its handle.
        ``await handle.wait()`` yields a PipelineResult; failures are reported
        there instead of being raised.
        """
        run = PipelineRun()
        if on_progress is not None:
            run.subscribe(on_progress)
        run._task = asyncio.get_running_loop().create_task(
            self._run_to_result(run, full_mix, instrumental)
        )
        return run

    # --- Stages ---

    async def _run_to_result(self, run: PipelineRun, full_mix: TrackRef, instrumental: TrackRef) -> PipelineResult:
        try:
            output = await self._execute(run, full_mix, instrumental)
        except PipelineError as e:
            return PipelineResult(success=False, error=e)
        except Exception as e:
            # collaborators (resolver, library) may raise their own errors
            logger.exception(f"Pipeline failed with unexpected error: {e}")
            return PipelineResult(success=False, error=e)
        return PipelineResult(success=True, output=output)

    async def _execute(self, run: PipelineRun, full_mix: TrackRef, instrumental: TrackRef) -> Path:
        cfg = self._config
        logger.info(f"Pipeline started: full mix={full_mix}, instrumental={instrumental}")
        try:
            with work_area(cfg.work_root, cfg.work_prefix) as work:
                try:
                    run._set_state(PipelineState.DECODING)
                    full_raw = work / "full_mix.raw"
                    inst_raw = work / "instrumental.raw"
                    full_fmt, inst_fmt = await self._decode_both(
                        run, (full_mix, full_raw), (instrumental, inst_raw)
                    )
                    _warn_on_mismatch(full_fmt, inst_fmt)
                    run._check_cancelled()

                    run._set_state(PipelineState.EXTRACTING)
                    vocal_raw = work / "vocal.raw"
                    await self._in_thread(
                        run, subtract_files, full_raw, inst_raw, vocal_raw, cfg.io.buffer_size, run.cancel_event
                    )
                    run._check_cancelled()

                    run._set_state(PipelineState.ENCODING)
                    encoded = work / f"vocal{cfg.profile.extension}"
                    await self._in_thread(
                        run, encode_file, vocal_raw, encoded, cfg.profile, cfg.io.buffer_size,
                        run.cancel_event, self._encoder_factory, self._muxer_factory
                    )
                    run._check_cancelled()

                    run._set_state(PipelineState.FINALIZING)
                    published = await self._in_thread(run, self._publish, full_mix, encoded)
                except asyncio.CancelledError:
                    run.cancel()
                    raise
        except PipelineError as e:
            logger.error(f"Pipeline failed: {e}")
            raise
        finally:
            run._set_state(PipelineState.IDLE)
        logger.info(f"Pipeline finished: {published}")
        return published

    async def _in_thread(self, run: PipelineRun, func, *args):
        """
        Run a blocking stage in a worker thread. If the awaiting task is
        cancelled, the stage is told to stop and awaited before re-raising.
        """
        future = asyncio.ensure_future(asyncio.to_thread(func, *args))
        try:
            return await asyncio.shield(future)
        except asyncio.CancelledError:
            run.cancel()
            await asyncio.gather(future, return_exceptions=True)
            raise

    async def _decode_both(
        self,
        run: PipelineRun,
        *jobs: tuple[TrackRef, Path]
    ) -> list[AudioFormat]:
        """Decode all tracks concurrently; the first failure stops the others."""
        tasks = [
            asyncio.create_task(asyncio.to_thread(self._decode_one, ref, raw_path, run.cancel_event))
            for ref, raw_path in jobs
        ]
        try:
            done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        except asyncio.CancelledError:
            run.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        errors = [t.exception() for t in done if t.exception() is not None]
        if errors:
            run.cancel_event.set()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
            # a sibling's own cancellation is not the root cause
            errors.sort(key=lambda e: isinstance(e, PipelineCancelled))
            raise errors[0]
        return [t.result() for t in tasks]

    def _decode_one(self, ref: TrackRef, raw_path: Path, cancel_event: threading.Event) -> AudioFormat:
        with self._resolver.open(ref) as source:
            return decode_to_file(
                source, raw_path, cancel_event, self._demuxer_factory, self._decoder_factory
            )

    def _publish(self, full_mix: TrackRef, encoded: Path) -> Path:
        name = output_name(self._resolver.display_name(full_mix), self._config.profile.extension)
        location = self._library.insert(name, self._folder)
        try:
            try:
                src = open(encoded, 'rb')
            except OSError as e:
                raise PipelineIOError(f"Cannot read {encoded}: {e}", encoded) from e
            with src, self._library.open_sink(location) as sink:
                size = copy_stream(src, sink, self._config.io.buffer_size)
        except (PipelineError, OSError):
            Path(location).unlink(missing_ok=True)
            raise
        logger.info(f"Published {size} bytes to {location}")
        return location


def _warn_on_mismatch(first: AudioFormat, second: AudioFormat) -> None:
    if (first.sample_rate, first.channels) != (second.sample_rate, second.channels):
        logger.warning(
            f"Track formats differ ({first.sample_rate} Hz x{first.channels} vs "
            f"{second.sample_rate} Hz x{second.channels}); output will not be meaningful"
        )

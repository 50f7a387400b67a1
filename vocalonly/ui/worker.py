import asyncio

from PyQt6.QtCore import QObject, QThread, pyqtSignal, pyqtSlot

from vocalonly.core.pipeline import VocalExtractionPipeline
from vocalonly.utils.logger import logger


class PipelineWorker(QObject):
    """
    Runs one vocal extraction off the GUI thread and reports back through signals.
    Move it to a QThread (see start_worker) and connect to the signals below.
    """
    stateChanged = pyqtSignal(str)
    finished = pyqtSignal(str)    # published file path
    failed = pyqtSignal(str)      # error message

    def __init__(self, full_mix, instrumental, pipeline=None, parent=None):
        super().__init__(parent)
        self.full_mix = full_mix
        self.instrumental = instrumental
        self.pipeline = pipeline or VocalExtractionPipeline()
        self._handle = None

    @pyqtSlot()
    def run(self):
        """Drives the run to completion on the calling thread."""
        logger.info(f"Worker starting: {self.full_mix} / {self.instrumental}")
        result = asyncio.run(self._run())
        if result.success:
            self.finished.emit(str(result.output))
        else:
            logger.error(f"Worker run failed: {result.error}")
            self.failed.emit(str(result.error))

    def cancel(self):
        if self._handle is not None:
            self._handle.cancel()

    async def _run(self):
        self._handle = self.pipeline.start(
            self.full_mix,
            self.instrumental,
            on_progress=lambda state: self.stateChanged.emit(state.value),
        )
        return await self._handle.wait()


def start_worker(worker, parent=None):
    """Moves the worker to a new QThread, starts it and returns the thread."""
    thread = QThread(parent)
    worker.moveToThread(thread)
    thread.started.connect(worker.run)
    worker.finished.connect(thread.quit)
    worker.failed.connect(thread.quit)
    thread.start()
    return thread

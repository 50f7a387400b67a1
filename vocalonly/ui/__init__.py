"""
VocalOnly UI Module

Qt bridge for front-ends:
- PipelineWorker: Runs an extraction in a worker thread, reports via signals
- start_worker: Moves a worker onto a fresh QThread and starts it
"""
from .worker import PipelineWorker, start_worker

__all__ = [
    'PipelineWorker',
    'start_worker',
]

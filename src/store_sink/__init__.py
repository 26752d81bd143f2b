"""
Store Sink

Batch-delivery sink task for SQL stores: retries transient write failures with
a bounded budget, rebuilds the writer between attempts, and paces itself from
recent batch sizes.

Usage:
    from store_sink import SinkTask, SinkRecord

    task = SinkTask()
    task.start({"connection.url": "postgresql://...", "max.retries": 3})
    task.put([SinkRecord(topic="orders", partition=0, offset=0, value={"id": 1})])
    task.stop()
"""

__version__ = "1.0.0"

from .config import SinkConfig
from .context import LocalTaskContext, SinkTaskContext
from .errors import (
    ConfigError,
    FatalError,
    PermanentStoreError,
    RetriableError,
    RetriableStoreError,
    SinkError,
    StoreWriteError,
    TaskCancelledError,
    flatten_exception_chain,
)
from .pacing import BatchSizeHistory, PacingCalculator, PacingParameters
from .records import SinkRecord
from .runner import SinkRunner
from .task import SinkTask
from .writer import DbWriter

__all__ = [
    "SinkTask",
    "SinkConfig",
    "SinkRecord",
    "SinkTaskContext",
    "LocalTaskContext",
    "SinkRunner",
    "DbWriter",
    "BatchSizeHistory",
    "PacingCalculator",
    "PacingParameters",
    # errors
    "SinkError",
    "ConfigError",
    "StoreWriteError",
    "RetriableStoreError",
    "PermanentStoreError",
    "RetriableError",
    "FatalError",
    "TaskCancelledError",
    "flatten_exception_chain",
]

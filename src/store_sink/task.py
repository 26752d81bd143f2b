"""
Sink task: write-retry controller and adaptive throttling around a DbWriter.

The host calls put() from a single delivery thread. A batch is either written
in full, or the task raises:

- RetriableError: the writer was rebuilt and a backoff was requested via
  context.timeout(); the host must redeliver the same batch.
- FatalError: the retry budget is spent or the store rejected the batch;
  the task refuses further batches until start() is called again.

After a successful write the delivery thread sleeps for the pacing delay
computed from recent batch sizes. stop() and cancel() may be called from
another thread and interrupt that sleep.
"""

from __future__ import annotations

import threading
from typing import Any, Callable, Collection, Mapping, Optional

from loguru import logger

from . import dialects
from .config import SinkConfig
from .context import LocalTaskContext, SinkTaskContext
from .dialects import DatabaseDialect
from .errors import (
    FatalError,
    PermanentStoreError,
    RetriableError,
    StoreWriteError,
    TaskCancelledError,
    flatten_exception_chain,
)
from .metrics import (
    SINK_PACING_DELAY_MS,
    SINK_PUT_TOTAL,
    SINK_RECORDS_WRITTEN,
    SINK_RETRIES_REMAINING,
    SINK_WRITER_REINIT_TOTAL,
)
from .pacing import BatchSizeHistory, PacingCalculator, PacingParameters
from .records import SinkRecord
from .writer import DbWriter

WriterFactory = Callable[[SinkConfig, DatabaseDialect], Any]


class SinkTask:
    def __init__(
        self,
        context: Optional[SinkTaskContext] = None,
        *,
        writer_factory: Optional[WriterFactory] = None,
    ):
        self.context = context if context is not None else LocalTaskContext()
        self._writer_factory = writer_factory or DbWriter

        self.config: Optional[SinkConfig] = None
        self.dialect: Optional[DatabaseDialect] = None
        self.writer: Optional[Any] = None
        self.remaining_retries = 0

        # lives as long as the task object, across restarts
        self.history = BatchSizeHistory()
        self._pacing: Optional[PacingCalculator] = None

        self._cancel = threading.Event()
        self._failed = False

    @property
    def failed(self) -> bool:
        return self._failed

    # ---------- lifecycle ----------

    def start(self, props: Mapping[str, Any]) -> None:
        logger.info("Starting sink task")
        cfg = SinkConfig.from_props(props)
        self.config = cfg
        self._pacing = PacingCalculator(
            PacingParameters(
                batch_size=cfg.batch_size,
                min_delay_ms=cfg.min_sleep_after_put_ms,
                max_delay_ms=cfg.max_sleep_after_put_ms,
            ),
            self.history,
        )
        self._failed = False
        self._cancel.clear()
        self._close_writer()
        self._init_writer()
        self._reset_retries()

    def stop(self) -> None:
        """Close writer then dialect. Never raises; safe to call repeatedly."""
        logger.info("Stopping task")
        self._cancel.set()
        try:
            self._close_writer()
        finally:
            self._drop_dialect()

    def cancel(self) -> None:
        """Interrupt an in-progress pacing sleep; the pending put() fails fatally."""
        self._cancel.set()

    def flush(self, offsets: Mapping[Any, Any] | None = None) -> None:
        # writes are synchronous in put()
        pass

    def version(self) -> str:
        from . import __version__

        return __version__

    # ---------- writer lifecycle ----------

    def _init_writer(self) -> None:
        cfg = self.config
        if cfg.dialect_name:
            dialect = dialects.create(cfg.dialect_name, cfg)
        else:
            dialect = dialects.find_best_for(cfg.connection_url, cfg)
        logger.info(f"Initializing writer using SQL dialect: {type(dialect).__name__}")
        try:
            writer = self._writer_factory(cfg, dialect)
        except Exception:
            self._close_dialect(dialect)
            raise

        old_dialect = self.dialect
        self.dialect = dialect
        self.writer = writer
        if old_dialect is not None and old_dialect is not dialect:
            self._close_dialect(old_dialect)

    def _close_writer(self) -> None:
        writer, self.writer = self.writer, None
        if writer is None:
            return
        try:
            writer.close_quietly()
        except Exception as e:
            logger.warning(f"Error while closing writer (ignored): {type(e).__name__}: {e}")

    def _drop_dialect(self) -> None:
        dialect, self.dialect = self.dialect, None
        if dialect is not None:
            self._close_dialect(dialect)

    @staticmethod
    def _close_dialect(dialect: DatabaseDialect) -> None:
        try:
            dialect.close()
        except Exception as e:
            logger.opt(exception=e).warning(f"Error while closing the {dialect.name} dialect")

    def _reset_retries(self) -> None:
        self.remaining_retries = self.config.max_retries
        SINK_RETRIES_REMAINING.set(self.remaining_retries)

    # ---------- delivery ----------

    def put(self, records: Collection[SinkRecord]) -> None:
        batch = list(records)
        if not batch:
            return
        if self._failed:
            raise FatalError("Task has failed and must be restarted before accepting records")
        writer = self.writer
        if self.config is None or writer is None:
            raise FatalError("Task is not started")

        first = batch[0]
        count = len(batch)
        logger.debug(
            f"Received {count} records. First record coordinates:({first.coordinates}). "
            "Writing them to the database..."
        )
        try:
            writer.write(batch)
        except StoreWriteError as e:
            self._on_write_failure(count, e)
        except Exception as e:
            logger.opt(exception=e).error(f"Unexpected error writing {count} records")
            self._fail()
            raise FatalError(flatten_exception_chain(e)) from e

        self._reset_retries()
        SINK_PUT_TOTAL.labels(outcome="success").inc()
        SINK_RECORDS_WRITTEN.inc(count)

        sleep_ms = self._pacing.compute_delay(count)
        SINK_PACING_DELAY_MS.observe(sleep_ms)
        logger.info(
            f"Processed {count} records for the topic {first.topic}. Sleep for {sleep_ms} ms"
        )
        self._pause(sleep_ms)

    def _on_write_failure(self, count: int, e: StoreWriteError) -> None:
        logger.opt(exception=e).warning(
            f"Write of {count} records failed, remaining_retries={self.remaining_retries}"
        )
        message = flatten_exception_chain(e)

        if self._cancel.is_set():
            self._fail()
            raise TaskCancelledError(message) from e
        if isinstance(e, PermanentStoreError) or self.remaining_retries == 0:
            self._fail()
            raise FatalError(message) from e

        self._close_writer()
        try:
            self._init_writer()
        except Exception as init_exc:
            self._fail()
            raise FatalError(
                "Failed to reinitialize writer after a retriable write failure\n"
                + flatten_exception_chain(init_exc)
            ) from init_exc
        if self._cancel.is_set():
            # stop() ran while the writer was being rebuilt
            self._close_writer()
            self._drop_dialect()
            self._fail()
            raise TaskCancelledError(message) from e

        self.remaining_retries -= 1
        SINK_RETRIES_REMAINING.set(self.remaining_retries)
        SINK_WRITER_REINIT_TOTAL.inc()
        self.context.timeout(self.config.retry_backoff_ms)
        SINK_PUT_TOTAL.labels(outcome="retriable").inc()
        raise RetriableError(message) from e

    def _fail(self) -> None:
        self._failed = True
        SINK_PUT_TOTAL.labels(outcome="fatal").inc()

    def _pause(self, sleep_ms: int) -> None:
        if sleep_ms <= 0:
            return
        if self._cancel.wait(sleep_ms / 1000.0):
            self._fail()
            raise TaskCancelledError(f"Interrupted during {sleep_ms} ms pacing sleep")

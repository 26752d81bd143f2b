from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Iterable, Sequence

from loguru import logger

from .context import LocalTaskContext
from .errors import RetriableError
from .records import SinkRecord
from .task import SinkTask


@dataclass
class RunStats:
    batches: int = 0
    records: int = 0
    retries: int = 0


class SinkRunner:
    """
    Minimal single-threaded host for a SinkTask.

    Delivers batches one at a time. On RetriableError it waits for the delay
    the task requested through its LocalTaskContext and redelivers the same
    batch. FatalError (and anything else) propagates to the caller.
    """

    def __init__(self, task: SinkTask, context: LocalTaskContext, *, sleep=time.sleep):
        self.task = task
        self.context = context
        self._sleep = sleep
        self.stats = RunStats()

    def _wait_requested(self) -> None:
        ms = self.context.consume_timeout()
        if ms > 0:
            self._sleep(ms / 1000.0)

    def deliver(self, batch: Sequence[SinkRecord]) -> None:
        while True:
            try:
                self.task.put(batch)
            except RetriableError as e:
                self.stats.retries += 1
                root_cause = str(e).splitlines()[-1] if str(e) else type(e).__name__
                logger.warning(
                    f"Retriable failure delivering {len(batch)} records, "
                    f"redelivering after {self.context.requested_timeout_ms} ms: {root_cause}"
                )
                self._wait_requested()
                continue
            break
        self.stats.batches += 1
        self.stats.records += len(batch)

    def run(self, batches: Iterable[Sequence[SinkRecord]]) -> RunStats:
        for batch in batches:
            if batch:
                self.deliver(batch)
        logger.info(
            f"Delivered {self.stats.records} records in {self.stats.batches} batches "
            f"({self.stats.retries} retries)"
        )
        return self.stats

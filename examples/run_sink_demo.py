"""
Demo script for SinkTask.

Shows retriable failures being absorbed by writer rebuilds, the retry budget
resetting on success, and adaptive pacing after each batch.
"""

import random
from typing import Sequence

from loguru import logger

from store_sink import LocalTaskContext, RetriableStoreError, SinkRecord, SinkRunner, SinkTask


class FlakyWriter:
    """Writer that fails ~30% of writes with a transient error."""

    def __init__(self, config, dialect):
        self.rows = 0

    def write(self, batch: Sequence[SinkRecord]) -> int:
        if random.random() < 0.3:
            try:
                raise ConnectionResetError("simulated network blip")
            except ConnectionResetError as e:
                raise RetriableStoreError(f"write of {len(batch)} records failed") from e
        self.rows += len(batch)
        return len(batch)

    def close_quietly(self) -> None:
        pass


def main():
    ctx = LocalTaskContext()
    task = SinkTask(ctx, writer_factory=FlakyWriter)
    task.start(
        {
            "connection.url": "sqlite://",
            "max.retries": 5,
            "retry.backoff.ms": 50,
            "batch.size": 100,
            "min.sleep.after.put.ms": 5,
            "max.sleep.after.put.ms": 200,
        }
    )

    batches = []
    offset = 0
    for size in [100, 100, 40, 10, 100, 5]:
        batches.append(
            [
                SinkRecord(topic="demo", partition=0, offset=offset + i, value={"id": offset + i})
                for i in range(size)
            ]
        )
        offset += size

    try:
        stats = SinkRunner(task, ctx).run(batches)
        logger.info(
            f"Demo complete: {stats.records} records, {stats.batches} batches, "
            f"{stats.retries} retries"
        )
    finally:
        task.stop()


if __name__ == "__main__":
    main()

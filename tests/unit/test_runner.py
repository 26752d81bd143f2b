"""
Unit tests for SinkRunner redelivery.
"""

import pytest

from store_sink.context import LocalTaskContext
from store_sink.errors import FatalError, PermanentStoreError
from store_sink.records import SinkRecord
from store_sink.runner import SinkRunner
from store_sink.task import SinkTask


def _batch(n, start=0):
    return [
        SinkRecord(topic="orders", partition=0, offset=i, value={"id": i})
        for i in range(start, start + n)
    ]


def _runner(props, factory):
    ctx = LocalTaskContext()
    task = SinkTask(ctx, writer_factory=factory)
    task.start(props)
    sleeps = []
    return SinkRunner(task, ctx, sleep=sleeps.append), sleeps


def test_redelivers_same_batch_after_backoff(base_props, make_writer_factory, make_transient):
    factory = make_writer_factory(script=[make_transient(), make_transient(), None])
    runner, sleeps = _runner(base_props, factory)
    batch = _batch(3)

    runner.deliver(batch)

    assert sleeps == [0.25, 0.25]
    assert factory.batches == [batch]
    assert runner.stats.retries == 2
    assert runner.stats.batches == 1


def test_run_counts_batches(base_props, writer_factory):
    runner, sleeps = _runner(base_props, writer_factory)
    stats = runner.run([_batch(2), [], _batch(5, start=2)])

    assert stats.batches == 2
    assert stats.records == 7
    assert stats.retries == 0
    assert sleeps == []


def test_fatal_error_stops_run(base_props, make_writer_factory, make_transient):
    factory = make_writer_factory(script=[make_transient(), PermanentStoreError("bad")])
    runner, sleeps = _runner(base_props, factory)

    with pytest.raises(FatalError):
        runner.run([_batch(1), _batch(1, start=1)])

    assert sleeps == [0.25]
    assert runner.stats.batches == 0


def test_budget_exhaustion_surfaces_fatal(base_props, make_writer_factory, make_transient):
    factory = make_writer_factory(script=[make_transient() for _ in range(5)])
    runner, sleeps = _runner({**base_props, "max.retries": 2}, factory)

    with pytest.raises(FatalError):
        runner.deliver(_batch(1))

    assert len(sleeps) == 2
    assert factory.reconstructions == 2

"""
Unit tests for adaptive pacing.
"""

import pytest

from store_sink.pacing import BatchSizeHistory, PacingCalculator, PacingParameters


@pytest.fixture
def calc():
    return PacingCalculator(PacingParameters(batch_size=100, min_delay_ms=10, max_delay_ms=1000))


def test_full_batches_get_min_delay(calc):
    """Saturated producer: max recent batch == limit -> ratio 0 -> floor at min."""
    assert calc.compute_delay(100) == 10


def test_empty_history_peak_gets_max_delay(calc):
    assert calc.compute_delay(0) == 1000


def test_half_full_gets_proportional_delay(calc):
    assert calc.compute_delay(50) == 500


def test_delay_follows_largest_recent_batch(calc):
    calc.compute_delay(100)
    # 100 is still in the window, so small batches do not add delay yet
    assert calc.compute_delay(5) == 10


def test_oversized_batch_is_capped_at_limit(calc):
    assert calc.compute_delay(250) == 10


def test_delay_uses_floor():
    calc = PacingCalculator(PacingParameters(batch_size=3, min_delay_ms=0, max_delay_ms=1000))
    # 1000 * (1 - 1/3) = 666.66...
    assert calc.compute_delay(1) == 666


def test_disabled_pacing_returns_min():
    calc = PacingCalculator(PacingParameters(batch_size=100, min_delay_ms=25, max_delay_ms=0))
    assert calc.compute_delay(0) == 25
    assert calc.compute_delay(100) == 25
    # history still recorded when disabled
    assert list(calc.history) == [0, 100]


def test_min_above_max_returns_min():
    calc = PacingCalculator(PacingParameters(batch_size=100, min_delay_ms=800, max_delay_ms=500))
    assert calc.compute_delay(0) == 800


def test_result_always_within_bounds():
    params = PacingParameters(batch_size=64, min_delay_ms=7, max_delay_ms=300)
    calc = PacingCalculator(params)
    for size in [0, 1, 63, 64, 65, 32, 3, 0, 1000, 17]:
        d = calc.compute_delay(size)
        assert params.min_delay_ms <= d <= max(params.min_delay_ms, params.max_delay_ms)


def test_history_keeps_last_20_in_order():
    h = BatchSizeHistory()
    for i in range(25):
        h.append(i)
    assert len(h) == 20
    assert list(h) == list(range(5, 25))
    assert h.capacity == 20


def test_history_window_drops_old_peak():
    calc = PacingCalculator(PacingParameters(batch_size=100, min_delay_ms=0, max_delay_ms=1000))
    calc.compute_delay(100)
    for _ in range(19):
        assert calc.compute_delay(0) == 0
    # the 100 is evicted on the 21st insertion
    assert calc.compute_delay(0) == 1000


@pytest.mark.parametrize(
    "kwargs",
    [
        {"batch_size": 0},
        {"batch_size": -5},
        {"batch_size": 10, "min_delay_ms": -1},
        {"batch_size": 10, "max_delay_ms": -1},
    ],
)
def test_invalid_parameters_rejected(kwargs):
    with pytest.raises(ValueError):
        PacingParameters(**kwargs)


def test_history_rejects_zero_capacity():
    with pytest.raises(ValueError, match="capacity"):
        BatchSizeHistory(capacity=0)

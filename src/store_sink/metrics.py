"""
Prometheus metrics for the sink task.
Import from here; the collectors register with the global REGISTRY on import.
"""

from prometheus_client import Counter, Gauge, Histogram

SINK_PUT_TOTAL = Counter(
    "sink_put_total",
    "Total put() calls that reached the writer",
    ["outcome"],  # success | retriable | fatal
)

SINK_RECORDS_WRITTEN = Counter(
    "sink_records_written_total",
    "Total records written to the store",
)

SINK_WRITER_REINIT_TOTAL = Counter(
    "sink_writer_reinit_total",
    "Total writer reinitializations after a retriable failure",
)

SINK_RETRIES_REMAINING = Gauge(
    "sink_retries_remaining",
    "Remaining retry budget of the sink task",
)

SINK_PACING_DELAY_MS = Histogram(
    "sink_pacing_delay_ms",
    "Post-write pacing delay in milliseconds",
    buckets=[0, 10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000],
)

from __future__ import annotations

import json
import sys
from typing import List, Optional

import typer
from loguru import logger

from . import __version__
from .context import LocalTaskContext
from .errors import ConfigError, FatalError
from .pacing import PacingCalculator, PacingParameters
from .runner import SinkRunner
from .task import SinkTask
from .utils import chunked, iter_ndjson, to_record

app = typer.Typer(help="store-sink operational CLI")


@app.command("run")
def run(
    path: str = typer.Argument(..., help="NDJSON file or '-' for stdin (.gz ok)"),
    connection_url: str = typer.Option(
        ..., "--connection-url", envvar="SINK_CONNECTION_URL", help="Store URL"
    ),
    topic: Optional[str] = typer.Option(None, "--topic", help="Topic for bare-row lines"),
    dialect_name: Optional[str] = typer.Option(None, "--dialect", help="Force a dialect"),
    batch_size: int = typer.Option(3000, "--batch-size", help="Records per put()"),
    max_retries: int = typer.Option(10, "--max-retries"),
    retry_backoff_ms: int = typer.Option(3000, "--retry-backoff-ms"),
    min_sleep_ms: int = typer.Option(0, "--min-sleep-ms", help="Minimum sleep after a put"),
    max_sleep_ms: int = typer.Option(0, "--max-sleep-ms", help="Maximum sleep (0 = off)"),
    insert_mode: str = typer.Option("insert", "--insert-mode", help="insert|upsert"),
    pk_fields: str = typer.Option("", "--pk-fields", help="Comma-separated key columns"),
    table_name_format: str = typer.Option("{topic}", "--table-name-format"),
):
    """Deliver NDJSON records to the store through a sink task."""
    props = {
        "connection.url": connection_url,
        "dialect.name": dialect_name,
        "batch.size": batch_size,
        "max.retries": max_retries,
        "retry.backoff.ms": retry_backoff_ms,
        "min.sleep.after.put.ms": min_sleep_ms,
        "max.sleep.after.put.ms": max_sleep_ms,
        "insert.mode": insert_mode,
        "pk.fields": pk_fields,
        "table.name.format": table_name_format,
    }
    context = LocalTaskContext()
    task = SinkTask(context)
    try:
        task.start(props)
    except ConfigError as e:
        logger.error(f"Failed to start sink task: {e}")
        sys.exit(1)

    try:
        records = (
            to_record(obj, topic=topic, offset=i) for i, obj in enumerate(iter_ndjson(path))
        )
        stats = SinkRunner(task, context).run(chunked(records, batch_size))
    except FatalError as e:
        logger.error(f"Sink task failed: {e}")
        sys.exit(1)
    except ValueError as e:
        logger.error(f"Bad input: {e}")
        sys.exit(1)
    finally:
        task.stop()

    typer.echo(
        json.dumps(
            {"batches": stats.batches, "records": stats.records, "retries": stats.retries},
            indent=2,
        )
    )


@app.command("delay")
def delay(
    sizes: List[int] = typer.Argument(..., help="Successive batch sizes"),
    batch_size: int = typer.Option(..., "--batch-size"),
    min_ms: int = typer.Option(0, "--min-ms"),
    max_ms: int = typer.Option(0, "--max-ms"),
):
    """Print the pacing delay that would follow each batch size."""
    try:
        calc = PacingCalculator(PacingParameters(batch_size, min_ms, max_ms))
    except ValueError as e:
        raise typer.BadParameter(str(e))
    for n in sizes:
        typer.echo(json.dumps({"batch": n, "sleep_ms": calc.compute_delay(n)}))


@app.command("version")
def version():
    typer.echo(__version__)


if __name__ == "__main__":
    app()

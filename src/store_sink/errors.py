"""
Custom exceptions for the store sink task.

Writers raise StoreWriteError subclasses; the task surfaces RetriableError or
FatalError to the host, carrying the flattened cause chain as the message.
"""

from __future__ import annotations

MAX_CHAIN_DEPTH = 32


class SinkError(Exception):
    """Base error for the sink task."""

    pass


class ConfigError(SinkError):
    """Invalid settings or unknown dialect."""

    pass


class StoreWriteError(SinkError):
    """A batch write against the store failed."""

    pass


class RetriableStoreError(StoreWriteError):
    """Transient store failure; worth reconnecting and trying again."""

    pass


class PermanentStoreError(StoreWriteError):
    """Store rejected the batch; retrying the same rows will not help."""

    pass


class RetriableError(SinkError):
    """Signal to the host: redeliver the same batch after the requested delay."""

    pass


class FatalError(SinkError):
    """Signal to the host: stop calling this task until it is restarted."""

    pass


class TaskCancelledError(FatalError):
    """Pacing stall was interrupted by cancellation."""

    pass


# drivers such as sqlite3 report schema mismatches as OperationalError
SCHEMA_ERROR_MARKERS = ("no such table", "no such column", "has no column named", "syntax error")


def _is_schema_error(orig: BaseException | None) -> bool:
    text = str(orig).lower() if orig is not None else ""
    return any(marker in text for marker in SCHEMA_ERROR_MARKERS)


def map_db_error(e: Exception) -> StoreWriteError:
    """Classify a driver error raised by psycopg or SQLAlchemy."""
    import psycopg
    import psycopg.errors as E
    from sqlalchemy import exc as sa_exc

    if isinstance(e, StoreWriteError):
        return e
    if isinstance(e, sa_exc.DBAPIError):
        if e.connection_invalidated:
            return RetriableStoreError(str(e))
        if isinstance(e.orig, psycopg.Error):
            return map_db_error(e.orig)
        if isinstance(e, sa_exc.OperationalError) and _is_schema_error(e.orig):
            return PermanentStoreError(str(e))
        if isinstance(e, (sa_exc.OperationalError, sa_exc.InterfaceError)):
            return RetriableStoreError(str(e))
        return PermanentStoreError(str(e))
    if isinstance(
        e,
        (
            E.SerializationFailure,
            E.DeadlockDetected,
            E.LockNotAvailable,
            psycopg.OperationalError,
            psycopg.InterfaceError,
        ),
    ):
        return RetriableStoreError(str(e))
    if isinstance(e, psycopg.Error):
        return PermanentStoreError(str(e))
    if isinstance(e, (ConnectionError, TimeoutError)):
        return RetriableStoreError(str(e))
    return PermanentStoreError(str(e))


def _next_in_chain(e: BaseException) -> BaseException | None:
    if e.__cause__ is not None:
        return e.__cause__
    if e.__context__ is not None and not e.__suppress_context__:
        return e.__context__
    return None


def iter_exception_chain(e: BaseException, max_depth: int = MAX_CHAIN_DEPTH):
    """Yield e and its causes, outermost first. Stops on cycles and at max_depth."""
    seen: set[int] = set()
    current: BaseException | None = e
    depth = 0
    while current is not None and id(current) not in seen and depth < max_depth:
        seen.add(id(current))
        yield current
        depth += 1
        current = _next_in_chain(current)


def flatten_exception_chain(e: BaseException, max_depth: int = MAX_CHAIN_DEPTH) -> str:
    """
    Render every exception in the cause chain on its own line.

    Example:
        Exception chain:
        RetriableStoreError: connection reset
        OperationalError: server closed the connection unexpectedly
    """
    lines = ["Exception chain:"]
    chain = list(iter_exception_chain(e, max_depth=max_depth))
    for exc in chain:
        lines.append(f"{type(exc).__name__}: {exc}")

    # a full chain ending in a node that still has a parent was cut off
    last = chain[-1]
    nxt = _next_in_chain(last)
    if len(chain) >= max_depth and nxt is not None and all(nxt is not c for c in chain):
        lines.append(f"... (chain truncated after {max_depth} entries)")
    return "\n".join(lines) + "\n"

"""
Utility functions for feeding records to the sink: NDJSON reading and batching.
"""

import gzip
import io
import json
import sys
from typing import Any, Dict, Iterable, Iterator, List, Optional, TypeVar

from .records import SinkRecord

T = TypeVar("T")


def iter_ndjson(path: str) -> Iterator[Dict[str, Any]]:
    """Yield one JSON object per non-blank line. '-' reads stdin; .gz is decompressed."""
    if path == "-":
        stream: io.TextIOBase = sys.stdin
        close = False
    elif path.endswith(".gz"):
        stream = gzip.open(path, "rt", encoding="utf-8")
        close = True
    else:
        stream = open(path, "r", encoding="utf-8")
        close = True
    try:
        for lineno, line in enumerate(stream, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                yield json.loads(line)
            except json.JSONDecodeError as e:
                raise ValueError(f"{path}:{lineno}: invalid JSON: {e.msg}") from e
    finally:
        if close:
            stream.close()


def to_record(obj: Dict[str, Any], *, topic: Optional[str], offset: int) -> SinkRecord:
    """
    Coerce an NDJSON object into a SinkRecord.

    Objects carrying a "value" key are treated as full records; anything else is
    the row itself, addressed to `topic` at the given offset.
    """
    if "value" in obj:
        data = dict(obj)
        if topic is not None:
            data.setdefault("topic", topic)
        data.setdefault("partition", 0)
        data.setdefault("offset", offset)
        return SinkRecord.model_validate(data)
    if topic is None:
        raise ValueError("--topic is required when NDJSON lines are bare rows")
    return SinkRecord(topic=topic, partition=0, offset=offset, value=obj)


def chunked(items: Iterable[T], size: int) -> Iterator[List[T]]:
    if size <= 0:
        raise ValueError("size must be > 0")
    batch: List[T] = []
    for item in items:
        batch.append(item)
        if len(batch) >= size:
            yield batch
            batch = []
    if batch:
        yield batch

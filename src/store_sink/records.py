"""
Pydantic model for records delivered to the sink task.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, field_validator


class SinkRecord(BaseModel):
    """One record delivered by the host, with its source coordinates."""

    topic: str
    partition: int
    offset: int
    key: Any = None
    value: Optional[dict[str, Any]] = None
    timestamp: Optional[datetime] = None

    @field_validator("topic")
    @classmethod
    def _strip_topic(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("topic must not be blank")
        return v

    @property
    def coordinates(self) -> str:
        return f"{self.topic}-{self.partition}-{self.offset}"

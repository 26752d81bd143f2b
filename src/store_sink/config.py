from __future__ import annotations

from typing import Annotated, Any, Literal, Mapping, Optional

from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from .errors import ConfigError


class SinkConfig(BaseSettings):
    """Settings for one sink task. Read once at start, never mutated."""

    model_config = SettingsConfigDict(
        env_prefix="SINK_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    connection_url: str
    dialect_name: Optional[str] = None

    # retry
    max_retries: int = Field(10, ge=0)
    retry_backoff_ms: int = Field(3000, ge=0)

    # pacing
    batch_size: int = Field(3000, gt=0)
    min_sleep_after_put_ms: int = Field(0, ge=0)
    max_sleep_after_put_ms: int = Field(0, ge=0)  # 0 disables adaptive pacing

    # writer
    table_name_format: str = "{topic}"
    insert_mode: Literal["insert", "upsert"] = "insert"
    pk_fields: Annotated[list[str], NoDecode] = Field(default_factory=list)

    @field_validator("pk_fields", mode="before")
    @classmethod
    def _split_pk_fields(cls, v):
        if isinstance(v, str):
            return [f.strip() for f in v.split(",") if f.strip()]
        return v

    @field_validator("table_name_format")
    @classmethod
    def _check_table_name_format(cls, v):
        try:
            name = v.format(topic="topic", partition=0)
        except (KeyError, IndexError, ValueError, AttributeError) as e:
            raise ValueError(
                f"table_name_format {v!r} is invalid ({type(e).__name__}: {e}); "
                "only {topic} and {partition} are available"
            ) from e
        if not name.strip():
            raise ValueError("table_name_format must produce a non-empty table name")
        return v

    @field_validator("dialect_name")
    @classmethod
    def _blank_dialect_is_none(cls, v):
        if v is None:
            return None
        return v.strip() or None

    @model_validator(mode="after")
    def _check_upsert_keys(self):
        if self.insert_mode == "upsert" and not self.pk_fields:
            raise ValueError("pk_fields is required when insert_mode is 'upsert'")
        return self

    @classmethod
    def from_props(cls, props: Mapping[str, Any]) -> "SinkConfig":
        """Build from connector-style properties ("max.retries", "connection.url", ...)."""
        normalized = {str(k).replace(".", "_").replace("-", "_"): v for k, v in props.items()}
        try:
            return cls(**normalized)
        except ValidationError as e:
            raise ConfigError(f"Invalid sink configuration: {e}") from e

"""Data models for backup jobs and configuration."""

from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, model_validator

ALIAS_PATTERN = r"^[A-Za-z0-9][A-Za-z0-9._-]*$"


class JobKind(str, Enum):
    """Supported data store kinds."""
    POSTGRES = "postgres"
    REDIS = "redis"


class ScheduleConfig(BaseModel):
    """How often a job runs."""
    model_config = ConfigDict(frozen=True)

    interval_seconds: int = Field(ge=1)
    run_on_start: bool = False
    # None keeps external tools unbounded
    timeout_seconds: Optional[int] = Field(default=None, ge=1)


class PostgresConnection(BaseModel):
    """Connection parameters for pg_dump."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    host: str
    port: int = 5432
    username: str
    password: str = ""
    database: str
    schema_name: Optional[str] = Field(default=None, alias="schema")
    ssl_mode: Optional[str] = None
    connection_timeout: Optional[int] = None


class RedisConnection(BaseModel):
    """Connection parameters for redis-cli and the redis client."""
    model_config = ConfigDict(frozen=True)

    host: str
    port: int = 6379
    password: str = ""
    database: Optional[int] = None
    container: Optional[str] = None


CONNECTION_MODELS = {
    JobKind.POSTGRES: PostgresConnection,
    JobKind.REDIS: RedisConnection,
}


class JobSpec(BaseModel):
    """One configured backup job."""
    model_config = ConfigDict(frozen=True)

    kind: JobKind
    alias: str = Field(pattern=ALIAS_PATTERN)
    schedule: ScheduleConfig
    connection: Union[PostgresConnection, RedisConnection]
    backup_options: Dict[str, str] = Field(default_factory=dict)
    backup_dir: Path

    @model_validator(mode="before")
    @classmethod
    def _parse_connection(cls, data):
        """Validate the connection table against the model for its kind."""
        if isinstance(data, dict) and isinstance(data.get("connection"), dict):
            kind = data.get("kind")
            model = CONNECTION_MODELS.get(kind) if isinstance(kind, str) else None
            if model is not None:
                data = dict(data, connection=model.model_validate(data["connection"]))
        return data

    @model_validator(mode="after")
    def _check_connection_kind(self) -> "JobSpec":
        expected = CONNECTION_MODELS.get(self.kind)
        if expected is not None and not isinstance(self.connection, expected):
            raise ValueError(
                f"connection for '{self.alias}' does not match kind {self.kind.value}"
            )
        return self


class RetentionPolicy(BaseModel):
    """How long artifacts are kept."""
    model_config = ConfigDict(frozen=True)

    retention_days: int = Field(default=7, ge=1)

    @property
    def window(self) -> timedelta:
        return timedelta(days=self.retention_days)

    def cutoff(self, now: datetime) -> datetime:
        return now - self.window


class RunOutcome(BaseModel):
    """Result of a single backup cycle."""
    alias: str
    timestamp: str
    artifact: Optional[Path] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


class SweepReport(BaseModel):
    """Files removed (or not) by one retention pass."""
    alias: str
    deleted: List[Path] = Field(default_factory=list)
    failed: List[Path] = Field(default_factory=list)

"""Configuration loading.

The configuration file is TOML. Before parsing, ``${VAR}`` and
``${VAR:-default}`` placeholders are replaced with environment values, so
secrets never have to be written into the file itself.
"""

import os
import re
import tomllib
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigError
from .models import JobKind, JobSpec, RetentionPolicy, ScheduleConfig

_ENV_VAR_RE = re.compile(r"\$\{([^}:]+)(?::-?([^}]*))?\}")


class Settings(BaseSettings):
    """Process settings, read from BACKUPCTL_* variables and .env."""

    model_config = SettingsConfigDict(
        env_prefix="BACKUPCTL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    config: Path = Path("config.toml")
    log_dir: Optional[Path] = None
    log_level: Optional[str] = None
    log_prefix: str = "backupctl"
    json_logs: bool = False


class CommonConfig(BaseModel):
    """The [common] table."""
    backup_dir: Path
    retention_days: Optional[int] = Field(default=None, ge=1)
    log_level: Optional[str] = None
    log_dir: Optional[Path] = None

    def retention_policy(self) -> RetentionPolicy:
        if self.retention_days is None:
            return RetentionPolicy()
        return RetentionPolicy(retention_days=self.retention_days)


class ServiceConfig(BaseModel):
    """One [[services]] entry."""
    kind: JobKind = Field(alias="type")
    alias: str
    schedule: ScheduleConfig
    connection: Dict[str, Any]
    backup_options: Dict[str, str] = Field(default_factory=dict)

    @field_validator("backup_options", mode="before")
    @classmethod
    def _stringify_options(cls, value):
        # TOML allows booleans and numbers; pg_dump flags are plain strings
        if isinstance(value, dict):
            return {k: str(v).lower() if isinstance(v, bool) else str(v) for k, v in value.items()}
        return value


class BackupConfig(BaseModel):
    """Whole configuration file."""
    common: CommonConfig
    services: List[ServiceConfig] = Field(default_factory=list)

    @field_validator("services")
    @classmethod
    def _unique_aliases(cls, services: List[ServiceConfig]) -> List[ServiceConfig]:
        seen = set()
        for service in services:
            if service.alias in seen:
                raise ValueError(f"Duplicate service alias '{service.alias}'")
            seen.add(service.alias)
        return services

    def job_specs(self) -> List[JobSpec]:
        """Build one immutable JobSpec per service."""
        return [
            JobSpec(
                kind=service.kind,
                alias=service.alias,
                schedule=service.schedule,
                connection=service.connection,
                backup_options=service.backup_options,
                backup_dir=self.common.backup_dir,
            )
            for service in self.services
        ]


def substitute_env_vars(content: str, environ: Optional[Mapping[str, str]] = None) -> str:
    """Replace ``${VAR}`` / ``${VAR:-default}`` placeholders.

    An unset or empty variable falls back to its default; without a default it
    is an error.
    """
    environ = os.environ if environ is None else environ

    def replace(match: "re.Match[str]") -> str:
        name, default = match.group(1), match.group(2)
        value = environ.get(name)
        if value:
            return value
        if default is not None:
            return default
        raise ConfigError(f"Environment variable '{name}' not found")

    return _ENV_VAR_RE.sub(replace, content)


def parse_config(content: str, environ: Optional[Mapping[str, str]] = None,
                 source: str = "<string>") -> BackupConfig:
    """Interpolate, parse and validate configuration text."""
    try:
        data = tomllib.loads(substitute_env_vars(content, environ))
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"{source}: invalid TOML: {e}") from e

    try:
        config = BackupConfig.model_validate(data)
        # surface connection/alias errors now rather than at job construction
        config.job_specs()
    except ValidationError as e:
        raise ConfigError(f"{source}: {e}") from e
    return config


def load_config(path: Union[str, Path], environ: Optional[Mapping[str, str]] = None) -> BackupConfig:
    """Read and validate a configuration file."""
    path = Path(path)
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e
    return parse_config(content, environ, source=str(path))

"""Backup job implementations, one per data store kind."""

import gzip
import os
import shutil
import subprocess
from pathlib import Path
from typing import Dict, List, Optional, Protocol

import redis

from .artifacts import ArtifactName
from .errors import CompressionError, ConstructionError, DumpError
from .log import get_logger
from .models import JobKind, JobSpec, PostgresConnection, RedisConnection, ScheduleConfig

logger = get_logger(__name__)

PG_FORMAT_EXTENSIONS = {
    "plain": "sql",
    "p": "sql",
    "custom": "dump",
    "c": "dump",
    "tar": "tar",
    "t": "tar",
}
REDIS_METHODS = ("rdb", "save")


class BackupJob(Protocol):
    """Capabilities the runner needs from a job."""

    @property
    def alias(self) -> str: ...

    @property
    def kind(self) -> JobKind: ...

    @property
    def backup_dir(self) -> Path: ...

    @property
    def schedule(self) -> ScheduleConfig: ...

    def execute(self, timestamp: str) -> Path: ...


def run_tool(alias: str, command: List[str], env: Optional[Dict[str, str]] = None,
             timeout: Optional[int] = None) -> subprocess.CompletedProcess:
    """Run an external tool, raising DumpError unless it exits 0."""
    logger.debug("tool_started", alias=alias, command=command[0])
    try:
        result = subprocess.run(
            command,
            env=env,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        raise DumpError(alias, f"{command[0]} timed out after {timeout}s")
    except OSError as e:
        raise DumpError(alias, f"{command[0]} could not be started", str(e))

    if result.returncode != 0:
        raise DumpError(
            alias,
            f"{command[0]} failed with exit code {result.returncode}",
            result.stderr or "",
        )
    return result


def compress_artifact(path: Path) -> Path:
    """Gzip an artifact in place, removing the uncompressed file on success."""
    target = path.with_name(path.name + ".gz")
    try:
        with open(path, "rb") as src, gzip.open(target, "wb") as dst:
            shutil.copyfileobj(src, dst)
        path.unlink()
    except OSError as e:
        try:
            target.unlink(missing_ok=True)
        except OSError as cleanup_error:
            logger.warning("partial_archive_left", artifact=str(target), error=str(cleanup_error))
        raise CompressionError(f"Failed to compress {path}: {e}") from e
    return target


def finalize_artifact(alias: str, path: Path, options: Dict[str, str]) -> Path:
    """Compress a fresh artifact unless disabled; fall back to the raw file."""
    if options.get("compression", "gzip").lower() in ("none", "false"):
        return path
    try:
        compressed = compress_artifact(path)
    except CompressionError as e:
        logger.warning("compression_failed", alias=alias, artifact=str(path), error=str(e))
        return path
    logger.info("backup_compressed", alias=alias, artifact=str(compressed))
    return compressed


def _is_true(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in ("true", "1", "yes")


class PostgresJob:
    """Dumps a PostgreSQL database with pg_dump."""

    kind = JobKind.POSTGRES

    def __init__(self, spec: JobSpec):
        if not isinstance(spec.connection, PostgresConnection):
            raise ConstructionError(f"'{spec.alias}' is not a postgres job")
        self.spec = spec
        self.connection: PostgresConnection = spec.connection
        self.options = dict(spec.backup_options)

        dump_format = self.options.get("format", "plain").lower()
        if dump_format not in PG_FORMAT_EXTENSIONS:
            raise ConstructionError(
                f"Unsupported pg_dump format '{dump_format}' for '{spec.alias}'"
            )
        self.extension = PG_FORMAT_EXTENSIONS[dump_format]
        self.dump_format = dump_format

        # Resolved once; the run loop never reads the process environment.
        self.env = dict(os.environ)
        self.env["PGPASSWORD"] = self.connection.password
        if self.connection.ssl_mode:
            self.env["PGSSLMODE"] = self.connection.ssl_mode
        if self.connection.connection_timeout:
            self.env["PGCONNECT_TIMEOUT"] = str(self.connection.connection_timeout)

    @property
    def alias(self) -> str:
        return self.spec.alias

    @property
    def backup_dir(self) -> Path:
        return self.spec.backup_dir

    @property
    def schedule(self) -> ScheduleConfig:
        return self.spec.schedule

    def artifact_path(self, timestamp: str) -> Path:
        name = ArtifactName(
            kind=self.kind,
            alias=self.alias,
            timestamp=timestamp,
            extension=self.extension,
        )
        return name.path_in(self.backup_dir)

    def build_command(self, artifact: Path) -> List[str]:
        conn = self.connection
        cmd = [
            "pg_dump",
            "-h", conn.host,
            "-p", str(conn.port),
            "-U", conn.username,
            "-d", conn.database,
            "-f", str(artifact),
            "--verbose",
            "--no-password",
        ]
        if conn.schema_name:
            cmd += ["--schema", conn.schema_name]
        if _is_true(self.options.get("schema_only")):
            cmd.append("--schema-only")
        if _is_true(self.options.get("data_only")):
            cmd.append("--data-only")
        if "format" in self.options:
            cmd += ["--format", self.dump_format]
        for table in self.options.get("exclude_table", "").split(","):
            if table.strip():
                cmd += ["--exclude-table", table.strip()]
        return cmd

    def execute(self, timestamp: str) -> Path:
        artifact = self.artifact_path(timestamp)
        logger.info("backup_started", alias=self.alias, kind=self.kind.value, artifact=str(artifact))

        run_tool(self.alias, self.build_command(artifact), env=self.env,
                 timeout=self.schedule.timeout_seconds)

        return finalize_artifact(self.alias, artifact, self.options)


class RedisJob:
    """Copies a Redis dataset, either streamed by redis-cli or via SAVE."""

    kind = JobKind.REDIS

    def __init__(self, spec: JobSpec):
        if not isinstance(spec.connection, RedisConnection):
            raise ConstructionError(f"'{spec.alias}' is not a redis job")
        self.spec = spec
        self.connection: RedisConnection = spec.connection
        self.options = dict(spec.backup_options)

        method = self.options.get("method", "rdb").lower()
        if method not in REDIS_METHODS:
            raise ConstructionError(f"Unknown backup method '{method}' for '{spec.alias}'")
        self.method = method

        self.env = dict(os.environ)
        if self.connection.password:
            # read by redis-cli in place of -a
            self.env["REDISCLI_AUTH"] = self.connection.password

    @property
    def alias(self) -> str:
        return self.spec.alias

    @property
    def backup_dir(self) -> Path:
        return self.spec.backup_dir

    @property
    def schedule(self) -> ScheduleConfig:
        return self.spec.schedule

    def artifact_path(self, timestamp: str) -> Path:
        name = ArtifactName(
            kind=self.kind,
            alias=self.alias,
            timestamp=timestamp,
            extension="rdb",
        )
        return name.path_in(self.backup_dir)

    def execute(self, timestamp: str) -> Path:
        artifact = self.artifact_path(timestamp)
        logger.info("backup_started", alias=self.alias, kind=self.kind.value,
                    artifact=str(artifact), method=self.method)

        if self.method == "rdb":
            self._dump_rdb(artifact)
        else:
            self._save_and_copy(artifact)

        return finalize_artifact(self.alias, artifact, self.options)

    def _dump_rdb(self, artifact: Path) -> None:
        conn = self.connection
        cmd = ["redis-cli", "-h", conn.host, "-p", str(conn.port), "--rdb", str(artifact)]
        run_tool(self.alias, cmd, env=self.env, timeout=self.schedule.timeout_seconds)

    def _save_and_copy(self, artifact: Path) -> None:
        conn = self.connection
        client = redis.Redis(
            host=conn.host,
            port=conn.port,
            password=conn.password or None,
            db=conn.database or 0,
            socket_timeout=self.schedule.timeout_seconds,
        )
        try:
            client.save()
        except redis.RedisError as e:
            raise DumpError(self.alias, "Redis SAVE failed", str(e))
        finally:
            client.close()

        container = conn.container or conn.host
        cmd = ["docker", "cp", f"{container}:/data/dump.rdb", str(artifact)]
        run_tool(self.alias, cmd, env=self.env, timeout=self.schedule.timeout_seconds)


JOB_TYPES = {
    JobKind.POSTGRES: PostgresJob,
    JobKind.REDIS: RedisJob,
}


def build_job(spec: JobSpec) -> BackupJob:
    """Instantiate the job implementation for a spec's kind."""
    job_type = JOB_TYPES.get(spec.kind)
    if job_type is None:
        raise ConstructionError(f"No backup job for kind '{spec.kind.value}' (alias '{spec.alias}')")
    return job_type(spec)

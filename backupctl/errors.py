"""Exceptions raised by backupctl."""

from pathlib import Path
from typing import Optional


class BackupctlError(Exception):
    """Base class for all backupctl errors."""


class ConfigError(BackupctlError):
    """Configuration file could not be read, interpolated or validated."""


class ConstructionError(BackupctlError):
    """A configured job kind has no job implementation."""


class DumpError(BackupctlError):
    """External dump tool failed for one job."""

    def __init__(self, alias: str, message: str, stderr: str = ""):
        self.alias = alias
        self.stderr = stderr
        detail = f"{message}: {stderr.strip()}" if stderr.strip() else message
        super().__init__(f"[{alias}] {detail}")


class CompressionError(BackupctlError):
    """Artifact could not be compressed. The uncompressed artifact is kept."""


class SweepError(BackupctlError):
    """Backup directory could not be listed during a retention sweep."""


class EntryDeleteError(BackupctlError):
    """A single expired artifact could not be removed."""

    def __init__(self, path: Path, cause: Optional[BaseException] = None):
        self.path = path
        self.cause = cause
        super().__init__(f"Failed to remove {path}: {cause}")


class RunnerFault(BackupctlError):
    """Unexpected exception that terminated a job's runner."""

    def __init__(self, alias: str, cause: BaseException):
        self.alias = alias
        self.cause = cause
        super().__init__(f"Runner for '{alias}' terminated: {cause!r}")

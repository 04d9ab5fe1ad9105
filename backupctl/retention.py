"""Retention sweeps over the backup directory."""

import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

from .artifacts import belongs_to
from .errors import EntryDeleteError, SweepError
from .log import get_logger
from .models import RetentionPolicy, SweepReport

logger = get_logger(__name__)


def artifact_created_at(path: Path) -> datetime:
    """Return when an artifact was written.

    Artifacts are written once, so their modification time is their creation
    time.
    """
    return datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)


def _remove_if_expired(path: Path, cutoff: datetime) -> bool:
    """Delete an artifact written before ``cutoff``. Returns True if removed."""
    try:
        if artifact_created_at(path) >= cutoff:
            return False
        path.unlink()
    except OSError as e:
        raise EntryDeleteError(path, e) from e
    return True


class RetentionSweeper:
    """Deletes one alias's artifacts once they are older than the policy allows."""

    def __init__(self, policy: RetentionPolicy):
        self.policy = policy

    def sweep(self, directory: Union[str, Path], alias: str,
              now: Optional[datetime] = None) -> SweepReport:
        """Remove expired artifacts of ``alias`` from ``directory``.

        Raises:
            SweepError: if the directory cannot be listed.
        """
        return sweep(directory, alias, self.policy, now=now)


def sweep(directory: Union[str, Path], alias: str, policy: RetentionPolicy,
          now: Optional[datetime] = None) -> SweepReport:
    """Remove expired artifacts of ``alias`` from ``directory``.

    Entries that fail to stat or delete are logged and recorded in the report;
    the remaining entries are still processed.
    """
    cutoff = policy.cutoff(now or datetime.now(timezone.utc))
    report = SweepReport(alias=alias)

    logger.info("sweep_started", alias=alias, retention_days=policy.retention_days)

    try:
        with os.scandir(directory) as it:
            entries = [entry for entry in it if entry.is_file(follow_symlinks=False)]
    except OSError as e:
        raise SweepError(f"Cannot list backup directory {directory}: {e}") from e

    for entry in entries:
        if not belongs_to(entry.name, alias):
            continue
        path = Path(entry.path)
        try:
            if _remove_if_expired(path, cutoff):
                logger.info("artifact_expired", alias=alias, artifact=str(path))
                report.deleted.append(path)
        except EntryDeleteError as e:
            logger.warning("artifact_delete_failed", alias=alias, artifact=str(path), error=str(e))
            report.failed.append(path)

    logger.info("sweep_completed", alias=alias, deleted=len(report.deleted),
                failed=len(report.failed))
    return report

"""Supervisor that runs every configured job side by side."""

import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from .config import BackupConfig
from .jobs import BackupJob, build_job
from .log import get_logger
from .models import RetentionPolicy
from .retention import RetentionSweeper
from .runner import JobRunner

logger = get_logger(__name__)


class Orchestrator:
    """Owns all jobs and one runner thread per job.

    A runner that dies is recorded in ``failures`` and the others keep running.
    ``run`` returns only after every runner has ended, which in normal operation
    means after ``stop`` was called.
    """

    def __init__(self, jobs: Sequence[BackupJob], backup_dir: Union[str, Path],
                 policy: Optional[RetentionPolicy] = None,
                 stop_event: Optional[threading.Event] = None):
        self.jobs: List[BackupJob] = list(jobs)
        self.backup_dir = Path(backup_dir)
        self.policy = policy or RetentionPolicy()
        self.stop_event = stop_event or threading.Event()
        self.sweeper = RetentionSweeper(self.policy)
        self.runners: Dict[str, JobRunner] = {}
        self.failures: Dict[str, BaseException] = {}

    @classmethod
    def from_config(cls, config: BackupConfig,
                    stop_event: Optional[threading.Event] = None) -> "Orchestrator":
        """Build every job up front.

        Raises:
            ConstructionError: if a job cannot be built; nothing has started yet.
        """
        jobs = [build_job(spec) for spec in config.job_specs()]
        return cls(
            jobs,
            config.common.backup_dir,
            config.common.retention_policy(),
            stop_event=stop_event,
        )

    def stop(self) -> None:
        """Ask every runner to exit at its next wait."""
        logger.info("orchestrator_stopping")
        self.stop_event.set()

    def run(self, max_cycles: Optional[int] = None, immediate: bool = False) -> Dict[str, BaseException]:
        """Start one runner per job and wait for all of them.

        Returns:
            Jobs whose runner terminated with an exception, keyed like ``runners``.
        """
        for directory in {self.backup_dir, *(Path(job.backup_dir) for job in self.jobs)}:
            directory.mkdir(parents=True, exist_ok=True)

        logger.info(
            "orchestrator_started",
            jobs=len(self.jobs),
            backup_dir=str(self.backup_dir),
            retention_days=self.policy.retention_days,
        )
        if not self.jobs:
            logger.warning("no_jobs_configured")
            return self.failures

        self.runners = {}
        for position, job in enumerate(self.jobs):
            key = job.alias
            if key in self.runners:
                key = f"{job.alias}#{position}"
                logger.warning("duplicate_alias", alias=job.alias, runner=key)
            self.runners[key] = JobRunner(job, self.sweeper, self.stop_event)

        with ThreadPoolExecutor(max_workers=len(self.runners),
                                thread_name_prefix="backup") as pool:
            futures = {
                pool.submit(runner.run, max_cycles, immediate): alias
                for alias, runner in self.runners.items()
            }
            for future in as_completed(futures):
                alias = futures[future]
                error = future.exception()
                if error is not None:
                    self.failures[alias] = error
                    logger.error("runner_terminated", alias=alias, error=str(error))
                else:
                    logger.info("runner_finished", alias=alias)

        logger.info("orchestrator_stopped", failed=sorted(self.failures))
        return self.failures

"""Runs backups forever at a fixed interval."""

import time
from datetime import timedelta
from typing import Callable, Optional

from backup.runner import BackupRunner
from common.logging_config import get_logger, set_run_id

logger = get_logger(__name__)


class BackupScheduler:
    """
    Runs a backup immediately, then once per interval.

    A failed run is not retried early: the next attempt happens at the next
    interval, from scratch.
    """

    def __init__(
        self,
        runner: BackupRunner,
        delay: timedelta,
        sleep: Callable[[float], None] = time.sleep
    ):
        """
        Initialize scheduler.

        Args:
            runner: Runner executing one backup
            delay: Time between the end of one run and the start of the next
            sleep: Blocking sleep (testing)
        """
        self.runner = runner
        self.delay = delay
        self.sleep = sleep

    def run_once(self, run_id: str = "run-1") -> bool:
        """
        Perform a single run tagged with run_id in the logs.

        Returns:
            True if the run succeeded
        """
        set_run_id(run_id)
        try:
            return self.runner.run() is not None
        finally:
            set_run_id(None)

    def run_forever(self, max_runs: Optional[int] = None) -> int:
        """
        Loop over backup runs.

        Args:
            max_runs: Stop after this many runs (None = never stop)

        Returns:
            Number of successful runs
        """
        runs = 0
        succeeded = 0

        while max_runs is None or runs < max_runs:
            if runs:
                logger.info(f"Next backup in {self.delay}")
                self.sleep(self.delay.total_seconds())

            runs += 1
            if self.run_once(f"run-{runs}"):
                succeeded += 1

        return succeeded

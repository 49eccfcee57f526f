"""
Remote sync -- stage, commit, merge, push, compact.

Steps are strictly ordered; each depends on the repository state the
previous one left. An unchanged tree ends the run before commit, so
repeated pushes never grow history; a commit left behind by a failed
push is pushed again by the next run.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

from .audit import AuditLog
from .config import EXCLUDE_PATTERNS, FlowConfig
from .errors import GitOperationFailure
from .git import GitRepo

logger = logging.getLogger("sessionflow.remote")

REMOTE = "origin"
COMMIT_PREFIX = "Secure Auto-sync"


class SyncOutcome(str, Enum):
    """Result of a remote sync."""

    NO_CHANGES = "no_changes"
    PUSHED = "pushed"


def commit_message(now: datetime) -> str:
    """Snapshot commit message, e.g. ``Secure Auto-sync: 2026-02-23 14:05:09``."""
    return f"{COMMIT_PREFIX}: {now.strftime('%Y-%m-%d %H:%M:%S')}"


class RemoteSyncer:
    """Publish the workspace to the remote repository.

    Args:
        config: Engine configuration.
        audit: Audit sink.
        repo: Workspace repository. Defaults to one at ``config.workspace``.
        clock: Returns the current UTC time (injectable for tests).
    """

    def __init__(
        self,
        config: FlowConfig,
        audit: AuditLog,
        repo: Optional[GitRepo] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.config = config
        self.audit = audit
        self.repo = repo or GitRepo(config.workspace, timeout=config.command_timeout)
        self._clock = clock

    def sync(self) -> SyncOutcome:
        """Run stage -> check diff -> commit -> merge -> push -> compact.

        Bookkeeping files are excluded before staging. A tree that is
        unchanged but still has commits a previous push failed to
        deliver skips the commit and retries the push.

        Returns:
            SyncOutcome.NO_CHANGES when nothing differs from the last
            commit and nothing is waiting to be pushed.

        Raises:
            GitOperationFailure: Staging, commit or push failed.
        """
        self.repo.ensure_excludes(EXCLUDE_PATTERNS)
        added = self.repo.add_all()
        if not added.ok:
            raise GitOperationFailure("add", added.describe())

        if self.repo.has_staged_changes():
            committed = self.repo.commit(commit_message(self._clock()))
            if not committed.ok:
                raise GitOperationFailure("commit", committed.describe())
        else:
            pending = self.repo.unpushed_count(REMOTE, self.config.branch)
            if not pending:
                logger.info("Workspace unchanged; nothing to commit")
                return SyncOutcome.NO_CHANGES
            logger.info("Workspace unchanged; retrying push of %d pending commit(s)", pending)

        self.merge_remote()

        pushed = self.repo.push(REMOTE, self.config.branch)
        if not pushed.ok:
            self.audit.error(f"Push to {self.config.git_host} failed: {pushed.describe()}")
            raise GitOperationFailure("push", pushed.describe())
        self.audit.info(f"Successfully synced AI session data to {self.config.git_host}.")

        self.compact()
        return SyncOutcome.PUSHED

    def merge_remote(self) -> bool:
        """Merge remote history, remote content winning per-file conflicts.

        A failure is recorded and otherwise ignored: the local commit
        is still pushed.
        """
        result = self.repo.pull(REMOTE, self.config.branch, strategy_option="theirs")
        if not result.ok:
            self.audit.info("Pull had no mergeable updates or conflict strategy applied. Continuing push.")
            logger.debug("pull: %s", result.describe())
            if self.repo.merge_in_progress():
                self.repo.merge_abort()
        return result.ok

    def compact(self) -> None:
        result = self.repo.gc()
        if not result.ok:
            logger.debug("gc skipped: %s", result.describe())

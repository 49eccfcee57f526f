"""
Sync engine -- composes the components into the three user flows.

    push (trigger)  ->  lock guard -> submit detached worker -> exit
    push --daemon   ->  bootstrap -> mirror -> security gate -> remote sync
    restore         ->  bootstrap -> pull
    clean           ->  enumerate sources -> guarded delete

The worker releases the lock on every exit path, so a crashed run can
never wedge the next one.
"""

from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, Optional

from .audit import AuditLog, get_audit_log
from .bootstrap import BootstrapStatus, WorkspaceBootstrapper
from .config import FlowConfig
from .errors import GitOperationFailure, SessionFlowError
from .gate import SecurityGate
from .git import GitRepo
from .hosting import HostingClient
from .launcher import DetachedProcessLauncher, Launcher
from .lock import LockGuard
from .mapper import is_within
from .mirror import Mirror
from .preflight import require_tools
from .remote import REMOTE, RemoteSyncer, SyncOutcome

logger = logging.getLogger("sessionflow.engine")


class TriggerOutcome(str, Enum):
    """What a push trigger did."""

    DEBOUNCED = "debounced"
    SCHEDULED = "scheduled"
    FAILED = "failed"


class PushOutcome(str, Enum):
    """How a push worker run ended."""

    SYNCED = "synced"
    NO_CHANGES = "no_changes"
    BLOCKED = "blocked"
    FAILED = "failed"


class RestoreOutcome(str, Enum):
    RESTORED = "restored"
    BUSY = "busy"
    FAILED = "failed"


@dataclass
class CleanReport:
    """What one clean pass removed or refused."""

    removed: list[Path] = field(default_factory=list)
    refused: list[Path] = field(default_factory=list)
    failed: list[Path] = field(default_factory=list)


class SyncEngine:
    """Orchestrates push, restore and clean for one configuration.

    Args:
        config: Engine configuration.
        audit: Audit sink. Defaults to the process-wide log for the workspace.
        launcher: Worker submission. Defaults to a detached process.
        lock: Lock guard. Defaults to one at ``config.lock_path``.
        hosting: Hosting client used by the bootstrapper.
        require: Dependency check, raising ``DependencyMissing``.
    """

    def __init__(
        self,
        config: FlowConfig,
        audit: Optional[AuditLog] = None,
        launcher: Optional[Launcher] = None,
        lock: Optional[LockGuard] = None,
        hosting: Optional[HostingClient] = None,
        require: Callable[[Iterable[str]], object] = require_tools,
    ):
        self.config = config
        self.audit = audit or get_audit_log(config.audit_log_path)
        self.launcher = launcher or DetachedProcessLauncher()
        self.lock = lock or LockGuard(config.lock_path, config.debounce_window)
        self.require = require
        self.repo = GitRepo(config.workspace, timeout=config.command_timeout)
        self.bootstrapper = WorkspaceBootstrapper(config, self.audit, hosting=hosting, require=require)

    # ------------------------------------------------------------------
    # push
    # ------------------------------------------------------------------

    def trigger_push(self) -> TriggerOutcome:
        """Schedule a push worker unless one ran or started very recently.

        Returns:
            TriggerOutcome. A held lock is DEBOUNCED, not an error.
        """
        if not self.lock.try_acquire():
            logger.info("Push debounced; lock %s is live", self.config.lock_path)
            return TriggerOutcome.DEBOUNCED

        try:
            pid = self.launcher.submit(self.config)
        except OSError as exc:
            self.lock.release()
            self.audit.error(f"Failed to start push worker: {exc}")
            return TriggerOutcome.FAILED

        # the worker claims the lock itself; it may already be done
        logger.info("Push worker submitted (pid=%s)", pid)
        return TriggerOutcome.SCHEDULED

    def run_push_worker(self) -> PushOutcome:
        """Run the full push pipeline, then release the lock no matter what.

        The worker first records its own pid in the trigger's lock
        record, before it can possibly release it.

        Returns:
            PushOutcome. Failures are recorded in the audit log.
        """
        try:
            if not self.lock.set_owner(os.getpid()):
                logger.warning("No lock record to claim at %s", self.config.lock_path)
            return self._push_pipeline()
        except (SessionFlowError, OSError) as exc:
            self.audit.error(f"Daemon push failed: {exc}")
            return PushOutcome.FAILED
        except Exception as exc:
            logger.exception("Unexpected push worker failure")
            self.audit.error(f"Daemon push failed unexpectedly: {exc!r}")
            return PushOutcome.FAILED
        finally:
            try:
                self.lock.release()
            except OSError as exc:
                self.audit.error(f"Failed to remove lock file: {exc}")

    def _push_pipeline(self) -> PushOutcome:
        self.require(("git", "gitleaks"))
        self.bootstrapper.ensure()

        Mirror(self.config, self.audit).run()

        gate = SecurityGate(self.config, self.audit, repo=self.repo).run()
        if not gate.passed:
            return PushOutcome.BLOCKED

        outcome = RemoteSyncer(self.config, self.audit, repo=self.repo).sync()
        if outcome is SyncOutcome.NO_CHANGES:
            return PushOutcome.NO_CHANGES
        return PushOutcome.SYNCED

    # ------------------------------------------------------------------
    # restore
    # ------------------------------------------------------------------

    def restore(self) -> RestoreOutcome:
        """Bootstrap if needed and pull the latest snapshot.

        Holds the lock for the duration so a push worker cannot
        rewrite the workspace underneath the pull.
        """
        if not self.lock.try_acquire():
            self.audit.error("Restore skipped: a sync is in progress. Try again shortly.")
            return RestoreOutcome.BUSY

        try:
            self.require(("git",))
            status = self.bootstrapper.ensure()
            self.audit.user_action("Initiating session restore pull from remote.")
            # a fresh clone already is the latest remote state
            if status is BootstrapStatus.ALREADY_PRESENT:
                result = self.repo.pull(REMOTE, self.config.branch, strategy_option="theirs")
                if not result.ok:
                    if self.repo.merge_in_progress():
                        self.repo.merge_abort()
                    raise GitOperationFailure("pull", result.describe())
        except (SessionFlowError, OSError) as exc:
            self.audit.error(f"Restore failed: {exc}")
            return RestoreOutcome.FAILED
        finally:
            self.lock.release()
        return RestoreOutcome.RESTORED

    # ------------------------------------------------------------------
    # clean
    # ------------------------------------------------------------------

    def clean(self) -> CleanReport:
        """Irreversibly delete the top-level entries of every source root.

        An entry whose real path lies outside its source root (a symlink
        pointing elsewhere) is refused; a symlink inside is unlinked,
        never followed.
        """
        report = CleanReport()
        self.audit.user_action("User requested local session state cleanup.")

        for source in self.config.sources:
            if not source.is_dir():
                continue
            root_real = os.path.realpath(source)
            try:
                entries = sorted(source.iterdir())
            except OSError as exc:
                self.audit.error(f"Cannot list {source}: {exc}")
                report.failed.append(source)
                continue

            for entry in entries:
                try:
                    if not is_within(os.path.realpath(entry), root_real):
                        self.audit.error(
                            f"Skipping cleanup of {entry} because it resolves outside source"
                        )
                        report.refused.append(entry)
                        continue
                    if entry.is_symlink() or not entry.is_dir():
                        entry.unlink()
                    else:
                        shutil.rmtree(entry)
                    report.removed.append(entry)
                except OSError as exc:
                    self.audit.error(f"Error checking/removing {entry}: {exc}")
                    report.failed.append(entry)

        logger.info(
            "Clean: %d removed, %d refused, %d failed",
            len(report.removed), len(report.refused), len(report.failed),
        )
        return report


def configure_worker_logging(log_file: Path) -> None:
    """Send the detached worker's log records to ``log_file``."""
    log_file.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
    handler = logging.FileHandler(log_file, encoding="utf-8")
    handler.setFormatter(
        logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s")
    )
    root = logging.getLogger()
    root.addHandler(handler)
    root.setLevel(logging.INFO)

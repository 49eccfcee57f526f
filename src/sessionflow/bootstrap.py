"""
Workspace bootstrap -- make sure the workspace is a clone of the remote.

Idempotent: an existing repository is left alone. Otherwise the remote
is created (if needed) and cloned. Nothing already on disk is deleted:
unexplained leftovers are moved into a ``.bak.<timestamp>`` snapshot,
while engine bookkeeping (the lock, the audit log) stays in place so
the lock keeps guarding the run.
"""

from __future__ import annotations

import logging
import os
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, Optional

from .audit import AuditLog
from .config import BOOKKEEPING_NAMES, EXCLUDE_PATTERNS, FlowConfig
from .errors import BootstrapFailure
from .git import GitRepo
from .hosting import HostingClient
from .preflight import require_tools
from .quarantine import quarantine, quarantine_contents

logger = logging.getLogger("sessionflow.bootstrap")


class BootstrapStatus(str, Enum):
    """What ``ensure`` had to do."""

    ALREADY_PRESENT = "already_present"
    CLONED = "cloned"


class WorkspaceBootstrapper:
    """Back the workspace with a clone of the private remote repository.

    Args:
        config: Engine configuration.
        audit: Audit sink.
        hosting: Hosting CLI client. Defaults to gh against ``config.git_host``.
        require: Dependency check, raising ``DependencyMissing``.
    """

    def __init__(
        self,
        config: FlowConfig,
        audit: AuditLog,
        hosting: Optional[HostingClient] = None,
        require: Callable[[Iterable[str]], object] = require_tools,
    ):
        self.config = config
        self.audit = audit
        self.hosting = hosting or HostingClient(config.git_host, timeout=config.command_timeout)
        self.require = require
        self.repo = GitRepo(config.workspace, timeout=config.command_timeout)

    def ensure(self) -> BootstrapStatus:
        """Clone the remote into the workspace unless a repository exists.

        Returns:
            BootstrapStatus.

        Raises:
            DependencyMissing: git or gh is not installed.
            AuthenticationFailure: gh has no usable login.
            BootstrapFailure: The clone failed.
        """
        if self.repo.exists():
            self.prepare()
            return BootstrapStatus.ALREADY_PRESENT

        self.require(("git", "gh"))
        self._set_aside_leftovers()

        login = self.hosting.current_login()
        repo_ref = f"{login}/{self.config.repo_name}"
        self.hosting.create_private_repo(login, self.config.repo_name)

        staging = self._staging_dir()
        result = GitRepo.clone(
            self.config.clone_url(login), staging, timeout=self.config.command_timeout
        )
        if not result.ok:
            self.audit.error(f"Bootstrap clone failed: {result.describe()}")
            raise BootstrapFailure(f"Could not clone {repo_ref}: {result.describe()}")

        self._adopt(staging)
        self.prepare()
        self.audit.info(f"Cloned backup repository {repo_ref} into {self.config.workspace}.")
        return BootstrapStatus.CLONED

    def prepare(self) -> None:
        """Keep bookkeeping files and snapshots out of commits."""
        self.repo.ensure_excludes(EXCLUDE_PATTERNS)

    def _set_aside_leftovers(self) -> None:
        workspace = self.config.workspace
        if not os.path.lexists(workspace):
            return
        if workspace.is_symlink() or not workspace.is_dir():
            quarantine(workspace, self.audit, reason="(not a directory)")
            return
        quarantine_contents(
            workspace,
            self.audit,
            keep=BOOKKEEPING_NAMES,
            reason="instead of deleting (not a git repository)",
        )

    def _staging_dir(self) -> Path:
        workspace = self.config.workspace
        staging = workspace.with_name(f"{workspace.name}.clone-{os.getpid()}")
        if os.path.lexists(staging):
            quarantine(staging, self.audit, reason="(stale clone staging)")
        return staging

    def _adopt(self, staging: Path) -> None:
        """Move the fresh clone's contents into the workspace."""
        workspace = self.config.workspace
        workspace.mkdir(parents=True, exist_ok=True, mode=0o700)

        collisions = []
        for entry in sorted(staging.iterdir()):
            target = workspace / entry.name
            if os.path.lexists(target):
                collisions.append(entry.name)
                continue
            os.rename(entry, target)

        if collisions:
            quarantine(
                staging,
                self.audit,
                reason=f"(remote copies of {', '.join(collisions)} kept aside)",
            )
        else:
            staging.rmdir()

"""
Security gate -- nothing is committed until the scanner passes.

Runs gitleaks over the workspace. Any non-zero outcome (a finding, a
scanner crash, a timeout, a missing binary) blocks the run: the
mirrored trees are moved into ``.bak.<timestamp>`` snapshots for
manual inspection and uncommitted changes are discarded.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .audit import AuditLog
from .config import FlowConfig
from .errors import OutOfScopeError
from .git import GitRepo
from .mapper import map_source_to_dest
from .quarantine import quarantine
from .runner import CommandResult, run_command

logger = logging.getLogger("sessionflow.gate")

LEAKS_FOUND = 1

# Default rules plus an allowlist for snapshots and engine bookkeeping
SCANNER_CONFIG = """\
title = "sessionflow"

[extend]
useDefault = true

[allowlist]
description = "sessionflow quarantine snapshots and bookkeeping"
paths = [
  '''(^|/)\\.git/''',
  '''\\.bak\\.[0-9]+(-[0-9]+)?(/|$)''',
  '''(^|/)\\.sync_lock''',
  '''(^|/)\\.security-audit\\.log$''',
  '''(^|/)\\.worker\\.log$''',
]
"""


@dataclass
class GateResult:
    """Outcome of one gate run."""

    passed: bool
    scan: CommandResult
    quarantined: list[Path] = field(default_factory=list)


class SecurityGate:
    """Scan the workspace and roll back on detection.

    Args:
        config: Engine configuration.
        audit: Audit sink.
        repo: Workspace repository. Defaults to one at ``config.workspace``.
    """

    def __init__(self, config: FlowConfig, audit: AuditLog, repo: Optional[GitRepo] = None):
        self.config = config
        self.audit = audit
        self.repo = repo or GitRepo(config.workspace, timeout=config.command_timeout)

    def write_scanner_config(self) -> Path:
        path = self.config.gitleaks_config_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(SCANNER_CONFIG, encoding="utf-8")
        return path

    def scan(self) -> CommandResult:
        """Run gitleaks over the workspace tree with redacted output."""
        scanner_config = self.write_scanner_config()
        return run_command(
            [
                "gitleaks", "detect",
                "--source", ".",
                "--no-git",
                "--redact",
                "--no-banner",
                "--config", str(scanner_config),
            ],
            cwd=self.config.workspace,
            timeout=self.config.command_timeout,
        )

    def run(self) -> GateResult:
        """Scan, and on anything but a clean pass, block and roll back.

        Returns:
            GateResult with ``passed`` and the snapshot paths created.
        """
        result = self.scan()
        if result.ok:
            logger.info("Secret scan passed")
            return GateResult(passed=True, scan=result)

        if result.returncode == LEAKS_FOUND and not result.timed_out:
            reason = "Gitleaks detected a potential secret"
        else:
            reason = f"Secret scan could not complete ({result.describe()})"
        self.audit.security_block(f"{reason}. Sync aborted and staged state reset.")

        quarantined = self.rollback()
        return GateResult(passed=False, scan=result, quarantined=quarantined)

    def rollback(self) -> list[Path]:
        """Quarantine every mapped source tree, then discard uncommitted changes.

        Snapshots are taken first so the reset cannot remove the
        offending content before it is preserved.
        """
        quarantined = []
        for source in self.config.sources:
            try:
                dest = map_source_to_dest(source, self.config.home, self.config.workspace)
            except OutOfScopeError:
                continue
            if not os.path.lexists(dest):
                continue
            try:
                quarantined.append(quarantine(dest, self.audit, reason="after security block"))
            except OSError:
                # already recorded; keep going with the other sources
                continue

        if self.repo.exists():
            for step in (self.repo.reset_hard, self.repo.clean_untracked):
                outcome = step()
                if not outcome.ok:
                    self.audit.info(f"Rollback step failed: {outcome.describe()}")
        return quarantined

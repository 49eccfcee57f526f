"""
Mirror -- copy session source trees into the workspace.

Each source root lands in its mapped destination (see ``mapper``).
Symbolic links are never followed or copied, and nothing is written
unless its resolved destination is inside the resolved workspace.
One bad entry is logged and skipped; the rest of the tree still gets
copied. The mirror is additive: files deleted from a source stay in
the workspace.
"""

from __future__ import annotations

import logging
import os
import shutil
import stat
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional

from .audit import AuditLog
from .config import FlowConfig
from .errors import OutOfScopeError
from .mapper import is_within, map_source_to_dest

logger = logging.getLogger("sessionflow.mirror")


@dataclass
class MirrorReport:
    """What one mirror pass did."""

    copied: list[Path] = field(default_factory=list)
    symlinks_skipped: list[Path] = field(default_factory=list)
    refused: list[Path] = field(default_factory=list)
    failed: list[Path] = field(default_factory=list)
    missing_sources: list[Path] = field(default_factory=list)
    destinations: dict[Path, Path] = field(default_factory=dict)


class Mirror:
    """Replicates source roots into the workspace.

    Args:
        config: Engine configuration.
        audit: Audit sink for skips and refusals.
    """

    def __init__(self, config: FlowConfig, audit: AuditLog):
        self.config = config
        self.audit = audit

    def run(self, sources: Optional[Iterable[Path]] = None) -> MirrorReport:
        """Mirror every source root.

        Args:
            sources: Roots to mirror. Defaults to ``config.sources``.

        Returns:
            MirrorReport for the pass.
        """
        report = MirrorReport()
        workspace = self.config.workspace
        workspace.mkdir(parents=True, exist_ok=True, mode=0o700)
        workspace_real = os.path.realpath(workspace)

        claimed: dict[Path, Path] = {}
        for source in (self.config.sources if sources is None else sources):
            source = Path(source)
            if not os.path.lexists(source):
                report.missing_sources.append(source)
                continue

            try:
                dest = map_source_to_dest(source, self.config.home, workspace)
            except OutOfScopeError as exc:
                self.audit.error(str(exc))
                report.refused.append(source)
                continue

            if dest in claimed:
                self.audit.error(
                    f"Source {source} maps to {dest.name}, already used by {claimed[dest]}; skipping"
                )
                report.refused.append(source)
                continue
            claimed[dest] = source
            report.destinations[source] = dest

            self.mirror_tree(source, dest, workspace_real, report)

        logger.info(
            "Mirror pass: %d copied, %d symlinks skipped, %d refused, %d failed",
            len(report.copied), len(report.symlinks_skipped),
            len(report.refused), len(report.failed),
        )
        return report

    def mirror_tree(self, source: Path, dest: Path, workspace_real: str, report: MirrorReport) -> None:
        """Copy one tree using an explicit stack so depth is unbounded."""
        stack = [(source, dest)]
        while stack:
            src, dst = stack.pop()
            try:
                st = os.lstat(src)
            except OSError as exc:
                self.audit.error(f"Cannot read {src}: {exc}")
                report.failed.append(src)
                continue

            if stat.S_ISLNK(st.st_mode):
                self.audit.info(f"Skipping symbolic link during copy: {src}")
                report.symlinks_skipped.append(src)
                continue

            if stat.S_ISDIR(st.st_mode):
                if not is_within(os.path.realpath(dst), workspace_real):
                    self.audit.error(f"Refusing to create {dst}: resolves outside workspace")
                    report.refused.append(src)
                    continue
                try:
                    dst.mkdir(parents=True, exist_ok=True)
                    names = sorted(os.listdir(src))
                except OSError as exc:
                    self.audit.error(f"Cannot mirror directory {src}: {exc}")
                    report.failed.append(src)
                    continue
                for name in reversed(names):
                    stack.append((src / name, dst / name))
                continue

            if stat.S_ISREG(st.st_mode):
                self._copy_file(src, dst, workspace_real, report)
            # sockets, fifos and devices are not session data

    def _copy_file(self, src: Path, dst: Path, workspace_real: str, report: MirrorReport) -> None:
        if not is_within(os.path.realpath(dst), workspace_real):
            self.audit.error(f"Refusing to copy {src} to destination outside workspace: {dst}")
            report.refused.append(src)
            return
        if os.path.isdir(dst):
            self.audit.error(f"Cannot copy {src}: {dst} is a directory in the workspace; skipping")
            report.failed.append(src)
            return
        try:
            shutil.copy2(src, dst)
        except OSError as exc:
            self.audit.error(f"Failed to copy {src}: {exc}")
            report.failed.append(src)
            return
        report.copied.append(dst)

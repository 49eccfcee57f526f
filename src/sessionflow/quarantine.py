"""
Quarantine -- move aside instead of delete.

Whenever engine state might be needed later (a half-built workspace,
mirrored content that tripped the secret scanner) it is renamed to a
``<name>.bak.<epoch-millis>`` sibling. Snapshots are never pruned.
"""

from __future__ import annotations

import os
import time
from pathlib import Path
from typing import Container, Optional

from .audit import AuditLog

BACKUP_MARKER = ".bak."


def backup_path_for(target: Path, now_ms: Optional[int] = None) -> Path:
    """Pick an unused ``.bak.<timestamp>`` sibling for ``target``."""
    stamp = int(time.time() * 1000) if now_ms is None else now_ms
    candidate = target.with_name(f"{target.name}{BACKUP_MARKER}{stamp}")
    suffix = 1
    while os.path.lexists(candidate):
        candidate = target.with_name(f"{target.name}{BACKUP_MARKER}{stamp}-{suffix}")
        suffix += 1
    return candidate


def is_backup(path: Path) -> bool:
    """True for names produced by ``backup_path_for``."""
    return BACKUP_MARKER in path.name


def quarantine(target: Path, audit: AuditLog, reason: str = "") -> Path:
    """Rename ``target`` to a timestamped sibling.

    Args:
        target: File or directory to move aside. Must exist.
        audit: Where the move is recorded.
        reason: Appended to the audit message.

    Returns:
        The new path.

    Raises:
        OSError: The rename failed; recorded as an ERROR first.
    """
    backup = backup_path_for(target)
    try:
        os.rename(target, backup)
    except OSError as exc:
        audit.error(f"Failed to move {target} aside: {exc}")
        raise
    message = f"Moved {target} to backup {backup}"
    if reason:
        message += f" {reason}"
    audit.info(message)
    return backup


def quarantine_contents(
    directory: Path,
    audit: AuditLog,
    keep: Container[str] = (),
    reason: str = "",
) -> Optional[Path]:
    """Move every entry of ``directory`` except ``keep`` into a snapshot.

    The directory itself stays where it is, so files named in ``keep``
    (an active lock, the audit log) never change path.

    Args:
        directory: Directory whose contents are moved aside.
        audit: Where the move is recorded.
        keep: Entry names left in place.
        reason: Appended to the audit message.

    Returns:
        The snapshot directory, or None when there was nothing to move.
    """
    movable = sorted(p for p in directory.iterdir() if p.name not in keep)
    if not movable:
        return None

    backup = backup_path_for(directory)
    backup.mkdir(mode=0o700)
    for entry in movable:
        try:
            os.rename(entry, backup / entry.name)
        except OSError as exc:
            audit.error(f"Failed to move {entry} aside: {exc}")
            raise
    message = f"Moved {len(movable)} entries of {directory} to backup {backup}"
    if reason:
        message += f" {reason}"
    audit.info(message)
    return backup

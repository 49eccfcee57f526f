"""
Security audit log — the engine's user-facing record.

Format is JSONL (one JSON object per line), append-only: entries are
never rewritten or reordered. The file is created with 0600
permissions inside the workspace.

The log is process-wide and lazily opened: ``get_audit_log`` returns
the same ``AuditLog`` for a path for the lifetime of the process, and
nothing touches disk until the first entry is recorded.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field
from rich.console import Console

logger = logging.getLogger("sessionflow.audit")

_console = Console(stderr=True, highlight=False)


class AuditLevel(str, Enum):
    """Severity of an audit entry."""

    INFO = "INFO"
    ERROR = "ERROR"
    SECURITY_BLOCK = "SECURITY_BLOCK"
    USER_ACTION = "USER_ACTION"
    LEGACY = "LEGACY"


# Levels echoed to the terminal as well as the file
ECHO_LEVELS = frozenset({AuditLevel.ERROR, AuditLevel.SECURITY_BLOCK, AuditLevel.USER_ACTION})

_LOG_LEVELS = {
    AuditLevel.INFO: logging.INFO,
    AuditLevel.ERROR: logging.ERROR,
    AuditLevel.SECURITY_BLOCK: logging.WARNING,
    AuditLevel.USER_ACTION: logging.INFO,
    AuditLevel.LEGACY: logging.INFO,
}

_STYLES = {
    AuditLevel.ERROR: "bold red",
    AuditLevel.SECURITY_BLOCK: "bold yellow",
    AuditLevel.USER_ACTION: "cyan",
}


class AuditEntry(BaseModel):
    """A single structured audit log entry."""

    timestamp: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    level: AuditLevel
    message: str

    def render(self) -> str:
        return f"[{self.timestamp}] [{self.level.value}] {self.message}"


class AuditLog:
    """Append-only audit sink bound to one file.

    Args:
        path: Log file location. Parent directories are created on
            first write with 0700 permissions.
        echo: Print ERROR, SECURITY_BLOCK and USER_ACTION entries to
            stderr.
    """

    def __init__(self, path: Path, echo: bool = True):
        self.path = Path(path)
        self.echo = echo
        self._lock = threading.Lock()

    def record(self, level: AuditLevel, message: str) -> AuditEntry:
        """Append one entry.

        Args:
            level: Entry severity.
            message: Human-readable description.

        Returns:
            AuditEntry: The entry that was written.
        """
        entry = AuditEntry(level=level, message=message)
        line = entry.model_dump_json() + "\n"

        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
            fd = os.open(self.path, os.O_WRONLY | os.O_APPEND | os.O_CREAT, 0o600)
            with os.fdopen(fd, "a", encoding="utf-8") as f:
                f.write(line)

        logger.log(_LOG_LEVELS[level], "%s: %s", level.value, message)
        if self.echo and level in ECHO_LEVELS:
            _console.print(entry.render(), style=_STYLES.get(level), markup=False)
        return entry

    def info(self, message: str) -> AuditEntry:
        return self.record(AuditLevel.INFO, message)

    def error(self, message: str) -> AuditEntry:
        return self.record(AuditLevel.ERROR, message)

    def security_block(self, message: str) -> AuditEntry:
        return self.record(AuditLevel.SECURITY_BLOCK, message)

    def user_action(self, message: str) -> AuditEntry:
        return self.record(AuditLevel.USER_ACTION, message)

    def read(self, limit: int = 0) -> list[AuditEntry]:
        """Read and parse the log.

        Plain-text lines left by older tools are wrapped in an entry
        with level LEGACY.

        Args:
            limit: Maximum entries to return (0 = all, newest last).

        Returns:
            list[AuditEntry]: Parsed entries in file order.
        """
        if not self.path.exists():
            return []

        entries: list[AuditEntry] = []
        for line in self.path.read_text(encoding="utf-8").splitlines():
            line = line.strip()
            if not line:
                continue
            try:
                entries.append(AuditEntry.model_validate(json.loads(line)))
            except ValueError:
                entries.append(AuditEntry(level=AuditLevel.LEGACY, message=line))

        if limit > 0:
            entries = entries[-limit:]
        return entries


_registry: dict[Path, AuditLog] = {}
_registry_lock = threading.Lock()


def get_audit_log(path: Path, echo: bool = True) -> AuditLog:
    """Return the process-wide audit log for ``path``, creating it lazily."""
    key = Path(path).expanduser().absolute()
    with _registry_lock:
        audit = _registry.get(key)
        if audit is None:
            audit = AuditLog(key, echo=echo)
            _registry[key] = audit
        return audit

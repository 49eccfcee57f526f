"""
Lock guard -- at most one sync worker per workspace.

The lock is a small JSON record (timestamp + owner pid) created with
``O_EXCL`` so two simultaneous triggers cannot both win. It must work
across process invocations, so there is no in-memory mutex.

A record is live while its owner process is alive, or while it is
younger than the debounce window. Anything else is stale and may be
reclaimed by the next trigger. Reclaiming runs under a non-blocking OS
file lock on a sidecar file, so two triggers that both judged the same
record stale cannot both replace it.
"""

from __future__ import annotations

import json
import logging
import os
import sys
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterator, Optional

from pydantic import BaseModel, Field

# OS file locking - platform specific
if sys.platform != "win32":
    import fcntl

    HAS_FCNTL = True
else:
    import msvcrt

    HAS_FCNTL = False

logger = logging.getLogger("sessionflow.lock")

RECLAIM_SUFFIX = ".reclaim"


class LockRecord(BaseModel):
    """Persisted lock contents."""

    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    pid: int


def pid_alive(pid: int) -> bool:
    """Check whether a process with ``pid`` exists on this machine."""
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # exists, owned by someone else
        return True
    except OSError:
        return False
    return True


class LockGuard:
    """Exclusive-create lock with debounce semantics.

    Args:
        path: Lock file location.
        window: Debounce window in seconds.
        clock: Returns the current epoch time (injectable for tests).
        is_alive: Process liveness probe (injectable for tests).
    """

    def __init__(
        self,
        path: Path,
        window: float,
        clock: Callable[[], float] = time.time,
        is_alive: Callable[[int], bool] = pid_alive,
    ):
        self.path = Path(path)
        self.window = window
        self._clock = clock
        self._is_alive = is_alive

    def read(self) -> Optional[LockRecord]:
        """Parse the current record, or None if absent or corrupt."""
        try:
            return LockRecord.model_validate(json.loads(self.path.read_text(encoding="utf-8")))
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as exc:
            logger.warning("Unreadable lock record %s: %s", self.path, exc)
            return None

    def age(self, record: Optional[LockRecord] = None) -> Optional[float]:
        """Seconds since the record was written, or None without a lock file."""
        if record is not None:
            return self._clock() - record.timestamp.timestamp()
        try:
            return self._clock() - self.path.stat().st_mtime
        except FileNotFoundError:
            return None

    def is_live(self) -> bool:
        """True while a record exists whose owner is alive or which is young.

        Liveness is checked first; age only matters once the owner
        is known to be gone.
        """
        if not os.path.lexists(self.path):
            return False
        record = self.read()
        if record is not None and self._is_alive(record.pid):
            return True
        age = self.age(record)
        if age is None:
            return False
        return age < self.window

    @property
    def reclaim_path(self) -> Path:
        """Sidecar file whose OS lock serializes stale-record reclaims."""
        return self.path.with_name(self.path.name + RECLAIM_SUFFIX)

    def try_acquire(self, pid: Optional[int] = None) -> bool:
        """Create the lock record unless a live one exists.

        A stale record is replaced only while holding the reclaim
        guard, and only if it is still stale once the guard is held.
        Losing the guard or either exclusive create to another trigger
        counts as busy.

        Args:
            pid: Owner recorded in the lock. Defaults to this process.

        Returns:
            True if this call now holds the lock.
        """
        owner = os.getpid() if pid is None else pid
        self.path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
        try:
            self._create(owner)
            return True
        except FileExistsError:
            pass

        if self.is_live():
            logger.info("Lock %s is held; debouncing", self.path)
            return False

        with self.reclaim_guard() as held:
            if not held:
                logger.info("Another trigger is reclaiming %s", self.path)
                return False
            # the record may have been replaced since it was judged stale
            if self.is_live():
                logger.info("Lock %s was reclaimed by another trigger", self.path)
                return False

            logger.info("Reclaiming stale lock %s", self.path)
            self.path.unlink(missing_ok=True)
            try:
                self._create(owner)
                return True
            except FileExistsError:
                logger.info("Lost lock race for %s", self.path)
                return False

    @contextmanager
    def reclaim_guard(self) -> Iterator[bool]:
        """Hold the reclaim guard without waiting.

        Yields:
            True if the guard is held, False if another process has it.
            The OS drops the guard if the holder dies.
        """
        fd = os.open(self.reclaim_path, os.O_RDWR | os.O_CREAT, 0o600)
        try:
            try:
                if HAS_FCNTL:
                    fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                else:
                    msvcrt.locking(fd, msvcrt.LK_NBLCK, 1)
            except OSError:
                yield False
                return
            try:
                yield True
            finally:
                if HAS_FCNTL:
                    fcntl.flock(fd, fcntl.LOCK_UN)
                else:
                    os.lseek(fd, 0, os.SEEK_SET)
                    msvcrt.locking(fd, msvcrt.LK_UNLCK, 1)
        finally:
            os.close(fd)

    def set_owner(self, pid: int) -> bool:
        """Atomically rewrite an existing record with a new owner pid.

        Never creates a record: once the lock has been released there
        is nothing to hand over.

        Returns:
            True if the record was rewritten.
        """
        if not os.path.lexists(self.path):
            return False
        record = LockRecord(pid=pid)
        tmp = self.path.with_name(f"{self.path.name}.{os.getpid()}.tmp")
        fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(record.model_dump_json())
        os.replace(tmp, self.path)
        return True

    def release(self) -> bool:
        """Remove the record unconditionally.

        Returns:
            True if a record was removed.
        """
        try:
            self.path.unlink()
        except FileNotFoundError:
            return False
        return True

    def _create(self, pid: int) -> None:
        fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(LockRecord(pid=pid).model_dump_json())

"""
Background worker submission.

The trigger never waits for a sync. It hands the work to a launcher
and only learns whether submission succeeded; the worker's outcome
shows up in the audit log and the repository, never as a return value.
"""

from __future__ import annotations

import logging
import platform
import subprocess
import sys
from typing import Optional, Protocol

from .config import FlowConfig

logger = logging.getLogger("sessionflow.launcher")


class Launcher(Protocol):
    """Anything that can start a push worker for a configuration."""

    def submit(self, config: FlowConfig) -> Optional[int]:
        """Start the worker; return its pid when known.

        Raises:
            OSError: The worker could not be started.
        """


class DetachedProcessLauncher:
    """Start ``python -m sessionflow push --daemon`` in its own session.

    The child is detached from the caller's process group and terminal
    so the trigger can exit at once.
    """

    def __init__(self, python: Optional[str] = None):
        self.python = python or sys.executable

    def command(self, config: FlowConfig) -> list[str]:
        return [
            self.python, "-m", "sessionflow",
            "push", "--daemon",
            "--home", str(config.home),
        ]

    def submit(self, config: FlowConfig) -> int:
        popen_kwargs: dict = {
            "stdin": subprocess.DEVNULL,
            "stdout": subprocess.DEVNULL,
            "stderr": subprocess.DEVNULL,
            "cwd": str(config.home),
            "close_fds": True,
        }
        # Reason: start_new_session is POSIX-only
        if platform.system() == "Windows":
            popen_kwargs["creationflags"] = (
                subprocess.CREATE_NO_WINDOW | subprocess.DETACHED_PROCESS
            )
        else:
            popen_kwargs["start_new_session"] = True

        proc = subprocess.Popen(self.command(config), **popen_kwargs)
        logger.info("Spawned push worker pid=%d", proc.pid)
        return proc.pid

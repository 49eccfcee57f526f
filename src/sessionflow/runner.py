"""
External command runner.

Every call to git, gh and gitleaks goes through ``run_command``. It
never raises on a non-zero exit: the caller gets a ``CommandResult``
and decides whether the failure ends the run. A missing binary and
a timeout are reported the same way.
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Sequence

logger = logging.getLogger("sessionflow.runner")

MISSING_BINARY = 127


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one external command."""

    args: tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        """True when the command exited 0 within its time budget."""
        return self.returncode == 0 and not self.timed_out

    @property
    def first_line(self) -> str:
        """First non-empty stdout line, stripped."""
        for line in self.stdout.splitlines():
            if line.strip():
                return line.strip()
        return ""

    def describe(self) -> str:
        """One-line summary for logs and audit entries."""
        if self.timed_out:
            return f"{' '.join(self.args)} timed out"
        detail = (self.stderr or self.stdout).strip().splitlines()
        tail = detail[-1] if detail else ""
        summary = f"{' '.join(self.args)} exited {self.returncode}"
        return f"{summary}: {tail}" if tail else summary


def run_command(
    args: Sequence[str],
    cwd: Optional[Path] = None,
    timeout: Optional[float] = None,
    env: Optional[Mapping[str, str]] = None,
) -> CommandResult:
    """Run an external command to completion.

    Args:
        args: Program and arguments. Never passed through a shell.
        cwd: Working directory.
        timeout: Seconds before the command is killed and treated as failed.
        env: Full environment for the child. Defaults to the current one.

    Returns:
        CommandResult describing the exit.
    """
    argv = tuple(str(a) for a in args)
    logger.debug("execute => %s (cwd=%s)", " ".join(argv), cwd)
    try:
        proc = subprocess.run(
            argv,
            cwd=str(cwd) if cwd else None,
            env=dict(env) if env is not None else None,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except FileNotFoundError:
        logger.debug("command not found: %s", argv[0])
        return CommandResult(argv, MISSING_BINARY, stderr=f"{argv[0]}: command not found")
    except subprocess.TimeoutExpired as exc:
        logger.warning("command timed out after %ss: %s", timeout, " ".join(argv))
        stdout = exc.stdout.decode(errors="replace") if isinstance(exc.stdout, bytes) else (exc.stdout or "")
        stderr = exc.stderr.decode(errors="replace") if isinstance(exc.stderr, bytes) else (exc.stderr or "")
        return CommandResult(argv, -1, stdout, stderr, timed_out=True)

    if proc.returncode != 0:
        logger.debug("command failed: %s -> %d", " ".join(argv), proc.returncode)
    return CommandResult(argv, proc.returncode, proc.stdout or "", proc.stderr or "")

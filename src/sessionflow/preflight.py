"""
Preflight checks — detect the external tools the engine drives.

Checks for:
  - git (every flow)
  - gh, the hosting CLI (only when a workspace has to be bootstrapped)
  - gitleaks, the secret scanner (every push)

Each check returns a ``ToolCheck`` with the installed version and a
download URL. ``require_tools`` turns missing tools into the fatal
``DependencyMissing`` before anything on disk is touched.
"""

from __future__ import annotations

import shutil
import subprocess
from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from .errors import DependencyMissing


class ToolStatus(str, Enum):
    """Status of a system tool."""
    INSTALLED = "installed"
    MISSING = "missing"


@dataclass
class ToolCheck:
    """Result of checking a single system tool."""

    name: str
    status: ToolStatus
    version: str = ""
    download_url: str = ""

    @property
    def installed(self) -> bool:
        """Whether the tool is installed."""
        return self.status == ToolStatus.INSTALLED


# binary -> (version args, download url)
TOOLS = {
    "git": (("--version",), "https://git-scm.com/downloads"),
    "gh": (("--version",), "https://cli.github.com/"),
    "gitleaks": (("version",), "https://github.com/gitleaks/gitleaks/releases"),
}


def check_tool(binary: str) -> ToolCheck:
    """Check whether ``binary`` is on PATH and capture its version line.

    Args:
        binary: One of the keys of ``TOOLS``.

    Returns:
        ToolCheck for the binary.
    """
    version_args, url = TOOLS[binary]
    if not shutil.which(binary):
        return ToolCheck(name=binary, status=ToolStatus.MISSING, download_url=url)

    version = ""
    try:
        result = subprocess.run(
            [binary, *version_args],
            capture_output=True, text=True, timeout=5,
        )
        if result.returncode == 0:
            version = result.stdout.strip().split("\n")[0][:60]
    except (OSError, subprocess.TimeoutExpired):
        pass
    return ToolCheck(
        name=binary,
        status=ToolStatus.INSTALLED,
        version=version,
        download_url=url,
    )


def require_tools(binaries: Iterable[str]) -> list[ToolCheck]:
    """Check every binary and fail if any is missing.

    Args:
        binaries: Tool names to require.

    Returns:
        The passing checks.

    Raises:
        DependencyMissing: Listing every missing tool.
    """
    checks = [check_tool(b) for b in binaries]
    missing = [c.name for c in checks if not c.installed]
    if missing:
        raise DependencyMissing(missing)
    return checks

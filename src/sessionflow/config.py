"""
Flow configuration -- the one immutable settings value.

Built once at startup (``FlowConfig.from_env``) and handed to every
component. Tests construct it directly with a temporary home.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from . import GIT_HOST_ENV

WORKSPACE_NAME = ".ai-session-flow"
LOCK_FILE_NAME = ".sync_lock"
LOCK_RECLAIM_NAME = ".sync_lock.reclaim"
AUDIT_LOG_NAME = ".security-audit.log"
WORKER_LOG_NAME = ".worker.log"
GITLEAKS_CONFIG_NAME = "sessionflow-gitleaks.toml"
DEFAULT_GIT_HOST = "github.com"
DEFAULT_DEBOUNCE_SECONDS = 10.0
DEFAULT_COMMAND_TIMEOUT = 600.0

# Session directories of the supported assistant CLIs, relative to home
DEFAULT_SOURCES = (
    Path(".config") / "github-copilot" / "sessions",
    Path(".copilot") / "sessions",
    Path(".claude") / "projects",
    Path(".claude") / "sessions",
)

# Engine-owned files that live in the workspace but are never committed
BOOKKEEPING_NAMES = frozenset({LOCK_FILE_NAME, LOCK_RECLAIM_NAME, AUDIT_LOG_NAME, WORKER_LOG_NAME})

# git exclude patterns for bookkeeping and quarantine snapshots
EXCLUDE_PATTERNS = tuple(
    [f"/{name}" for name in sorted(BOOKKEEPING_NAMES)]
    + [f"/{LOCK_FILE_NAME}.*", "/*.bak.[0-9]*"]
)


class FlowConfig(BaseModel):
    """Complete engine configuration.

    Attributes:
        home: The user's home directory; every source must live below it.
        workspace: Engine-owned directory holding the git work tree.
        sources: Session directories to mirror (may not exist).
        debounce_window: Seconds a lock record stays live after creation.
        git_host: Remote host serving the private repository.
        repo_name: Repository name under the authenticated user.
        branch: Remote branch that receives snapshots.
        command_timeout: Upper bound in seconds for any external command.
    """

    model_config = ConfigDict(frozen=True)

    home: Path
    workspace: Path
    sources: tuple[Path, ...] = Field(default_factory=tuple)
    debounce_window: float = DEFAULT_DEBOUNCE_SECONDS
    git_host: str = DEFAULT_GIT_HOST
    repo_name: str = WORKSPACE_NAME
    branch: str = "main"
    command_timeout: float = DEFAULT_COMMAND_TIMEOUT

    @classmethod
    def from_env(
        cls,
        home: Optional[Path] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "FlowConfig":
        """Build the configuration for this machine.

        Args:
            home: Home directory override. Defaults to ``Path.home()``.
            environ: Environment to read. Defaults to ``os.environ``.

        Returns:
            FlowConfig with default workspace and sources under ``home``.
        """
        env = os.environ if environ is None else environ
        home_path = Path(home or Path.home()).expanduser().absolute()
        return cls(
            home=home_path,
            workspace=home_path / WORKSPACE_NAME,
            sources=tuple(home_path / rel for rel in DEFAULT_SOURCES),
            git_host=env.get(GIT_HOST_ENV) or DEFAULT_GIT_HOST,
        )

    @property
    def lock_path(self) -> Path:
        return self.workspace / LOCK_FILE_NAME

    @property
    def audit_log_path(self) -> Path:
        return self.workspace / AUDIT_LOG_NAME

    @property
    def worker_log_path(self) -> Path:
        return self.workspace / WORKER_LOG_NAME

    @property
    def git_dir(self) -> Path:
        return self.workspace / ".git"

    @property
    def gitleaks_config_path(self) -> Path:
        return self.git_dir / GITLEAKS_CONFIG_NAME

    def clone_url(self, login: str) -> str:
        """HTTPS clone URL of the snapshot repository for ``login``."""
        return f"https://{self.git_host}/{login}/{self.repo_name}.git"

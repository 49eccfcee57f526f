"""
Git client wrapper -- the workspace is a git work tree.

Thin typed layer over the ``git`` binary. Commands return
``CommandResult``; only questions the engine must get a straight
answer to (is anything staged?) raise ``GitOperationFailure``.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Optional

from .errors import GitOperationFailure
from .runner import CommandResult, run_command

logger = logging.getLogger("sessionflow.git")


class GitRepo:
    """A git work tree rooted at ``work_tree``.

    Args:
        work_tree: Repository root (contains ``.git``).
        timeout: Seconds allowed per git command.
    """

    def __init__(self, work_tree: Path, timeout: Optional[float] = None):
        self.work_tree = Path(work_tree)
        self.timeout = timeout

    @property
    def git_dir(self) -> Path:
        return self.work_tree / ".git"

    def exists(self) -> bool:
        """True if the work tree already holds a repository."""
        return self.git_dir.exists()

    def _git(self, *args: str) -> CommandResult:
        return run_command(["git", *args], cwd=self.work_tree, timeout=self.timeout)

    @staticmethod
    def clone(url: str, dest: Path, timeout: Optional[float] = None) -> CommandResult:
        """Clone ``url`` into ``dest`` (which must not exist or be empty)."""
        dest = Path(dest)
        return run_command(
            ["git", "clone", url, str(dest)],
            cwd=dest.parent,
            timeout=timeout,
        )

    def add_all(self) -> CommandResult:
        return self._git("add", "-A")

    def has_staged_changes(self) -> bool:
        """Whether the index differs from the last commit.

        Raises:
            GitOperationFailure: git could not answer.
        """
        result = self._git("diff", "--cached", "--quiet")
        if result.returncode == 0 and not result.timed_out:
            return False
        if result.returncode == 1 and not result.timed_out:
            return True
        raise GitOperationFailure("diff --cached", result.describe())

    def commit(self, message: str) -> CommandResult:
        return self._git("commit", "--quiet", "-m", message)

    def pull(self, remote: str, branch: str, strategy_option: str = "theirs") -> CommandResult:
        """Merge remote history, resolving conflicts per file with ``strategy_option``."""
        return self._git(
            "pull", "--no-rebase", "--no-edit",
            "-X", strategy_option,
            remote, branch,
        )

    def merge_in_progress(self) -> bool:
        return (self.git_dir / "MERGE_HEAD").exists()

    def merge_abort(self) -> CommandResult:
        return self._git("merge", "--abort")

    def push(self, remote: str, branch: str) -> CommandResult:
        return self._git("push", remote, f"HEAD:{branch}")

    def gc(self) -> CommandResult:
        return self._git("gc", "--auto", "--quiet")

    def reset_hard(self) -> CommandResult:
        return self._git("reset", "--hard", "--quiet")

    def clean_untracked(self) -> CommandResult:
        """Remove untracked files and directories, honouring ignore rules."""
        return self._git("clean", "-fd", "--quiet")

    def commit_count(self) -> int:
        """Number of commits reachable from HEAD (0 on an unborn branch)."""
        result = self._git("rev-list", "--count", "HEAD")
        if not result.ok:
            return 0
        try:
            return int(result.first_line)
        except ValueError:
            return 0

    def unpushed_count(self, remote: str, branch: str) -> int:
        """Commits on HEAD not yet on the remote-tracking branch.

        Without a tracking ref (nothing pushed yet) every commit counts.
        """
        ref = f"refs/remotes/{remote}/{branch}"
        known = self._git("rev-parse", "--verify", "--quiet", ref)
        result = self._git("rev-list", "--count", f"{ref}..HEAD" if known.ok else "HEAD")
        if not result.ok:
            return 0
        try:
            return int(result.first_line)
        except ValueError:
            return 0

    def ensure_excludes(self, patterns: Iterable[str]) -> list[str]:
        """Append missing patterns to ``.git/info/exclude``.

        Returns:
            The patterns that were added.
        """
        exclude = self.git_dir / "info" / "exclude"
        exclude.parent.mkdir(parents=True, exist_ok=True)
        text = exclude.read_text(encoding="utf-8") if exclude.exists() else ""
        existing = {line.strip() for line in text.splitlines()}

        added = [p for p in patterns if p not in existing]
        if added:
            with exclude.open("a", encoding="utf-8") as f:
                if text and not text.endswith("\n"):
                    f.write("\n")
                for pattern in added:
                    f.write(pattern + "\n")
            logger.debug("Added git excludes: %s", added)
        return added

"""Exception taxonomy for the sync engine.

Only conditions that end a run (or, for OutOfScopeError, one entry)
are exceptions. Expected outcomes such as a debounced trigger or a
repository that already exists are status enums on the call site.
"""

from __future__ import annotations

from pathlib import Path
from typing import Sequence


class SessionFlowError(Exception):
    """Base class for every engine failure."""


class DependencyMissing(SessionFlowError):
    """Required external CLIs are not on PATH."""

    def __init__(self, tools: Sequence[str]):
        self.tools = list(tools)
        super().__init__(
            "Missing dependencies: "
            + ", ".join(self.tools)
            + ". Install them and make sure they are on PATH."
        )


class AuthenticationFailure(SessionFlowError):
    """The hosting CLI could not resolve an authenticated identity."""


class OutOfScopeError(SessionFlowError):
    """A mapped or resolved path escapes the root it must stay under."""

    def __init__(self, path: Path | str, root: Path | str):
        self.path = Path(path)
        self.root = Path(root)
        super().__init__(f"{self.path} is outside {self.root} and will not be synced")


PathTraversal = OutOfScopeError


class BootstrapFailure(SessionFlowError):
    """The workspace could not be backed by a clone of the remote."""


class GitOperationFailure(SessionFlowError):
    """A git command whose failure ends the run (commit, push)."""

    def __init__(self, operation: str, detail: str = ""):
        self.operation = operation
        self.detail = detail.strip()
        message = f"git {operation} failed"
        if self.detail:
            message += f": {self.detail}"
        super().__init__(message)

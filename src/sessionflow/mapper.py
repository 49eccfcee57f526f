"""
Path mapping -- where a source tree lands inside the workspace.

A source root's path relative to home is flattened into one directory
name by joining its components with ``__``::

    ~/.claude/sessions  ->  <workspace>/.claude__sessions

Mapping is pure string work; nothing here touches the filesystem.
The flattening is not collision-proof: ``a/b__c`` and ``a__b/c`` both
become ``a__b__c``. The mirror refuses the second of two colliding
sources instead of merging them.
"""

from __future__ import annotations

import os
import re
from pathlib import Path

from .errors import OutOfScopeError

JOINER = "__"
_SEPARATORS = re.compile(r"[\\/]+")


def is_within(path: Path | str, root: Path | str, strict: bool = True) -> bool:
    """Check that ``path`` lies under ``root`` after normalisation.

    Both arguments are compared as given; resolve symlinks first when
    the check must hold on disk.

    Args:
        path: Candidate path.
        root: Containing directory.
        strict: When True, ``path == root`` does not count as inside.

    Returns:
        True if ``path`` is ``root`` itself (non-strict) or a descendant.
    """
    p = os.path.normcase(os.path.normpath(os.path.abspath(path)))
    r = os.path.normcase(os.path.normpath(os.path.abspath(root)))
    if p == r:
        return not strict
    return p.startswith(r.rstrip(os.sep) + os.sep)


def flatten(relative: str) -> str:
    """Replace every run of path separators in ``relative`` with the joiner."""
    return _SEPARATORS.sub(JOINER, relative)


def map_source_to_dest(source: Path | str, home: Path | str, workspace: Path | str) -> Path:
    """Compute the workspace destination of a source root.

    Args:
        source: Absolute path of the source root.
        home: The user's home directory.
        workspace: The workspace root.

    Returns:
        Destination directory, strictly inside ``workspace``.

    Raises:
        OutOfScopeError: ``source`` is not below ``home``, is ``home``
            itself, or lies inside the workspace.
    """
    source_path = os.path.normpath(os.path.abspath(source))
    try:
        rel = os.path.relpath(source_path, os.path.abspath(home))
    except ValueError:
        # different drive on Windows
        raise OutOfScopeError(source, home) from None

    parts = Path(rel).parts
    if rel == os.curdir or not parts or parts[0] == os.pardir or os.path.isabs(rel):
        raise OutOfScopeError(source, home)
    if is_within(source_path, workspace, strict=False):
        raise OutOfScopeError(source, workspace)

    dest = Path(workspace) / flatten(rel)
    if not is_within(dest, workspace):
        raise OutOfScopeError(dest, workspace)
    return dest

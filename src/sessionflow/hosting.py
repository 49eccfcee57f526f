"""
Hosting CLI wrapper -- identity lookup and repository creation via ``gh``.
"""

from __future__ import annotations

import logging
import os
import re
from enum import Enum
from typing import Optional

from .config import DEFAULT_GIT_HOST
from .errors import AuthenticationFailure
from .runner import run_command

logger = logging.getLogger("sessionflow.hosting")

# Logins end up in a clone URL; accept only what a host would issue
_SAFE_TOKEN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


class CreateStatus(str, Enum):
    """Result of a repository create request."""

    CREATED = "created"
    MAY_EXIST = "may_exist"


def safe_token(value: str) -> bool:
    """True if ``value`` only holds URL-safe characters."""
    return bool(value) and _SAFE_TOKEN.match(value) is not None


class HostingClient:
    """Drive the ``gh`` CLI against one host.

    Args:
        host: Git host name. Forwarded to gh as ``GH_HOST`` unless it
            is the default.
        timeout: Seconds allowed per gh command.
    """

    def __init__(self, host: str = DEFAULT_GIT_HOST, timeout: Optional[float] = None):
        self.host = host
        self.timeout = timeout

    def _env(self) -> dict[str, str]:
        env = os.environ.copy()
        if self.host != DEFAULT_GIT_HOST:
            env["GH_HOST"] = self.host
        return env

    def current_login(self) -> str:
        """Resolve the authenticated user's login.

        Raises:
            AuthenticationFailure: gh failed, printed nothing, or printed
                something unusable in a URL.
        """
        result = run_command(
            ["gh", "api", "user", "-q", ".login"],
            timeout=self.timeout,
            env=self._env(),
        )
        login = result.first_line
        if not result.ok or not login:
            raise AuthenticationFailure(
                f"Unable to resolve username via gh on {self.host}. Are you authenticated? "
                f"({result.describe()})"
            )
        if not safe_token(login):
            raise AuthenticationFailure(f"gh returned an unusable login: {login!r}")
        return login

    def create_private_repo(self, owner: str, name: str) -> CreateStatus:
        """Ask the host to create ``owner/name`` as a private repository.

        A failure usually means the repository already exists, so it is
        reported as ``MAY_EXIST`` rather than raised.
        """
        ref = f"{owner}/{name}"
        result = run_command(
            ["gh", "repo", "create", ref, "--private"],
            timeout=self.timeout,
            env=self._env(),
        )
        if result.ok:
            logger.info("Created private repository %s", ref)
            return CreateStatus.CREATED
        logger.info("Create request for %s failed (repo may already exist): %s", ref, result.describe())
        return CreateStatus.MAY_EXIST

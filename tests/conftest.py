"""Shared test fixtures for sessionflow."""

from __future__ import annotations

import subprocess
from pathlib import Path

import pytest

from sessionflow.audit import AuditLog
from sessionflow.config import FlowConfig


@pytest.fixture
def fake_home(tmp_path: Path) -> Path:
    """Provide a temporary home directory."""
    home = tmp_path / "home"
    home.mkdir()
    return home


@pytest.fixture
def flow_config(fake_home: Path) -> FlowConfig:
    """Default configuration rooted at the temporary home."""
    return FlowConfig.from_env(home=fake_home, environ={})


@pytest.fixture
def audit(flow_config: FlowConfig) -> AuditLog:
    """A quiet audit log inside the test workspace."""
    return AuditLog(flow_config.audit_log_path, echo=False)


@pytest.fixture
def claude_sessions(fake_home: Path) -> Path:
    """~/.claude/sessions with one transcript in a subdirectory."""
    source = fake_home / ".claude" / "sessions"
    (source / "foo").mkdir(parents=True)
    (source / "foo" / "bar.json").write_text('{"role": "user", "content": "hello"}')
    return source


@pytest.fixture
def git_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Isolate git from the developer's global config and give it an identity."""
    global_config = tmp_path / "gitconfig"
    global_config.write_text("")
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(global_config))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Test Author")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "test@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Test Author")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "test@example.com")


def git(*args: str, cwd: Path) -> str:
    """Run git in a test and return stdout, failing loudly."""
    result = subprocess.run(
        ["git", *args], cwd=str(cwd), capture_output=True, text=True, check=True
    )
    return result.stdout


@pytest.fixture
def remote_repo(tmp_path: Path, git_env: None) -> Path:
    """An empty bare repository standing in for the hosted remote."""
    bare = tmp_path / "origin.git"
    bare.mkdir()
    git("init", "--bare", "--quiet", cwd=bare)
    git("symbolic-ref", "HEAD", "refs/heads/main", cwd=bare)
    return bare


@pytest.fixture
def cloned_workspace(flow_config: FlowConfig, remote_repo: Path) -> Path:
    """The workspace as a clone of the (empty) remote."""
    git("clone", "--quiet", str(remote_repo), str(flow_config.workspace), cwd=remote_repo.parent)
    git("symbolic-ref", "HEAD", "refs/heads/main", cwd=flow_config.workspace)
    return flow_config.workspace


@pytest.fixture
def run_git(git_env: None):
    """Expose the ``git`` helper to tests."""
    return git

"""Tests for the sync engine flows: trigger, worker, restore and clean."""

from __future__ import annotations

import os
import shutil
import sys
import time
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from sessionflow.audit import AuditLevel, AuditLog
from sessionflow.config import FlowConfig
from sessionflow.engine import PushOutcome, RestoreOutcome, SyncEngine, TriggerOutcome
from sessionflow.git import GitRepo
from sessionflow.lock import LockGuard
from sessionflow.mirror import Mirror
from sessionflow.runner import CommandResult


requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")


class RecordingLauncher:
    """Launcher that records submissions instead of spawning."""

    def __init__(self, pid: int = 4242, error: Exception | None = None):
        self.pid = pid
        self.error = error
        self.submitted: list[FlowConfig] = []

    def submit(self, config: FlowConfig) -> int:
        if self.error is not None:
            raise self.error
        self.submitted.append(config)
        return self.pid


def no_requirements(tools) -> None:
    return None


def clean_scan() -> CommandResult:
    return CommandResult(("gitleaks", "detect"), 0)


def leaky_scan() -> CommandResult:
    return CommandResult(("gitleaks", "detect"), 1, "", "leaks found: 1")


def make_engine(config: FlowConfig, audit: AuditLog, **kwargs) -> SyncEngine:
    kwargs.setdefault("launcher", RecordingLauncher())
    kwargs.setdefault("hosting", MagicMock())
    kwargs.setdefault("require", no_requirements)
    return SyncEngine(config, audit=audit, **kwargs)


class TestTriggerPush:
    """Tests for SyncEngine.trigger_push()."""

    def test_second_trigger_is_debounced(self, flow_config: FlowConfig, audit: AuditLog):
        launcher = RecordingLauncher()
        engine = make_engine(flow_config, audit, launcher=launcher)

        assert engine.trigger_push() is TriggerOutcome.SCHEDULED
        assert engine.trigger_push() is TriggerOutcome.DEBOUNCED
        assert len(launcher.submitted) == 1

    def test_trigger_owns_lock_until_worker_claims_it(self, flow_config: FlowConfig, audit: AuditLog):
        engine = make_engine(flow_config, audit, launcher=RecordingLauncher(pid=31337))
        engine.trigger_push()
        assert engine.lock.read().pid == os.getpid()

    def test_fast_worker_leaves_no_lock(self, flow_config: FlowConfig, audit: AuditLog):
        """A worker that finishes before submit() returns must not be re-locked."""
        engine = make_engine(flow_config, audit)

        class FastWorkerLauncher:
            def submit(self, config: FlowConfig) -> int:
                engine.lock.release()
                return 999999

        engine.launcher = FastWorkerLauncher()

        assert engine.trigger_push() is TriggerOutcome.SCHEDULED
        assert not flow_config.lock_path.exists()
        assert make_engine(flow_config, audit).trigger_push() is TriggerOutcome.SCHEDULED

    def test_worker_claims_lock_before_running(self, flow_config: FlowConfig, audit: AuditLog):
        engine = make_engine(flow_config, audit)
        engine.lock.try_acquire(pid=31337)
        owners = []

        def pipeline():
            owners.append(engine.lock.read().pid)
            return PushOutcome.NO_CHANGES

        with patch.object(engine, "_push_pipeline", side_effect=pipeline):
            assert engine.run_push_worker() is PushOutcome.NO_CHANGES

        assert owners == [os.getpid()]
        assert not flow_config.lock_path.exists()

    def test_stale_lock_is_reclaimed(self, flow_config: FlowConfig, audit: AuditLog):
        launcher = RecordingLauncher()
        lock = LockGuard(
            flow_config.lock_path,
            flow_config.debounce_window,
            clock=lambda: time.time() + 60,
            is_alive=lambda pid: False,
        )
        engine = make_engine(flow_config, audit, launcher=launcher, lock=lock)

        assert engine.trigger_push() is TriggerOutcome.SCHEDULED
        assert engine.trigger_push() is TriggerOutcome.SCHEDULED
        assert len(launcher.submitted) == 2

    def test_submit_failure_releases_lock(self, flow_config: FlowConfig, audit: AuditLog):
        engine = make_engine(flow_config, audit, launcher=RecordingLauncher(error=OSError("no fork")))

        assert engine.trigger_push() is TriggerOutcome.FAILED
        assert not flow_config.lock_path.exists()
        assert audit.read()[-1].level == AuditLevel.ERROR


@requires_git
class TestPushWorker:
    """End-to-end worker runs against a local bare remote."""

    @pytest.fixture
    def engine(self, flow_config: FlowConfig, audit: AuditLog, cloned_workspace: Path) -> SyncEngine:
        engine = make_engine(flow_config, audit)
        assert engine.lock.try_acquire()
        return engine

    def test_synced(self, engine: SyncEngine, claude_sessions: Path, remote_repo: Path, run_git):
        with patch("sessionflow.gate.run_command", return_value=clean_scan()):
            outcome = engine.run_push_worker()

        assert outcome is PushOutcome.SYNCED
        files = run_git("ls-tree", "-r", "--name-only", "main", cwd=remote_repo).split()
        assert ".claude__sessions/foo/bar.json" in files
        assert ".sync_lock" not in files
        assert ".security-audit.log" not in files
        assert not engine.config.lock_path.exists()

    def test_unchanged_second_run(self, engine: SyncEngine, claude_sessions: Path):
        with patch("sessionflow.gate.run_command", return_value=clean_scan()):
            engine.run_push_worker()
            assert engine.lock.try_acquire()
            outcome = engine.run_push_worker()

        assert outcome is PushOutcome.NO_CHANGES
        assert GitRepo(engine.config.workspace).commit_count() == 1

    def test_blocked(self, engine: SyncEngine, claude_sessions: Path, audit: AuditLog):
        with patch("sessionflow.gate.run_command", return_value=leaky_scan()):
            outcome = engine.run_push_worker()

        workspace = engine.config.workspace
        assert outcome is PushOutcome.BLOCKED
        assert GitRepo(workspace).commit_count() == 0
        assert not (workspace / ".claude__sessions").exists()
        assert list(workspace.glob(".claude__sessions.bak.*"))
        assert any(e.level == AuditLevel.SECURITY_BLOCK for e in audit.read())
        assert not engine.config.lock_path.exists()

    def test_crash_still_releases_lock(self, engine: SyncEngine, audit: AuditLog):
        with patch.object(Mirror, "run", side_effect=RuntimeError("boom")):
            outcome = engine.run_push_worker()

        assert outcome is PushOutcome.FAILED
        assert not engine.config.lock_path.exists()
        assert "boom" in audit.read()[-1].message


class TestRestore:
    """Tests for SyncEngine.restore()."""

    def test_busy_while_sync_runs(self, flow_config: FlowConfig, audit: AuditLog):
        LockGuard(flow_config.lock_path, flow_config.debounce_window).try_acquire()
        engine = make_engine(flow_config, audit)

        assert engine.restore() is RestoreOutcome.BUSY
        assert flow_config.lock_path.exists()
        engine.bootstrapper.hosting.current_login.assert_not_called()

    @requires_git
    def test_pulls_into_existing_workspace(
        self, flow_config: FlowConfig, audit: AuditLog, cloned_workspace: Path, remote_repo: Path, tmp_path: Path, run_git
    ):
        other = tmp_path / "other"
        run_git("clone", "--quiet", str(remote_repo), str(other), cwd=tmp_path)
        run_git("symbolic-ref", "HEAD", "refs/heads/main", cwd=other)
        (other / "from-elsewhere.json").write_text("{}")
        run_git("add", "-A", cwd=other)
        run_git("commit", "--quiet", "-m", "other machine", cwd=other)
        run_git("push", "--quiet", "origin", "HEAD:main", cwd=other)

        outcome = make_engine(flow_config, audit).restore()

        assert outcome is RestoreOutcome.RESTORED
        assert (cloned_workspace / "from-elsewhere.json").exists()
        assert not flow_config.lock_path.exists()
        assert any(e.level == AuditLevel.USER_ACTION for e in audit.read())

    @requires_git
    def test_first_restore_clones_without_pull_or_mirror(
        self, flow_config: FlowConfig, audit: AuditLog, claude_sessions: Path, remote_repo: Path, tmp_path: Path, run_git
    ):
        seed = tmp_path / "seed"
        run_git("clone", "--quiet", str(remote_repo), str(seed), cwd=tmp_path)
        run_git("symbolic-ref", "HEAD", "refs/heads/main", cwd=seed)
        (seed / ".claude__sessions").mkdir()
        (seed / ".claude__sessions" / "old.json").write_text("{}")
        run_git("add", "-A", cwd=seed)
        run_git("commit", "--quiet", "-m", "snapshot", cwd=seed)
        run_git("push", "--quiet", "origin", "HEAD:main", cwd=seed)

        hosting = MagicMock()
        hosting.current_login.return_value = "octocat"
        real_clone = GitRepo.clone

        def clone_local(url, dest, timeout=None):
            return real_clone(str(remote_repo), dest, timeout=timeout)

        engine = make_engine(flow_config, audit, hosting=hosting)
        with patch.object(GitRepo, "clone", side_effect=clone_local), \
             patch.object(GitRepo, "pull") as mock_pull:
            outcome = engine.restore()

        workspace = flow_config.workspace
        assert outcome is RestoreOutcome.RESTORED
        assert (workspace / ".git").is_dir()
        assert (workspace / ".claude__sessions" / "old.json").exists()
        assert not (workspace / ".claude__sessions" / "foo").exists()
        mock_pull.assert_not_called()
        assert not flow_config.lock_path.exists()
        assert not list(flow_config.home.glob(".ai-session-flow.bak.*"))


class TestClean:
    """Tests for SyncEngine.clean()."""

    def test_removes_files_and_directories(self, flow_config: FlowConfig, audit: AuditLog, claude_sessions: Path):
        (claude_sessions / "top.json").write_text("{}")
        report = make_engine(flow_config, audit).clean()

        assert claude_sessions.is_dir()
        assert list(claude_sessions.iterdir()) == []
        assert len(report.removed) == 2
        assert audit.read()[0].level == AuditLevel.USER_ACTION

    def test_missing_sources_are_ignored(self, flow_config: FlowConfig, audit: AuditLog):
        report = make_engine(flow_config, audit).clean()
        assert report.removed == []
        assert report.failed == []

    @pytest.mark.skipif(sys.platform == "win32", reason="symlinks need privileges on Windows")
    def test_outside_symlink_is_refused(
        self, flow_config: FlowConfig, audit: AuditLog, claude_sessions: Path, tmp_path: Path
    ):
        outside = tmp_path / "precious"
        outside.mkdir()
        (outside / "keep.txt").write_text("keep")
        os.symlink(outside, claude_sessions / "escape")

        report = make_engine(flow_config, audit).clean()

        assert claude_sessions / "escape" in report.refused
        assert (outside / "keep.txt").read_text() == "keep"
        assert any("resolves outside source" in e.message for e in audit.read())

    @pytest.mark.skipif(sys.platform == "win32", reason="symlinks need privileges on Windows")
    def test_inside_symlink_is_unlinked(self, flow_config: FlowConfig, audit: AuditLog, claude_sessions: Path):
        os.symlink(claude_sessions / "foo" / "bar.json", claude_sessions / "alias.json")

        report = make_engine(flow_config, audit).clean()

        assert claude_sessions / "alias.json" in report.removed
        assert not os.path.lexists(claude_sessions / "alias.json")

"""Tests for the external command runner and preflight checks."""

from __future__ import annotations

import sys
from unittest.mock import patch

import pytest

from sessionflow.errors import DependencyMissing
from sessionflow.preflight import ToolStatus, check_tool, require_tools
from sessionflow.runner import MISSING_BINARY, CommandResult, run_command


class TestRunCommand:
    """Tests for run_command()."""

    def test_success(self):
        result = run_command([sys.executable, "-c", "print('hi')"])
        assert result.ok
        assert result.first_line == "hi"

    def test_non_zero_does_not_raise(self):
        result = run_command([sys.executable, "-c", "import sys; sys.exit(3)"])
        assert result.returncode == 3
        assert not result.ok

    def test_missing_binary(self):
        result = run_command(["definitely-not-a-real-binary-sessionflow"])
        assert result.returncode == MISSING_BINARY
        assert not result.ok

    def test_timeout(self):
        result = run_command([sys.executable, "-c", "import time; time.sleep(5)"], timeout=0.2)
        assert result.timed_out
        assert not result.ok
        assert "timed out" in result.describe()


class TestCommandResult:
    """Tests for CommandResult helpers."""

    def test_describe_uses_last_stderr_line(self):
        res = CommandResult(("git", "push"), 1, "", "hint: x\nfatal: rejected\n")
        assert res.describe() == "git push exited 1: fatal: rejected"

    def test_first_line_skips_blank(self):
        assert CommandResult(("x",), 0, "\n\n value \n").first_line == "value"


class TestPreflight:
    """Tests for check_tool() and require_tools()."""

    @patch("sessionflow.preflight.shutil.which", return_value=None)
    def test_missing_tool(self, mock_which):
        check = check_tool("gitleaks")
        assert check.status == ToolStatus.MISSING
        assert "gitleaks" in check.download_url

    @patch("sessionflow.preflight.shutil.which", return_value=None)
    def test_require_lists_every_missing_tool(self, mock_which):
        with pytest.raises(DependencyMissing) as exc_info:
            require_tools(["git", "gh"])
        assert exc_info.value.tools == ["git", "gh"]
        assert "git, gh" in str(exc_info.value)

    def test_installed_tool(self):
        with patch("sessionflow.preflight.shutil.which", return_value="/usr/bin/git"), \
             patch("sessionflow.preflight.subprocess.run") as mock_run:
            mock_run.return_value.returncode = 0
            mock_run.return_value.stdout = "git version 2.45.0\n"
            check = check_tool("git")
        assert check.installed
        assert check.version == "git version 2.45.0"

"""Tests for cvm.cli."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import MagicMock, patch

from click.testing import CliRunner, Result

from cvm.cli import cli
from cvm.errors import TransientPublishError


def invoke(root: Path, *args: str) -> Result:
    return CliRunner().invoke(cli, ["--root", str(root), *args])


class TestOptions:
    def test_verbose_and_quiet_are_exclusive(self, uv_workspace: Path) -> None:
        result = invoke(uv_workspace, "-v", "-q", "status")
        assert result.exit_code == 2
        assert "mutually exclusive" in result.output

    def test_command_required(self) -> None:
        result = CliRunner().invoke(cli, [])
        assert "Usage:" in result.output

    def test_unknown_format(self, uv_workspace: Path) -> None:
        result = invoke(uv_workspace, "--format", "npm", "status")
        assert result.exit_code == 2


class TestCommands:
    def test_add_then_status(self, uv_workspace: Path) -> None:
        result = invoke(uv_workspace, "add", "--minor", "core", "--patch", "isolated", "-m", "Add streaming")
        assert result.exit_code == 0, result.output
        assert "Staged .changes/" in result.output

        result = invoke(uv_workspace, "status", "--json")
        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["core"]["newVersion"] == "1.1.0"
        assert data["isolated"]["newVersion"] == "0.1.1"

    def test_version_dry_run(self, uv_workspace: Path) -> None:
        invoke(uv_workspace, "add", "--major", "core", "-m", "Break")
        result = invoke(uv_workspace, "version", "--dry-run")
        assert result.exit_code == 0, result.output
        assert "1.0.0 → 2.0.0  [major]" in result.output
        assert "project.dependencies[0] core>=1.0 → core>=2.0.0" in result.output
        assert 'version = "1.0.0"' in (uv_workspace / "packages" / "core" / "pyproject.toml").read_text()

    def test_version_applies(self, uv_workspace: Path) -> None:
        invoke(uv_workspace, "add", "--patch", "core", "-m", "Fix")
        result = invoke(uv_workspace, "version")
        assert result.exit_code == 0, result.output
        assert 'version = "1.0.1"' in (uv_workspace / "packages" / "core" / "pyproject.toml").read_text()

    def test_pre_commands(self, cargo_workspace: Path) -> None:
        invoke(cargo_workspace, "pre", "start", "beta")
        result = invoke(cargo_workspace, "pre", "status")
        assert "Prerelease channel 'beta' active" in result.output
        result = invoke(cargo_workspace, "pre", "exit")
        assert "Not in prerelease mode" in result.output

    def test_graph(self, cargo_workspace: Path) -> None:
        result = invoke(cargo_workspace, "graph")
        assert result.exit_code == 0, result.output
        assert "level 0:" in result.output
        assert "app 0.4.2 → [core]" in result.output


class TestErrors:
    def test_unknown_package_exits(self, uv_workspace: Path) -> None:
        result = invoke(uv_workspace, "add", "--patch", "ghost", "-m", "Fix")
        assert result.exit_code == 1
        assert "ERROR: Change '<new>' references unknown package 'ghost'" in result.output
        assert "hint:" in result.output

    def test_missing_workspace(self, tmp_path: Path) -> None:
        result = invoke(tmp_path, "status")
        assert result.exit_code == 1
        assert "No pyproject.toml or Cargo.toml" in result.output

    def test_switching_channels(self, cargo_workspace: Path) -> None:
        invoke(cargo_workspace, "pre", "start", "canary")
        result = invoke(cargo_workspace, "pre", "start", "beta")
        assert result.exit_code == 1
        assert "cvm pre exit" in result.output


class TestPublish:
    @patch("cvm.pipeline.GitHubCliHost")
    @patch("cvm.pipeline.default_client")
    def test_publish(self, mock_client: MagicMock, mock_host: MagicMock, uv_workspace: Path) -> None:
        mock_client.return_value.exists.return_value = False

        result = invoke(uv_workspace, "publish", "--no-releases")

        assert result.exit_code == 0, result.output
        assert "core 1.0.0: published tag core/v1.0.0" in result.output
        assert "sandbox 0.0.1: private" in result.output
        mock_host.return_value.create_release.assert_not_called()

    @patch("cvm.pipeline.GitHubCliHost")
    @patch("cvm.pipeline.default_client")
    def test_failed_publish_prints_partial_report(
        self, mock_client: MagicMock, mock_host: MagicMock, uv_workspace: Path
    ) -> None:
        registry = mock_client.return_value
        registry.exists.return_value = False
        registry.publish.side_effect = TransientPublishError("HTTP 503")

        result = invoke(uv_workspace, "publish")

        assert result.exit_code == 1
        assert "core 1.0.0: failed" in result.output
        assert "not attempted: cli, isolated, sandbox" in result.output
        assert "ERROR: Publishing core 1.0.0 failed: HTTP 503" in result.output

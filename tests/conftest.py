"""Shared test fixtures."""

from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from cvm.logging import configure_logging

UV_CORE = """\
[project]
name = "core"
version = "1.0.0"  # bumped by cvm
description = "Core library"
dependencies = ["requests>=2.0"]
"""

UV_CLI = """\
[project]
name = "cli"
version = "2.3.1"
dependencies = [
    'core>=1.0',  # internal
    "click>=8.0",
]

[dependency-groups]
test = ["pytest>=8.0", "core"]
"""

UV_ISOLATED = """\
[project]
name = "isolated"
version = "0.1.0"
"""

UV_SANDBOX = """\
[project]
name = "sandbox"
version = "0.0.1"
classifiers = ["Private :: Do Not Upload"]
dependencies = ["cli~=2.3"]
"""

CARGO_ROOT = """\
[workspace]
members = ["crates/*"]
resolver = "2"

[workspace.metadata.cvm]
backoff_base = 0.0
"""

CARGO_CORE = """\
[package]
name = "core"
version = "1.0.0"
edition = "2021"

[dependencies]
serde = "1"
"""

CARGO_APP = """\
[package]
name = "app"
version = "0.4.2"
edition = "2021"

[dependencies]
core = { path = "../core", version = "^1.0" }
anyhow = "1"

[dev-dependencies]
testkit = { path = "../testkit", version = "0.1" }
"""

CARGO_TESTKIT = """\
[package]
name = "testkit"
version = "0.1.0"
edition = "2021"
publish = false

[dependencies]
core = { path = "../core", version = "1.0.0" }
"""


def write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(text), encoding="utf-8")
    return path


@pytest.fixture(autouse=True)
def stderr_logging() -> None:
    """Keep structlog output on stderr so stdout can be asserted on."""
    configure_logging()


@pytest.fixture
def uv_workspace(tmp_path: Path) -> Path:
    """A uv workspace: cli → core, sandbox (private) → cli, isolated."""
    write(
        tmp_path / "pyproject.toml",
        """\
        [tool.uv.workspace]
        members = ["packages/*"]

        [tool.cvm]
        backoff_base = 0.0
        """,
    )
    write(tmp_path / "packages" / "core" / "pyproject.toml", UV_CORE)
    write(tmp_path / "packages" / "cli" / "pyproject.toml", UV_CLI)
    write(tmp_path / "packages" / "isolated" / "pyproject.toml", UV_ISOLATED)
    write(tmp_path / "packages" / "sandbox" / "pyproject.toml", UV_SANDBOX)
    return tmp_path.resolve()


@pytest.fixture
def cargo_workspace(tmp_path: Path) -> Path:
    """A Cargo workspace: app → core, app -dev→ testkit (private) → core."""
    write(tmp_path / "Cargo.toml", CARGO_ROOT)
    write(tmp_path / "crates" / "core" / "Cargo.toml", CARGO_CORE)
    write(tmp_path / "crates" / "app" / "Cargo.toml", CARGO_APP)
    write(tmp_path / "crates" / "testkit" / "Cargo.toml", CARGO_TESTKIT)
    return tmp_path.resolve()


@pytest.fixture
def staging(uv_workspace: Path) -> Path:
    """The uv workspace's staging directory."""
    return uv_workspace / ".changes"

"""Subprocess wrappers and terminal output helpers.

The default source-hosting and registry adapters drive ``git``, ``gh``,
``uv`` and ``cargo`` through these wrappers so tests can patch a single
seam.
"""

from __future__ import annotations

import subprocess
import sys
from pathlib import Path


def git(*args: str, cwd: Path | None = None, check: bool = True) -> str:
    """Run a git command and return its stripped stdout.

    Args:
        *args: Arguments to pass to git (e.g., "tag", "core/v1.0.0").
        cwd: Working directory; defaults to the current directory.
        check: If True (default), raise CalledProcessError on non-zero exit.
    """
    result = subprocess.run(
        ["git", *args], cwd=cwd, capture_output=True, text=True, check=check
    )
    return result.stdout.strip()


def gh(*args: str, cwd: Path | None = None, check: bool = True) -> str:
    """Run a GitHub CLI command and return its stripped stdout."""
    result = subprocess.run(
        ["gh", *args], cwd=cwd, capture_output=True, text=True, check=check
    )
    return result.stdout.strip()


def run(
    *args: str, cwd: Path | None = None, timeout: float | None = None
) -> subprocess.CompletedProcess[str]:
    """Run a tool and capture its output without raising on failure.

    Callers inspect ``returncode`` and ``stderr`` to decide whether a
    failure is worth retrying.

    Raises:
        subprocess.TimeoutExpired: If the command exceeds ``timeout`` seconds.
    """
    return subprocess.run(
        args, cwd=cwd, capture_output=True, text=True, check=False, timeout=timeout
    )


def step(msg: str) -> None:
    """Print a visually distinct step header."""
    print(f"\n{'─' * 60}\n{msg}\n{'─' * 60}")


def fatal(msg: str, hint: str = "") -> None:
    """Print an error message (and optional hint) and exit with code 1."""
    print(f"ERROR: {msg}", file=sys.stderr)
    if hint:
        print(f"  hint: {hint}", file=sys.stderr)
    sys.exit(1)

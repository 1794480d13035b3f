"""Interfaces of the collaborators cvm drives but does not implement.

The core only talks to the filesystem, the package registry, and the
source-hosting service through these protocols, so tests (and other
frontends) can inject fakes. Default adapters for the CLI live in
:mod:`cvm.adapters`.
"""

from __future__ import annotations

import glob
import os
import tempfile
from pathlib import Path
from typing import Protocol


class SourceTree(Protocol):
    """Read/write access to the workspace's files."""

    def list_manifests(self, root: Path, patterns: list[str], filename: str) -> list[Path]:
        """Return manifests named ``filename`` in directories matching ``patterns``."""
        ...

    def exists(self, path: Path) -> bool: ...

    def read_text(self, path: Path) -> str: ...

    def write_text(self, path: Path, text: str) -> None: ...


class PublishClient(Protocol):
    """A package registry.

    ``publish`` raises :class:`~cvm.errors.TransientPublishError` for
    failures worth retrying and :class:`~cvm.errors.RejectedPublishError`
    when the registry refuses the package.
    """

    def exists(self, name: str, version: str, *, timeout: float) -> bool: ...

    def publish(self, name: str, version: str, manifest_path: Path, *, timeout: float) -> None: ...


class SourceHostClient(Protocol):
    """The source-hosting service (tags, releases, pull requests)."""

    def create_tag(self, name: str) -> None: ...

    def create_release(self, tag: str, notes: str) -> str:
        """Create a release for ``tag`` and return its identifier."""
        ...

    def create_pull_request(self, title: str, labels: list[str], branch: str) -> str:
        """Open a pull request from ``branch`` and return its URL."""
        ...


class LocalSourceTree:
    """SourceTree backed by the local filesystem."""

    def list_manifests(self, root: Path, patterns: list[str], filename: str) -> list[Path]:
        found: list[Path] = []
        for pattern in patterns:
            for match in sorted(glob.glob(str(root / pattern))):
                manifest = Path(match) / filename
                if manifest.is_file() and manifest not in found:
                    found.append(manifest)
        return found

    def exists(self, path: Path) -> bool:
        return path.exists()

    def read_text(self, path: Path) -> str:
        # newline="" keeps CRLF manifests byte-identical on rewrite.
        with open(path, encoding="utf-8", newline="") as fh:
            return fh.read()

    def write_text(self, path: Path, text: str) -> None:
        write_atomic(path, text)


def write_atomic(path: Path, text: str) -> None:
    """Write ``text`` to ``path`` via a temp file and rename.

    A crash mid-write leaves the previous content intact.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as fh:
            fh.write(text)
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise

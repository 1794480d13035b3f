"""Staged change descriptors.

Each pending change is one TOML file in the staging directory
(``.changes/`` by default)::

    summary = "Add streaming support to the core library."
    major = []
    minor = ["core"]
    patch = ["cli"]
    pre = false

The file name without ``.toml`` is the descriptor id; descriptors are
always processed in id order. Files are created by ``cvm add`` (or by
hand), read without modification when planning, and deleted only after
the plan has been written to the manifests.
"""

from __future__ import annotations

import hashlib
import time
from collections.abc import Callable, Iterable
from pathlib import Path

import tomlkit
from pydantic import ValidationError
from tomlkit.exceptions import ParseError

from .clients import write_atomic
from .errors import InvalidChangeError
from .logging import get_logger
from .models import ChangeDescriptor

logger = get_logger(__name__)

_FIELDS = {"summary", "major", "minor", "patch", "pre"}


def parse_change(
    path: Path, text: str, normalize: Callable[[str], str] | None = None
) -> ChangeDescriptor:
    """Parse one change file.

    Args:
        path: The file the text was read from; its stem is the id.
        text: TOML content.
        normalize: Applied to every package name (e.g. PEP 503
            normalisation for Python workspaces).

    Raises:
        InvalidChangeError: On TOML syntax errors, unknown keys, wrong
            value types, or a package listed under two severities.
    """
    change_id = path.stem
    try:
        data = tomlkit.parse(text).unwrap()
    except ParseError as exc:
        raise InvalidChangeError(f"{path.name}: {exc}", descriptor=change_id) from exc

    unknown = set(data) - _FIELDS
    if unknown:
        raise InvalidChangeError(
            f"{path.name}: unknown keys {sorted(unknown)}",
            descriptor=change_id,
            hint="Allowed keys: summary, major, minor, patch, pre.",
        )
    if normalize is not None:
        for key in ("major", "minor", "patch"):
            if isinstance(data.get(key), list):
                data[key] = [normalize(n) if isinstance(n, str) else n for n in data[key]]

    try:
        return ChangeDescriptor(id=change_id, path=path, **data)
    except ValidationError as exc:
        problems = "; ".join(err["msg"] for err in exc.errors())
        raise InvalidChangeError(f"{path.name}: {problems}", descriptor=change_id) from exc


def read_changes(
    staging_dir: Path, normalize: Callable[[str], str] | None = None
) -> list[ChangeDescriptor]:
    """Read every staged change, sorted by id.

    A missing staging directory means there is nothing pending.
    """
    if not staging_dir.is_dir():
        logger.debug("staging_dir_not_found", path=str(staging_dir))
        return []

    changes = [
        parse_change(path, path.read_text(encoding="utf-8"), normalize)
        for path in sorted(staging_dir.glob("*.toml"))
        if not path.name.startswith(".")
    ]
    changes.sort(key=lambda c: c.id)
    logger.debug("changes_read", count=len(changes))
    return changes


def render_change(change: ChangeDescriptor) -> str:
    doc = tomlkit.document()
    doc["summary"] = change.summary
    for key in ("major", "minor", "patch"):
        doc[key] = sorted(getattr(change, key))
    doc["pre"] = change.pre
    return tomlkit.dumps(doc)


def add_change(
    staging_dir: Path,
    *,
    summary: str,
    major: Iterable[str] = (),
    minor: Iterable[str] = (),
    patch: Iterable[str] = (),
    pre: bool = False,
) -> ChangeDescriptor:
    """Stage a new change file and return its descriptor.

    The id is a timestamp plus a short content hash, so ids sort in
    creation order.

    Raises:
        InvalidChangeError: If no package is named or a package is listed
            under two severities.
    """
    try:
        draft = ChangeDescriptor(
            id="draft",
            summary=summary,
            major=frozenset(major),
            minor=frozenset(minor),
            patch=frozenset(patch),
            pre=pre,
        )
    except ValidationError as exc:
        problems = "; ".join(err["msg"] for err in exc.errors())
        raise InvalidChangeError(problems) from exc
    if not draft.packages:
        raise InvalidChangeError(
            "A change must name at least one package",
            hint="Pass --major, --minor or --patch.",
        )

    text = render_change(draft)
    digest = hashlib.sha256(text.encode()).hexdigest()[:8]
    change_id = f"{time.strftime('%Y%m%d%H%M%S')}-{digest}"
    path = staging_dir / f"{change_id}.toml"
    write_atomic(path, text)
    logger.info("change_added", id=change_id, packages=sorted(draft.packages))
    return draft.model_copy(update={"id": change_id, "path": path})


def consume_changes(changes: Iterable[ChangeDescriptor]) -> list[Path]:
    """Delete the files backing applied changes.

    Returns:
        The deleted paths.
    """
    deleted: list[Path] = []
    for change in changes:
        if change.path is None:
            continue
        change.path.unlink(missing_ok=True)
        deleted.append(change.path)
        logger.info("change_consumed", id=change.id)
    return deleted

"""Per-package CHANGELOG.md maintenance.

Applying a plan prepends one section per changed package::

    # Changelog

    ## 1.1.0

    ### Minor Changes

    - Add streaming support.

    ### Patch Changes

    - Updated dependencies: core@2.0.0

The publish run reads the section for the published version back as the
release notes.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from pathlib import Path

from .clients import write_atomic
from .logging import get_logger
from .models import Bump, ChangeDescriptor, PlannedVersion

logger = get_logger(__name__)

CHANGELOG_NAME = "CHANGELOG.md"
_HEADING = "# Changelog"
_SECTIONS = ((Bump.MAJOR, "Major Changes"), (Bump.MINOR, "Minor Changes"), (Bump.PATCH, "Patch Changes"))


def render_section(
    version: str,
    planned: PlannedVersion,
    changes: Sequence[ChangeDescriptor],
    dependency_versions: Mapping[str, str],
) -> str:
    """Render the markdown section for one package's new version.

    Args:
        version: The version as written in the manifest.
        planned: The package's planned version.
        changes: All descriptors of the plan; only those naming the
            package contribute entries.
        dependency_versions: New manifest versions of the changed
            internal dependencies that caused a propagated bump.
    """
    entries: dict[Bump, list[str]] = {bump: [] for bump, _ in _SECTIONS}
    for change in changes:
        bump = change.bumps().get(planned.name)
        if bump is not None and change.summary:
            entries[bump].append(change.summary.strip())
    if dependency_versions:
        deps = ", ".join(f"{name}@{v}" for name, v in sorted(dependency_versions.items()))
        entries[Bump.PATCH].append(f"Updated dependencies: {deps}")

    lines = [f"## {version}", ""]
    for bump, title in _SECTIONS:
        if not entries[bump]:
            continue
        lines += [f"### {title}", ""]
        for entry in entries[bump]:
            first, *rest = entry.splitlines()
            lines.append(f"- {first}")
            lines += [f"  {line}" if line else "" for line in rest]
        lines.append("")
    return "\n".join(lines).rstrip() + "\n"


def prepend_section(text: str | None, section: str) -> str:
    """Insert ``section`` as the newest entry of a changelog document.

    Returns ``text`` unchanged if a section with the same heading exists.
    """
    heading = section.split("\n", 1)[0]
    if text is None:
        return f"{_HEADING}\n\n{section}"
    if any(line.rstrip() == heading for line in text.splitlines()):
        return text
    if text.lstrip().startswith(_HEADING):
        before, after = text.split(_HEADING, 1)
        after = after.lstrip("\n")
        return f"{before}{_HEADING}\n\n{section}\n{after}"
    return f"{_HEADING}\n\n{section}\n{text}"


def write_changelog(package_dir: Path, section: str) -> Path:
    path = package_dir / CHANGELOG_NAME
    existing = path.read_text(encoding="utf-8") if path.exists() else None
    updated = prepend_section(existing, section)
    if updated != existing:
        write_atomic(path, updated)
        logger.info("changelog_written", path=str(path))
    return path


def extract_section(text: str, version: str) -> str | None:
    """Return the body of the ``## <version>`` section, or None."""
    body: list[str] = []
    found = False
    for line in text.splitlines():
        if line.startswith("## "):
            if found:
                break
            found = line[3:].strip() == version
            continue
        if found:
            body.append(line)
    return "\n".join(body).strip() if found else None


def release_notes(package_dir: Path, version: str) -> str:
    """Release notes for ``version``: its changelog section, if any."""
    path = package_dir / CHANGELOG_NAME
    if path.exists():
        notes = extract_section(path.read_text(encoding="utf-8"), version)
        if notes:
            return notes
    return f"Release {version}"

"""Apply a version plan to the workspace manifests.

Only two kinds of fields are touched: each changed package's version and
the internal dependency requirements that point at a changed package.
Documents are edited through tomlkit so everything else (comments, key
order, quoting, whitespace, line endings) is written back unchanged.
Requirements a Cargo member inherits with ``workspace = true`` are
rewritten where they are declared, in the root manifest.

All manifests are edited in memory first; files are written only once
every edit succeeded.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import tomlkit

from .errors import FieldNotFoundError, VersionFormatError
from .logging import get_logger
from .models import VersionPlan
from .toml import dump_document, format_path, get_path, parse_document, set_path
from .workspace import Workspace

logger = get_logger(__name__)


@dataclass
class ApplyResult:
    """What applying a plan changed (or would change, for a dry run).

    Attributes:
        files: New text per rewritten manifest.
        versions: New manifest version string per changed package.
        requirements: Rewritten requirement strings as
            ``(manifest, field path, old, new)``.
    """

    files: dict[Path, str] = field(default_factory=dict)
    versions: dict[str, str] = field(default_factory=dict)
    requirements: list[tuple[Path, str, str, str]] = field(default_factory=list)


def apply_plan(workspace: Workspace, plan: VersionPlan, *, dry_run: bool = False) -> ApplyResult:
    """Rewrite versions and internal requirements according to ``plan``.

    Raises:
        FieldNotFoundError: A version field or recorded requirement
            location no longer exists. Nothing is written.
        VersionFormatError: A planned version cannot be written in the
            manifest's version scheme. Nothing is written.
    """
    fmt = workspace.format
    style = workspace.config.constraint
    docs: dict[Path, tomlkit.TOMLDocument] = {}
    result = ApplyResult()

    def document(path: Path) -> tomlkit.TOMLDocument:
        if path not in docs:
            docs[path] = parse_document(workspace.tree.read_text(path))
        return docs[path]

    for name, planned in plan.versions.items():
        node = workspace.packages[name]
        doc = document(node.manifest_path)
        try:
            get_path(doc, fmt.version_path)
        except KeyError:
            raise FieldNotFoundError(
                str(node.manifest_path), format_path(fmt.version_path), package=name
            ) from None
        try:
            rendered = fmt.render_version(planned.new_version)
        except VersionFormatError as exc:
            exc.package = name
            raise
        set_path(doc, fmt.version_path, rendered)
        result.versions[name] = rendered

    for dependent, updates in plan.requirement_updates.items():
        node = workspace.packages[dependent]
        for edge in node.dependencies:
            if edge.name not in updates:
                continue
            version = fmt.render_version(updates[edge.name])
            for location in edge.locations:
                manifest = location.manifest or node.manifest_path
                doc = document(manifest)
                try:
                    current = str(get_path(doc, location.path))
                except KeyError:
                    raise FieldNotFoundError(
                        str(manifest), format_path(location.path), package=dependent
                    ) from None
                if fmt.requirement_of(location.model_copy(update={"requirement": current})) is None:
                    continue
                updated = fmt.update_requirement(current, version, style)
                if updated != current:
                    set_path(doc, location.path, updated)
                    result.requirements.append(
                        (manifest, format_path(location.path), current, updated)
                    )

    result.files = {path: dump_document(doc) for path, doc in docs.items()}
    if dry_run:
        return result

    for path, text in result.files.items():
        workspace.tree.write_text(path, text)
        logger.debug("manifest_written", path=str(path))
    logger.info(
        "plan_applied",
        packages=len(result.versions),
        requirements=len(result.requirements),
    )
    return result

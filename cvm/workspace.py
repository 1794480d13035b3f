"""Workspace discovery for uv (pyproject.toml) and Cargo (Cargo.toml).

Discovery reads the root manifest to find member package directories,
then extracts name, version, and internal dependency declarations from
each member's manifest. Only dependencies on other workspace members
become graph edges; external dependencies are ignored.

Each format knows where its fields live (as tomlkit field paths), how to
render versions (PEP 440 for Python, semver for Cargo), and how to
rewrite a dependency requirement.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import tomlkit
from packaging.utils import canonicalize_name
from tomlkit.exceptions import ParseError

from .clients import LocalSourceTree, SourceTree
from .config import CvmConfig, parse_config
from .deps import (
    dep_canonical_name,
    pep508_specifier,
    update_cargo_requirement,
    update_pep508_requirement,
)
from .errors import ConfigError, DuplicatePackageError, ManifestError
from .logging import get_logger
from .models import DependencyEdge, DependencyLocation, FieldPath, PackageNode
from .toml import get_table, parse_document
from .versions import from_pep440, parse_version, to_pep440

logger = get_logger(__name__)


@dataclass
class DeclaredDependency:
    """A dependency as written in a manifest, before internal resolution."""

    name: str
    kind: str
    location: DependencyLocation | None
    ordering: bool = True


@dataclass
class ManifestInfo:
    """Fields read from a single package manifest."""

    name: str
    version: str
    private: bool
    dependencies: list[DeclaredDependency] = field(default_factory=list)


class WorkspaceFormat:
    """Base class for a manifest format."""

    name = ""
    manifest_name = ""
    version_path: FieldPath = ()

    def config_table(self, doc: Any) -> Mapping[str, Any]:
        raise NotImplementedError

    def member_globs(self, doc: Any) -> list[str]:
        raise NotImplementedError

    def exclude_globs(self, doc: Any) -> list[str]:
        return []

    def declares_package(self, doc: Any) -> bool:
        raise NotImplementedError

    def read_manifest(
        self, doc: Any, manifest_path: Path, root_doc: Any = None, root_manifest: Path | None = None
    ) -> ManifestInfo:
        """Read one member manifest; ``root_doc`` is the workspace root manifest."""
        raise NotImplementedError

    def normalize_name(self, name: str) -> str:
        return name

    def parse_version(self, raw: str) -> str:
        """Convert a manifest version to canonical semver."""
        raise NotImplementedError

    def render_version(self, version: str) -> str:
        """Convert a canonical semver version to manifest form."""
        raise NotImplementedError

    def update_requirement(self, requirement: str, version: str, style: str) -> str:
        raise NotImplementedError

    @staticmethod
    def requirement_of(location: DependencyLocation) -> str | None:
        """The version requirement part of a dependency declaration."""
        return location.requirement


class UvFormat(WorkspaceFormat):
    """uv workspaces: ``[tool.uv.workspace]`` plus PEP 621 ``[project]`` tables."""

    name = "uv"
    manifest_name = "pyproject.toml"
    version_path = ("project", "version")

    def config_table(self, doc: Any) -> Mapping[str, Any]:
        return get_table(doc, "tool", "cvm")

    def member_globs(self, doc: Any) -> list[str]:
        return list(get_table(doc, "tool", "uv", "workspace").get("members", []))

    def exclude_globs(self, doc: Any) -> list[str]:
        return list(get_table(doc, "tool", "uv", "workspace").get("exclude", []))

    def declares_package(self, doc: Any) -> bool:
        return "name" in get_table(doc, "project")

    def read_manifest(
        self, doc: Any, manifest_path: Path, root_doc: Any = None, root_manifest: Path | None = None
    ) -> ManifestInfo:
        project = get_table(doc, "project")
        if "name" not in project:
            raise ManifestError(f"{manifest_path}: missing [project].name")
        if "version" not in project:
            raise ManifestError(
                f"{manifest_path}: missing [project].version",
                package=str(project["name"]),
                hint="Dynamic versions are not supported; declare a static version.",
            )

        dependencies: list[DeclaredDependency] = []

        def collect(entries: Any, path: FieldPath, kind: str) -> None:
            if not isinstance(entries, list):
                return
            for index, entry in enumerate(entries):
                # dependency-groups may contain {include-group = "..."} tables
                if not isinstance(entry, str):
                    continue
                location = DependencyLocation(
                    path=(*path, index), requirement=str(entry), kind=kind
                )
                dependencies.append(
                    DeclaredDependency(dep_canonical_name(str(entry)), kind, location)
                )

        collect(project.get("dependencies"), ("project", "dependencies"), "dependencies")
        for group, entries in get_table(doc, "project", "optional-dependencies").items():
            collect(entries, ("project", "optional-dependencies", group), f"extra:{group}")
        for group, entries in get_table(doc, "dependency-groups").items():
            collect(entries, ("dependency-groups", group), f"group:{group}")

        classifiers = [str(c) for c in project.get("classifiers", [])]
        return ManifestInfo(
            name=canonicalize_name(str(project["name"])),
            version=str(project["version"]),
            private=any(c.startswith("Private ::") for c in classifiers),
            dependencies=dependencies,
        )

    def normalize_name(self, name: str) -> str:
        return canonicalize_name(name)

    def parse_version(self, raw: str) -> str:
        return from_pep440(raw)

    def render_version(self, version: str) -> str:
        return to_pep440(version)

    def update_requirement(self, requirement: str, version: str, style: str) -> str:
        return update_pep508_requirement(requirement, version, style)

    @staticmethod
    def requirement_of(location: DependencyLocation) -> str | None:
        return pep508_specifier(location.requirement)


_CARGO_DEP_KINDS = ("dependencies", "build-dependencies", "dev-dependencies")


class CargoFormat(WorkspaceFormat):
    """Cargo workspaces: ``[workspace]`` members plus ``[package]`` tables."""

    name = "cargo"
    manifest_name = "Cargo.toml"
    version_path = ("package", "version")

    def config_table(self, doc: Any) -> Mapping[str, Any]:
        return get_table(doc, "workspace", "metadata", "cvm")

    def member_globs(self, doc: Any) -> list[str]:
        return list(get_table(doc, "workspace").get("members", []))

    def exclude_globs(self, doc: Any) -> list[str]:
        return list(get_table(doc, "workspace").get("exclude", []))

    def declares_package(self, doc: Any) -> bool:
        return "name" in get_table(doc, "package")

    def read_manifest(
        self, doc: Any, manifest_path: Path, root_doc: Any = None, root_manifest: Path | None = None
    ) -> ManifestInfo:
        package = get_table(doc, "package")
        if "name" not in package:
            raise ManifestError(f"{manifest_path}: missing [package].name")
        name = str(package["name"])
        version = package.get("version")
        if isinstance(version, Mapping):
            raise ManifestError(
                f"{manifest_path}: version.workspace = true is not supported",
                package=name,
                hint="cvm versions each crate independently; declare an explicit version.",
            )
        if version is None:
            raise ManifestError(f"{manifest_path}: missing [package].version", package=name)

        dependencies: list[DeclaredDependency] = []
        inherited = get_table(root_doc if root_doc is not None else doc, "workspace", "dependencies")
        prefixes: list[tuple[str, ...]] = [()]
        prefixes += [("target", target) for target in get_table(doc, "target")]
        for prefix in prefixes:
            for kind in _CARGO_DEP_KINDS:
                for key, spec in get_table(doc, *prefix, kind).items():
                    key = str(key)
                    if isinstance(spec, Mapping) and spec.get("workspace") is True:
                        if key not in inherited:
                            raise ManifestError(
                                f"{manifest_path}: {key} has workspace = true but the root "
                                "[workspace.dependencies] does not declare it",
                                package=name,
                            )
                        dependencies.append(
                            self._declared(
                                ("workspace", "dependencies"), kind, key, inherited[key], root_manifest
                            )
                        )
                    else:
                        dependencies.append(self._declared((*prefix, kind), kind, key, spec))

        publish = package.get("publish", True)
        return ManifestInfo(
            name=name,
            version=str(version),
            private=publish is False or (isinstance(publish, list) and not publish),
            dependencies=dependencies,
        )

    @staticmethod
    def _declared(
        table: tuple[str, ...], kind: str, key: str, spec: Any, manifest: Path | None = None
    ) -> DeclaredDependency:
        ordering = kind != "dev-dependencies"
        if isinstance(spec, str):
            location = DependencyLocation(
                path=(*table, key), requirement=spec, kind=kind, manifest=manifest
            )
            return DeclaredDependency(key, kind, location, ordering)
        name = key
        location = None
        if isinstance(spec, Mapping):
            name = str(spec.get("package", key))
            if "version" in spec:
                location = DependencyLocation(
                    path=(*table, key, "version"),
                    requirement=str(spec["version"]),
                    kind=kind,
                    manifest=manifest,
                )
        return DeclaredDependency(name, kind, location, ordering)

    def parse_version(self, raw: str) -> str:
        return str(parse_version(raw))

    def render_version(self, version: str) -> str:
        return version

    def update_requirement(self, requirement: str, version: str, style: str) -> str:
        return update_cargo_requirement(requirement, version, style)


FORMATS: dict[str, WorkspaceFormat] = {"uv": UvFormat(), "cargo": CargoFormat()}


@dataclass
class Workspace:
    """A discovered workspace.

    Attributes:
        root: Absolute workspace root.
        format: Manifest format of every package in the workspace.
        config: Settings from the root manifest.
        packages: Package nodes by name, in discovery order.
        tree: Source tree used to read (and later write) manifests.
    """

    root: Path
    format: WorkspaceFormat
    config: CvmConfig
    packages: dict[str, PackageNode]
    tree: SourceTree = field(default_factory=LocalSourceTree)

    @property
    def single_package(self) -> bool:
        return len(self.packages) == 1

    @property
    def staging_dir(self) -> Path:
        return self.root / self.config.staging_dir

    @property
    def prerelease_path(self) -> Path:
        return self.root / self.config.prerelease_file


def detect_format(root: Path, tree: SourceTree) -> WorkspaceFormat:
    """Pick the manifest format from the files present at ``root``.

    Raises:
        ConfigError: If neither or (ambiguously) both formats are present.
    """
    present = [fmt for fmt in FORMATS.values() if tree.exists(root / fmt.manifest_name)]
    if not present:
        raise ConfigError(
            f"No pyproject.toml or Cargo.toml found in {root}",
            hint="Run cvm from the workspace root or pass --root.",
        )
    if len(present) > 1:
        with_members = [
            fmt
            for fmt in present
            if fmt.member_globs(_parse(tree, root / fmt.manifest_name))
        ]
        if len(with_members) != 1:
            raise ConfigError(
                f"Both pyproject.toml and Cargo.toml found in {root}",
                hint="Pass --format uv or --format cargo.",
            )
        return with_members[0]
    return present[0]


def _parse(tree: SourceTree, path: Path) -> tomlkit.TOMLDocument:
    try:
        return parse_document(tree.read_text(path))
    except ParseError as exc:
        raise ManifestError(f"{path}: {exc}") from exc


def _plain(table: Mapping[str, Any]) -> dict[str, Any]:
    unwrap = getattr(table, "unwrap", None)
    return unwrap() if unwrap is not None else dict(table)


def discover_workspace(
    root: Path,
    *,
    format_name: str | None = None,
    tree: SourceTree | None = None,
) -> Workspace:
    """Scan the workspace and build a node for every package.

    Args:
        root: Workspace root directory.
        format_name: Force "uv" or "cargo" instead of auto-detecting.
        tree: Source tree accessor; defaults to the local filesystem.

    Returns:
        The discovered Workspace. Dependency edges are resolved, but
        ``dependents`` are only filled in by :func:`cvm.graph.build_graph`.

    Raises:
        ConfigError: No usable root manifest or invalid settings.
        ManifestError: A member manifest lacks a name or version.
        DuplicatePackageError: Two manifests declare the same name.
    """
    tree = tree or LocalSourceTree()
    root = root.resolve()
    if format_name is not None:
        if format_name not in FORMATS:
            raise ConfigError(f"Unknown workspace format {format_name!r}")
        fmt = FORMATS[format_name]
    else:
        fmt = detect_format(root, tree)

    root_manifest = root / fmt.manifest_name
    if not tree.exists(root_manifest):
        raise ConfigError(f"No {fmt.manifest_name} found in {root}")
    root_doc = _parse(tree, root_manifest)
    config = parse_config(_plain(fmt.config_table(root_doc)))

    manifests = tree.list_manifests(root, fmt.member_globs(root_doc), fmt.manifest_name)
    excluded = set(tree.list_manifests(root, fmt.exclude_globs(root_doc), fmt.manifest_name))
    manifests = [m for m in manifests if m not in excluded]
    if fmt.declares_package(root_doc) and root_manifest not in manifests:
        manifests.insert(0, root_manifest)
    if not manifests:
        raise ConfigError(
            f"No packages found in {root_manifest}",
            hint="Declare workspace members or a package in the root manifest.",
        )

    # First pass: read every manifest.
    infos: dict[str, tuple[ManifestInfo, Path]] = {}
    for manifest in manifests:
        doc = root_doc if manifest == root_manifest else _parse(tree, manifest)
        info = fmt.read_manifest(doc, manifest, root_doc, root_manifest)
        if info.name in infos:
            raise DuplicatePackageError(
                info.name, str(infos[info.name][1].relative_to(root)), str(manifest.relative_to(root))
            )
        infos[info.name] = (info, manifest)

    # Second pass: keep only internal dependencies, grouped per target.
    packages: dict[str, PackageNode] = {}
    for name, (info, manifest) in infos.items():
        try:
            version = fmt.parse_version(info.version)
        except ValueError as exc:
            raise ManifestError(
                f"{manifest}: invalid version {info.version!r}", package=name
            ) from exc

        edges: dict[str, DependencyEdge] = {}
        for declared in info.dependencies:
            if declared.name not in infos or declared.name == name:
                continue
            edge = edges.setdefault(declared.name, DependencyEdge(name=declared.name, ordering=False))
            edge.ordering = edge.ordering or declared.ordering
            if declared.location is not None:
                edge.locations.append(declared.location)
                if edge.requirement is None:
                    edge.requirement = fmt.requirement_of(declared.location)

        packages[name] = PackageNode(
            name=name,
            version=version,
            path=str(manifest.parent.relative_to(root)),
            manifest_path=manifest,
            dependencies=list(edges.values()),
            private=info.private,
        )

    logger.debug("workspace_discovered", format=fmt.name, packages=len(packages))
    return Workspace(root=root, format=fmt, config=config, packages=packages, tree=tree)

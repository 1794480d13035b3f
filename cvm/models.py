"""Data models for cvm.

These Pydantic models are the records that flow between the change
store, the graph builder, the planner, the manifest mutator, and the
publisher.
"""

from __future__ import annotations

from enum import Enum, IntEnum
from pathlib import Path
from typing import Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Bump(IntEnum):
    """Bump severity. Ordered so that ``max()`` picks the strongest."""

    NONE = 0
    PATCH = 1
    MINOR = 2
    MAJOR = 3

    @property
    def label(self) -> str:
        return self.name.lower()


class Reason(str, Enum):
    """Why a package is part of a version plan."""

    DIRECT = "direct"
    PROPAGATED = "propagated"


class ChangeDescriptor(BaseModel):
    """One staged change file.

    Attributes:
        id: Identifier derived from the change file's name.
        summary: Human-readable description, used for changelogs.
        major: Packages that need a major bump.
        minor: Packages that need a minor bump.
        patch: Packages that need a patch bump.
        pre: Resolve the bumps as prerelease increments on the active channel.
        path: Backing file in the staging directory, if any.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    summary: str = ""
    major: frozenset[str] = frozenset()
    minor: frozenset[str] = frozenset()
    patch: frozenset[str] = frozenset()
    pre: bool = False
    path: Path | None = None

    @model_validator(mode="after")
    def _severity_sets_disjoint(self) -> ChangeDescriptor:
        overlap = (
            (self.major & self.minor)
            | (self.major & self.patch)
            | (self.minor & self.patch)
        )
        if overlap:
            raise ValueError(
                f"packages listed under more than one severity: {sorted(overlap)}"
            )
        return self

    def bumps(self) -> dict[str, Bump]:
        """Map each named package to the severity this change requests."""
        result = {name: Bump.PATCH for name in self.patch}
        result.update({name: Bump.MINOR for name in self.minor})
        result.update({name: Bump.MAJOR for name in self.major})
        return result

    @property
    def packages(self) -> set[str]:
        return set(self.major | self.minor | self.patch)


FieldPath = tuple[Union[str, int], ...]


class DependencyLocation(BaseModel):
    """Where an internal dependency requirement lives inside a manifest.

    Attributes:
        path: Field path into the TOML document. For list entries the last
            element is the list index (PEP 508 strings); for Cargo tables
            it ends at the requirement string itself.
        requirement: The raw text found at ``path`` when discovered.
        kind: Dependency table the entry came from (e.g., "dependencies").
        manifest: Manifest holding the declaration when it is not the
            dependent's own. Cargo ``workspace = true`` entries inherit
            their requirement from the root ``[workspace.dependencies]``.
    """

    model_config = ConfigDict(frozen=True)

    path: FieldPath
    requirement: str
    kind: str = "dependencies"
    manifest: Path | None = None


class DependencyEdge(BaseModel):
    """An internal dependency from one workspace package on another.

    Attributes:
        name: Name of the package depended on.
        requirement: Version requirement as first declared, or None if
            the dependency is declared without one.
        locations: Every place the dependency is declared.
        ordering: False when the edge only exists for development
            (e.g., Cargo dev-dependencies) and must not constrain
            publish order.
    """

    name: str
    requirement: str | None = None
    locations: list[DependencyLocation] = Field(default_factory=list)
    ordering: bool = True


class PackageNode(BaseModel):
    """A publishable package in the workspace.

    Attributes:
        name: Normalized package name, unique in the workspace.
        version: Current semantic version (canonical semver form).
        path: Package directory, relative to the workspace root.
        manifest_path: Absolute path to the package manifest.
        dependencies: Internal dependency edges.
        dependents: Names of internal packages that depend on this one.
        private: Never published to a registry.
    """

    name: str
    version: str
    path: str
    manifest_path: Path
    dependencies: list[DependencyEdge] = Field(default_factory=list)
    dependents: list[str] = Field(default_factory=list)
    private: bool = False

    @property
    def deps(self) -> list[str]:
        """Names of internal dependencies that constrain publish order."""
        return [edge.name for edge in self.dependencies if edge.ordering]


class PlannedVersion(BaseModel):
    """The computed outcome for one package."""

    name: str
    previous_version: str
    new_version: str
    bump: Bump
    prerelease: bool = False
    reason: Reason
    sources: list[str] = Field(default_factory=list)

    @property
    def severity(self) -> str:
        return "prerelease" if self.prerelease else self.bump.label


class VersionPlan(BaseModel):
    """Computed outcome of one apply cycle.

    Attributes:
        versions: Planned version per affected package, in topological order.
        requirement_updates: For each dependent, the new version of every
            internal dependency whose version changed.
        descriptors: Ids of the change descriptors the plan consumes.
        channel: Active prerelease channel when the plan was computed.
    """

    versions: dict[str, PlannedVersion] = Field(default_factory=dict)
    requirement_updates: dict[str, dict[str, str]] = Field(default_factory=dict)
    descriptors: list[str] = Field(default_factory=list)
    channel: str | None = None

    def __bool__(self) -> bool:
        return bool(self.versions)

    @property
    def has_prereleases(self) -> bool:
        return any(v.prerelease for v in self.versions.values())

    def as_mapping(self) -> dict[str, dict[str, str]]:
        """Serialize as ``{name: {previousVersion, newVersion, severity}}``."""
        return {
            name: {
                "previousVersion": planned.previous_version,
                "newVersion": planned.new_version,
                "severity": planned.severity,
            }
            for name, planned in self.versions.items()
        }


class PrereleaseState(BaseModel):
    """Persisted prerelease mode.

    ``channel is None`` means inactive; the counter is meaningful only
    while a channel is active.
    """

    model_config = ConfigDict(frozen=True)

    channel: str | None = None
    counter: int = 0

    @property
    def active(self) -> bool:
        return self.channel is not None


class PublishOutcome(str, Enum):
    """Result of one package's publish attempt."""

    ALREADY_PUBLISHED = "already-published"
    PUBLISHED = "published"
    DRY_RUN = "dry-run"
    PRIVATE = "private"
    REJECTED = "rejected"
    FAILED = "failed"


class PublishRecord(BaseModel):
    """Per-package, per-version outcome of a publish run. Never mutated."""

    model_config = ConfigDict(frozen=True)

    name: str
    version: str
    outcome: PublishOutcome
    attempts: int = 0
    tag: str | None = None
    tag_created: bool = False
    release_created: bool = False
    release_id: str | None = None
    error: str | None = None
    followup_errors: list[str] = Field(default_factory=list)

    @property
    def already_published(self) -> bool:
        return self.outcome is PublishOutcome.ALREADY_PUBLISHED

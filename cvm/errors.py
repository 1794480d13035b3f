"""Exception hierarchy for cvm.

Every error carries enough context (stage, package, version, descriptor)
for the CLI to render a precise message. The taxonomy mirrors how an
error should be handled by the caller:

- ConfigError / ManifestError / GraphError: broken workspace, fix and re-run.
- PlanError: bad staged input, fix the change file and re-run.
- PrereleaseError: illegal prerelease state transition.
- MutationError: manifest rewrite impossible, nothing was written.
- PublishError: registry or source-hosting failure during publish.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .publisher import PublishReport


class CvmError(Exception):
    """Base class for all cvm errors.

    Attributes:
        stage: Pipeline stage that failed (e.g., "graph", "plan", "publish").
        package: Package the error relates to, if any.
        version: Version the error relates to, if any.
        descriptor: Change descriptor id the error relates to, if any.
        hint: Optional suggestion for fixing the problem.
    """

    stage = "cvm"

    def __init__(
        self,
        message: str,
        *,
        package: str | None = None,
        version: str | None = None,
        descriptor: str | None = None,
        hint: str = "",
    ) -> None:
        super().__init__(message)
        self.message = message
        self.package = package
        self.version = version
        self.descriptor = descriptor
        self.hint = hint

    def context(self) -> dict[str, str]:
        """Return the non-empty context fields, for structured logging."""
        fields = {
            "stage": self.stage,
            "package": self.package,
            "version": self.version,
            "descriptor": self.descriptor,
        }
        return {k: v for k, v in fields.items() if v}


# Configuration errors


class ConfigError(CvmError):
    """Invalid [tool.cvm] configuration or unusable workspace root."""

    stage = "config"


class ManifestError(ConfigError):
    """A package manifest is missing required fields or cannot be parsed."""

    stage = "manifest"


class GraphError(ConfigError):
    """The workspace dependency graph is invalid."""

    stage = "graph"


class CycleError(GraphError):
    """The internal dependency graph contains a cycle."""

    def __init__(self, cycle: list[str]) -> None:
        self.cycle = cycle
        super().__init__(
            f"Dependency cycle detected: {' → '.join(cycle)}",
            hint="Remove one of the internal dependency edges in the cycle.",
        )


class DuplicatePackageError(GraphError):
    """Two manifests declare the same package name."""

    def __init__(self, name: str, first: str, second: str) -> None:
        self.paths = (first, second)
        super().__init__(
            f"Package {name!r} is declared by both {first} and {second}",
            package=name,
        )


# Plan errors


class PlanError(CvmError):
    """Staged change descriptors cannot be resolved into a plan."""

    stage = "plan"


class InvalidChangeError(PlanError):
    """A staged change file is malformed."""


class UnknownPackageError(PlanError):
    """A change descriptor names a package that is not in the workspace."""

    def __init__(self, name: str, descriptor: str) -> None:
        super().__init__(
            f"Change {descriptor!r} references unknown package {name!r}",
            package=name,
            descriptor=descriptor,
            hint="Fix the package name in the change file or remove it.",
        )


# Prerelease errors


class PrereleaseError(CvmError):
    """Illegal prerelease state transition."""

    stage = "prerelease"


class AlreadyActiveError(PrereleaseError):
    """`pre start` on a channel while another channel is active."""

    def __init__(self, active: str, requested: str) -> None:
        self.active = active
        self.requested = requested
        super().__init__(
            f"Prerelease channel {active!r} is active; cannot start {requested!r}",
            hint="Run 'cvm pre exit' before switching channels.",
        )


class NotActiveError(PrereleaseError, PlanError):
    """A prerelease operation was requested while no channel is active."""

    stage = "prerelease"


class InvalidChannelError(PrereleaseError):
    """The channel name is not a valid semver prerelease identifier."""


# Mutation errors


class MutationError(CvmError):
    """A manifest could not be rewritten to match the plan."""

    stage = "mutate"


class FieldNotFoundError(MutationError):
    """An expected field is absent from a manifest."""

    def __init__(self, path: str, field: str, *, package: str | None = None) -> None:
        self.path = path
        self.field = field
        super().__init__(
            f"Field {field!r} not found in {path}",
            package=package,
            hint="The manifest changed since the plan was computed; re-run.",
        )


class VersionFormatError(MutationError):
    """A version cannot be expressed in the manifest's version scheme."""


# Publish errors


class PublishError(CvmError):
    """Base class for publish failures."""

    stage = "publish"


class TransientPublishError(PublishError):
    """A retryable failure: network error, timeout, or rate limit."""


class RejectedPublishError(PublishError):
    """The registry refused the package; retrying will not help."""


class PublishAbortedError(PublishError):
    """Publishing stopped after a fatal package failure.

    Attributes:
        report: Records produced before the abort, plus blocked packages.
    """

    def __init__(self, message: str, report: PublishReport, **kwargs: str) -> None:
        super().__init__(message, **kwargs)
        self.report = report


class PublishCancelledError(PublishError):
    """Publishing stopped between packages because of an operator interrupt."""

    def __init__(self, report: PublishReport) -> None:
        super().__init__(
            f"Publish cancelled; {len(report.blocked)} package(s) not attempted"
        )
        self.report = report

"""Dependency-ordered, idempotent publishing.

Packages are published one at a time in topological order, so a package
is only uploaded after everything it depends on is available on the
registry. For each package::

    private?            → record "private", skip
    already on registry → record "already-published", skip
    dry run             → record "dry-run"
    publish (retrying transient failures with exponential backoff,
             re-checking the registry before each retry)
        rejected / out of attempts → abort the run
    tag + release (failures are recorded, never fatal)

Idempotence comes from asking the registry, not from local history: a
re-run after a failure skips everything that made it out.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, NoReturn

from .changelog import release_notes
from .clients import PublishClient, SourceHostClient
from .errors import (
    CvmError,
    PublishAbortedError,
    PublishCancelledError,
    RejectedPublishError,
    TransientPublishError,
)
from .graph import DependencyGraph, topo_sort
from .logging import get_logger
from .models import PackageNode, PublishOutcome, PublishRecord
from .workspace import Workspace

logger = get_logger(__name__)


class CancelToken:
    """Set by an interrupt handler; checked between packages."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass
class PublishReport:
    """Outcome of a publish run.

    Attributes:
        records: One record per package handled, in publish order.
        blocked: Packages never attempted because the run stopped early.
    """

    records: list[PublishRecord] = field(default_factory=list)
    blocked: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.blocked and all(
            r.outcome not in (PublishOutcome.REJECTED, PublishOutcome.FAILED) for r in self.records
        )

    def by_outcome(self, outcome: PublishOutcome) -> list[PublishRecord]:
        return [r for r in self.records if r.outcome is outcome]

    def as_list(self) -> list[dict[str, object]]:
        return [r.model_dump(mode="json") for r in self.records]


@dataclass
class PublishOptions:
    """Knobs for one publish run; defaults come from the workspace config."""

    dry_run: bool = False
    create_tags: bool = True
    create_releases: bool = True
    max_attempts: int = 3
    backoff_base: float = 1.0
    timeout: float = 60.0

    @classmethod
    def from_workspace(cls, workspace: Workspace, **overrides: object) -> PublishOptions:
        config = workspace.config
        options = cls(
            create_tags=config.create_tags,
            create_releases=config.create_releases,
            max_attempts=config.max_attempts,
            backoff_base=config.backoff_base,
            timeout=config.timeout,
        )
        for key, value in overrides.items():
            if value is not None:
                setattr(options, key, value)
        return options


def _with_retry(
    action: Callable[[], object],
    *,
    name: str,
    options: PublishOptions,
    sleep: Callable[[float], None],
) -> tuple[object, int]:
    """Run ``action``, retrying TransientPublishError with backoff.

    Returns:
        The action's result and the number of attempts it took.

    Raises:
        TransientPublishError: When the final attempt also failed.
        RejectedPublishError: Immediately, without retrying.
    """
    for attempt in range(1, options.max_attempts + 1):
        try:
            return action(), attempt
        except TransientPublishError as exc:
            if attempt == options.max_attempts:
                raise
            delay = options.backoff_base * (2 ** (attempt - 1))
            logger.warning(
                "publish_retry", package=name, attempt=attempt, delay=delay, error=exc.message
            )
            sleep(delay)
    raise AssertionError("max_attempts must be at least 1")


def _upload_action(
    client: PublishClient, name: str, version: str, node: PackageNode, timeout: float
) -> Callable[[], bool]:
    """Build the retried upload step.

    An upload can land on the registry even though the tool reported a
    timeout, so every attempt after the first checks the registry before
    uploading again. The step returns True when an earlier attempt landed.
    """
    attempts = 0

    def action() -> bool:
        nonlocal attempts
        attempts += 1
        if attempts > 1 and client.exists(name, version, timeout=timeout):
            logger.info("publish_landed_earlier", package=name, version=version)
            return True
        client.publish(name, version, node.manifest_path, timeout=timeout)
        return False

    return action


def _follow_up(
    workspace: Workspace,
    host: SourceHostClient,
    name: str,
    version: str,
    tag: str,
    options: PublishOptions,
) -> dict[str, Any]:
    """Create the tag and release for a freshly published package."""
    errors: list[str] = []
    fields: dict[str, Any] = {"followup_errors": errors}
    if not options.create_tags:
        return fields
    try:
        host.create_tag(tag)
        fields["tag_created"] = True
    except (CvmError, OSError) as exc:
        errors.append(f"tag {tag}: {exc}")
        logger.error("tag_failed", package=name, tag=tag, error=str(exc))
        return fields
    if not options.create_releases:
        return fields
    try:
        notes = release_notes(workspace.packages[name].manifest_path.parent, version)
        fields["release_id"] = host.create_release(tag, notes)
        fields["release_created"] = True
    except (CvmError, OSError) as exc:
        errors.append(f"release {tag}: {exc}")
        logger.error("release_failed", package=name, tag=tag, error=str(exc))
    return fields


def publish_workspace(
    workspace: Workspace,
    graph: DependencyGraph,
    client: PublishClient,
    host: SourceHostClient | None = None,
    *,
    options: PublishOptions | None = None,
    cancel: CancelToken | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> PublishReport:
    """Publish every package in dependency order.

    Args:
        workspace: The discovered workspace; versions are the on-disk ones.
        graph: Its dependency graph.
        client: Registry client.
        host: Source-hosting client for tags and releases; None skips them.
        options: Run options; defaults from the workspace config.
        cancel: Checked before each package.
        sleep: Used between retries.

    Returns:
        The report, when every package was handled.

    Raises:
        PublishAbortedError: A package was rejected or ran out of attempts.
        PublishCancelledError: ``cancel`` was set.
    """
    options = options or PublishOptions.from_workspace(workspace)
    fmt = workspace.format
    order = topo_sort(graph)
    report = PublishReport()

    for index, name in enumerate(order):
        if cancel is not None and cancel.cancelled:
            report.blocked = order[index:]
            logger.warning("publish_cancelled", remaining=len(report.blocked))
            raise PublishCancelledError(report)

        node = graph.packages[name]
        version = fmt.render_version(node.version)
        tag = workspace.config.tag_for(name, version, single=workspace.single_package)
        log = logger.bind(package=name, version=version)

        if node.private:
            report.records.append(PublishRecord(name=name, version=version, outcome=PublishOutcome.PRIVATE))
            log.info("publish_skip_private")
            continue

        try:
            exists, attempts = _with_retry(
                lambda: client.exists(name, version, timeout=options.timeout),
                name=name,
                options=options,
                sleep=sleep,
            )
        except RejectedPublishError as exc:
            _abort(report, order, index, name, version, PublishOutcome.REJECTED, exc.message, 1)
        except TransientPublishError as exc:
            _abort(report, order, index, name, version, PublishOutcome.FAILED, exc.message, options.max_attempts)

        if exists:
            report.records.append(
                PublishRecord(name=name, version=version, outcome=PublishOutcome.ALREADY_PUBLISHED)
            )
            log.info("publish_skip_existing")
            continue

        if options.dry_run:
            report.records.append(
                PublishRecord(name=name, version=version, outcome=PublishOutcome.DRY_RUN, tag=tag)
            )
            log.info("publish_dry_run", tag=tag)
            continue

        try:
            _, attempts = _with_retry(
                _upload_action(client, name, version, node, options.timeout),
                name=name,
                options=options,
                sleep=sleep,
            )
        except RejectedPublishError as exc:
            _abort(report, order, index, name, version, PublishOutcome.REJECTED, exc.message, 1)
        except TransientPublishError as exc:
            _abort(report, order, index, name, version, PublishOutcome.FAILED, exc.message, options.max_attempts)
        log.info("published", attempts=attempts)

        followup: dict[str, Any] = {"followup_errors": []}
        if host is not None:
            followup = _follow_up(workspace, host, name, version, tag, options)
        report.records.append(
            PublishRecord(
                name=name,
                version=version,
                outcome=PublishOutcome.PUBLISHED,
                attempts=attempts,
                tag=tag if followup.get("tag_created") else None,
                **followup,
            )
        )

    return report


def _abort(
    report: PublishReport,
    order: list[str],
    index: int,
    name: str,
    version: str,
    outcome: PublishOutcome,
    error: str,
    attempts: int,
) -> NoReturn:
    report.records.append(
        PublishRecord(name=name, version=version, outcome=outcome, attempts=attempts, error=error)
    )
    report.blocked = order[index + 1 :]
    logger.error("publish_failed", package=name, version=version, outcome=outcome.value, error=error)
    raise PublishAbortedError(
        f"Publishing {name} {version} failed: {error}",
        report,
        package=name,
        version=version,
        hint=f"{len(report.blocked)} package(s) were not attempted; re-run to resume.",
    )

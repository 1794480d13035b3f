"""Version bump calculation.

Turns staged change descriptors into a :class:`~cvm.models.VersionPlan`:

1. Every package named by a descriptor gets the strongest severity any
   descriptor requests for it (major > minor > patch).
2. Walking the graph in topological order, every package with a changed
   runtime dependency gets at least a patch bump ("patch" propagation),
   or the strongest bump among its changed dependencies ("inherit").
   A stronger direct bump is never downgraded.
3. New versions follow semver rules; with a prerelease channel active,
   packages bumped only by ``pre = true`` changes get prerelease
   versions on that channel.
4. Every dependent of a changed package is told the new version, so the
   mutator can rewrite the requirement in the same pass.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from .errors import NotActiveError, UnknownPackageError
from .graph import DependencyGraph, topo_sort
from .logging import get_logger
from .models import (
    Bump,
    ChangeDescriptor,
    PlannedVersion,
    PrereleaseState,
    Reason,
    VersionPlan,
)
from .prerelease import INACTIVE
from .versions import bump_version, prerelease_version

logger = get_logger(__name__)


@dataclass
class _Requested:
    bump: Bump = Bump.NONE
    sources: list[str] = field(default_factory=list)
    stable: bool = False


def collect_direct_bumps(
    graph: DependencyGraph,
    changes: Sequence[ChangeDescriptor],
    state: PrereleaseState,
) -> dict[str, _Requested]:
    """Merge the descriptors into one requested bump per package.

    Raises:
        UnknownPackageError: A descriptor names a package not in the graph.
        NotActiveError: A ``pre = true`` descriptor while no channel is active.
    """
    requested: dict[str, _Requested] = {}
    for change in sorted(changes, key=lambda c: c.id):
        if change.pre and not state.active:
            raise NotActiveError(
                f"Change {change.id!r} is a prerelease change but no channel is active",
                descriptor=change.id,
                hint="Run 'cvm pre start <channel>' or set pre = false.",
            )
        for name, bump in sorted(change.bumps().items()):
            if name not in graph:
                raise UnknownPackageError(name, change.id)
            entry = requested.setdefault(name, _Requested())
            entry.bump = max(entry.bump, bump)
            entry.sources.append(change.id)
            entry.stable = entry.stable or not change.pre
    return requested


def compute_plan(
    graph: DependencyGraph,
    changes: Sequence[ChangeDescriptor],
    state: PrereleaseState = INACTIVE,
    *,
    propagation: str = "patch",
) -> VersionPlan:
    """Compute the version plan for the staged changes.

    Args:
        graph: The workspace dependency graph.
        changes: Staged change descriptors (any order; processed by id).
        state: Current prerelease state.
        propagation: "patch" or "inherit".

    Returns:
        The plan. It is empty when ``changes`` is empty.
    """
    requested = collect_direct_bumps(graph, changes, state)
    plan = VersionPlan(
        descriptors=sorted(c.id for c in changes),
        channel=state.channel,
    )
    if not requested:
        return plan

    for name in topo_sort(graph):
        direct = requested.get(name)
        changed_deps = [d for d in graph.edges[name] if d in plan.versions]
        if direct is None and not changed_deps:
            continue

        bump = direct.bump if direct else Bump.NONE
        stable = direct.stable if direct else False
        for dep in changed_deps:
            upstream = plan.versions[dep]
            bump = max(bump, upstream.bump if propagation == "inherit" else Bump.PATCH)
            stable = stable or not upstream.prerelease

        node = graph.packages[name]
        prerelease = state.active and not stable
        if prerelease:
            new_version = prerelease_version(node.version, bump, state.channel or "")
        else:
            new_version = bump_version(node.version, bump)

        plan.versions[name] = PlannedVersion(
            name=name,
            previous_version=node.version,
            new_version=new_version,
            bump=bump,
            prerelease=prerelease,
            reason=Reason.DIRECT if direct else Reason.PROPAGATED,
            sources=(direct.sources if direct else []) + changed_deps,
        )
        logger.debug(
            "version_planned",
            package=name,
            version=new_version,
            bump=bump.label,
            reason="direct" if direct else "propagated",
        )

    for name, planned in plan.versions.items():
        for dependent in graph.dependents_of(name):
            plan.requirement_updates.setdefault(dependent, {})[name] = planned.new_version

    logger.info("plan_computed", packages=len(plan.versions), changes=len(plan.descriptors))
    return plan

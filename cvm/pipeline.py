"""End-to-end commands: add → status → version → publish.

This module wires the core components together for the CLI:
1. Discover the workspace and build its dependency graph
2. Read the staged change descriptors and the prerelease state
3. Compute the version plan
4. Rewrite manifests and changelogs, consume the descriptors
5. Later, in a separate invocation: publish in dependency order

Collaborators that talk to the outside world (registry, source host)
are created here unless the caller injects its own.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from pathlib import Path

from .adapters import CratesIoClient, GitHubCliHost, PyPIClient
from .changelog import render_section, write_changelog
from .changes import add_change, consume_changes, read_changes
from .clients import PublishClient, SourceHostClient
from .errors import InvalidChangeError, UnknownPackageError
from .graph import DependencyGraph, build_graph, topo_levels
from .models import ChangeDescriptor, PrereleaseState, Reason, VersionPlan
from .mutator import apply_plan
from .planner import compute_plan
from .prerelease import exit_prerelease, load_state, record_release, save_state, start
from .publisher import CancelToken, PublishOptions, PublishReport, publish_workspace
from .shell import step
from .workspace import Workspace, discover_workspace


def load_workspace(root: Path, format_name: str | None = None) -> tuple[Workspace, DependencyGraph]:
    """Discover the workspace and build its graph."""
    workspace = discover_workspace(root, format_name=format_name)
    return workspace, build_graph(workspace.packages)


def pending_plan(
    workspace: Workspace, graph: DependencyGraph
) -> tuple[VersionPlan, list[ChangeDescriptor], PrereleaseState]:
    """Compute the plan for everything currently staged."""
    changes = read_changes(workspace.staging_dir, workspace.format.normalize_name)
    state = load_state(workspace.prerelease_path)
    plan = compute_plan(graph, changes, state, propagation=workspace.config.propagation)
    return plan, changes, state


def print_plan(plan: VersionPlan) -> None:
    if not plan:
        print("  No pending changes")
        return
    width = max(len(name) for name in plan.versions)
    for name, planned in plan.versions.items():
        why = "" if planned.reason is Reason.DIRECT else f" (via {', '.join(planned.sources)})"
        print(
            f"  {name:<{width}}  {planned.previous_version} → {planned.new_version}"
            f"  [{planned.severity}]{why}"
        )


def run_add(
    root: Path,
    *,
    summary: str,
    major: Iterable[str] = (),
    minor: Iterable[str] = (),
    patch: Iterable[str] = (),
    pre: bool = False,
    format_name: str | None = None,
) -> ChangeDescriptor:
    """Stage a change after checking that every named package exists."""
    workspace, _ = load_workspace(root, format_name)
    normalize = workspace.format.normalize_name
    major, minor, patch = ([normalize(n) for n in names] for names in (major, minor, patch))
    for name in [*major, *minor, *patch]:
        if name not in workspace.packages:
            raise UnknownPackageError(name, "<new>")
    if pre and not load_state(workspace.prerelease_path).active:
        raise InvalidChangeError(
            "--pre requires an active prerelease channel",
            hint="Run 'cvm pre start <channel>' first.",
        )
    change = add_change(
        workspace.staging_dir, summary=summary, major=major, minor=minor, patch=patch, pre=pre
    )
    print(f"Staged {change.path.relative_to(workspace.root) if change.path else change.id}")
    return change


def run_status(root: Path, *, as_json: bool = False, format_name: str | None = None) -> VersionPlan:
    """Print the pending plan without writing anything."""
    workspace, graph = load_workspace(root, format_name)
    plan, changes, state = pending_plan(workspace, graph)
    if as_json:
        print(json.dumps(plan.as_mapping(), indent=2))
        return plan
    step(f"Pending changes ({len(changes)} staged)")
    if state.active:
        print(f"  Prerelease channel: {state.channel}")
    print_plan(plan)
    return plan


def run_version(
    root: Path,
    *,
    dry_run: bool = False,
    pr: bool = False,
    host: SourceHostClient | None = None,
    format_name: str | None = None,
) -> VersionPlan:
    """Apply the pending plan to manifests and changelogs.

    Order of writes: manifests, changelogs, descriptor removal,
    prerelease state. Descriptors are only consumed once the manifests
    are written.
    """
    workspace, graph = load_workspace(root, format_name)
    plan, changes, state = pending_plan(workspace, graph)

    step("Computing versions")
    print_plan(plan)
    if not plan:
        return plan

    step("Updating manifests" + (" (dry run)" if dry_run else ""))
    result = apply_plan(workspace, plan, dry_run=dry_run)
    for manifest, field, old, new in result.requirements:
        print(f"  {manifest.relative_to(workspace.root)}: {field} {old} → {new}")
    if dry_run:
        return plan

    if workspace.config.changelog:
        step("Updating changelogs")
        for name, planned in plan.versions.items():
            deps = {
                dep: result.versions[dep]
                for dep in planned.sources
                if dep in result.versions
            }
            section = render_section(result.versions[name], planned, changes, deps)
            path = write_changelog(workspace.packages[name].manifest_path.parent, section)
            print(f"  {path.relative_to(workspace.root)}")

    consume_changes(changes)
    if plan.has_prereleases:
        state = record_release(state)
        save_state(workspace.prerelease_path, state)

    if pr:
        step("Opening pull request")
        host = host or GitHubCliHost(workspace.root)
        title = "Version packages" + (f" ({state.channel})" if state.active else "")
        url = host.create_pull_request(title, list(workspace.config.pr_labels), workspace.config.pr_branch)
        print(f"  {url}")
    return plan


def run_pre(
    root: Path, action: str, channel: str | None = None, *, format_name: str | None = None
) -> PrereleaseState:
    """Run a prerelease transition: "start", "exit" or "status"."""
    workspace = discover_workspace(root, format_name=format_name)
    state = load_state(workspace.prerelease_path)
    if action == "start":
        state = start(state, channel or "")
        save_state(workspace.prerelease_path, state)
    elif action == "exit":
        state = exit_prerelease(state)
        save_state(workspace.prerelease_path, state)

    if state.active:
        print(f"Prerelease channel {state.channel!r} active ({state.counter} release(s))")
    else:
        print("Not in prerelease mode")
    return state


def default_client(workspace: Workspace) -> PublishClient:
    url = workspace.config.registry_url
    if workspace.format.name == "cargo":
        return CratesIoClient(base_url=url) if url else CratesIoClient()
    return PyPIClient(base_url=url) if url else PyPIClient()


def run_publish(
    root: Path,
    *,
    dry_run: bool = False,
    tags: bool | None = None,
    releases: bool | None = None,
    as_json: bool = False,
    client: PublishClient | None = None,
    host: SourceHostClient | None = None,
    cancel: CancelToken | None = None,
    format_name: str | None = None,
) -> PublishReport:
    """Publish every package whose on-disk version is not yet on the registry."""
    workspace, graph = load_workspace(root, format_name)
    options = PublishOptions.from_workspace(
        workspace, dry_run=dry_run, create_tags=tags, create_releases=releases
    )
    if not as_json:
        step("Publishing" + (" (dry run)" if dry_run else ""))

    report = publish_workspace(
        workspace,
        graph,
        client or default_client(workspace),
        host or GitHubCliHost(workspace.root),
        options=options,
        cancel=cancel,
    )

    if as_json:
        print(json.dumps(report.as_list(), indent=2))
        return report
    for record in report.records:
        extra = f" tag {record.tag}" if record.tag else ""
        print(f"  {record.name} {record.version}: {record.outcome.value}{extra}")
        for error in record.followup_errors:
            print(f"    warning: {error}")
    return report


def run_graph(root: Path, *, format_name: str | None = None) -> list[list[str]]:
    """Print the packages grouped by topological level."""
    workspace, graph = load_workspace(root, format_name)
    step("Dependency graph")
    levels = topo_levels(graph)
    for index, level in enumerate(levels):
        print(f"  level {index}:")
        for name in level:
            node = graph.packages[name]
            deps = f" → [{', '.join(graph.edges[name])}]" if graph.edges[name] else ""
            private = " (private)" if node.private else ""
            print(f"    {name} {workspace.format.render_version(node.version)}{private}{deps}")
    return levels

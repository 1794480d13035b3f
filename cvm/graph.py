"""Dependency graph utilities.

Provides cycle detection and topological ordering for a workspace.
Packages must be versioned and published in dependency order so that
when package A depends on package B, B comes first.

Edges point from dependents to their dependencies: if ``A`` depends on
``B``, ``edges["A"]`` contains ``"B"`` and ``reverse_edges["B"]``
contains ``"A"``. Development-only dependencies (Cargo dev-dependencies)
are not ordering edges.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from .errors import CycleError
from .logging import get_logger
from .models import PackageNode

logger = get_logger(__name__)


@dataclass
class DependencyGraph:
    """A directed graph of internal workspace dependencies.

    Attributes:
        packages: Map of package name → PackageNode.
        edges: Dependent → sorted list of its ordering dependencies.
        reverse_edges: Dependency → sorted list of its dependents.
    """

    packages: dict[str, PackageNode] = field(default_factory=dict)
    edges: dict[str, list[str]] = field(default_factory=dict)
    reverse_edges: dict[str, list[str]] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.packages)

    def __contains__(self, name: object) -> bool:
        return name in self.packages

    @property
    def names(self) -> list[str]:
        return sorted(self.packages)

    def dependents_of(self, name: str) -> list[str]:
        """Every package with an internal dependency on ``name``.

        Includes development-only dependents, whose requirements still
        need rewriting when ``name`` changes version.
        """
        return self.packages[name].dependents


def build_graph(packages: dict[str, PackageNode]) -> DependencyGraph:
    """Build the graph and fill in each node's ``dependents``.

    Raises:
        CycleError: If the ordering edges contain a cycle.
    """
    graph = DependencyGraph()
    for name, node in packages.items():
        graph.packages[name] = node
        graph.edges[name] = []
        graph.reverse_edges[name] = []
        node.dependents = []

    for name, node in packages.items():
        for edge in node.dependencies:
            if edge.name not in packages:
                continue
            packages[edge.name].dependents.append(name)
            if edge.ordering:
                graph.edges[name].append(edge.name)
                graph.reverse_edges[edge.name].append(name)

    for name, node in packages.items():
        graph.edges[name].sort()
        graph.reverse_edges[name].sort()
        node.dependents.sort()

    cycle = find_cycle(graph)
    if cycle:
        raise CycleError(cycle)

    logger.debug(
        "built_dependency_graph",
        packages=len(graph),
        edges=sum(len(deps) for deps in graph.edges.values()),
    )
    return graph


def find_cycle(graph: DependencyGraph) -> list[str] | None:
    """Return one dependency cycle as a closed path, or None if acyclic.

    Iterative depth-first search with an explicit stack of
    ``(node, next-neighbour-index)`` frames and an on-stack set. A back
    edge to a node still on the stack closes a cycle.

    Example:
        a → b → c → a gives ["a", "b", "c", "a"]
    """
    done: set[str] = set()
    for start in graph.names:
        if start in done:
            continue
        stack: list[tuple[str, int]] = [(start, 0)]
        path: list[str] = [start]
        on_stack: set[str] = {start}
        while stack:
            node, index = stack[-1]
            neighbours = graph.edges[node]
            if index == len(neighbours):
                stack.pop()
                path.pop()
                on_stack.discard(node)
                done.add(node)
                continue
            stack[-1] = (node, index + 1)
            nxt = neighbours[index]
            if nxt in on_stack:
                return path[path.index(nxt):] + [nxt]
            if nxt not in done:
                stack.append((nxt, 0))
                path.append(nxt)
                on_stack.add(nxt)
    return None


def topo_sort(graph: DependencyGraph) -> list[str]:
    """Topologically sort packages by their internal dependencies.

    Uses Kahn's algorithm; among packages that are ready at the same
    time, the alphabetically smallest goes first, so the order is stable
    across runs.

    Returns:
        Package names, dependencies before dependents.

    Raises:
        CycleError: If a dependency cycle is detected.

    Example:
        If A depends on B, and B depends on C:
        topo_sort(graph) → [C, B, A]
    """
    in_degree = {name: len(deps) for name, deps in graph.edges.items()}
    ready = sorted(name for name, degree in in_degree.items() if degree == 0)
    order: list[str] = []

    while ready:
        node = ready.pop(0)
        order.append(node)
        for dependent in graph.reverse_edges[node]:
            in_degree[dependent] -= 1
            if in_degree[dependent] == 0:
                ready.append(dependent)
        ready.sort()

    if len(order) != len(graph):
        raise CycleError(find_cycle(graph) or sorted(set(graph.packages) - set(order)))
    return order


def topo_levels(graph: DependencyGraph) -> list[list[str]]:
    """Group packages into levels for display.

    Level 0 holds packages with no internal dependencies; level N holds
    packages whose dependencies all sit in levels below N.
    """
    level: dict[str, int] = {}
    for name in topo_sort(graph):
        deps = graph.edges[name]
        level[name] = 1 + max((level[d] for d in deps), default=-1)

    levels: list[list[str]] = [[] for _ in range(max(level.values(), default=-1) + 1)]
    for name in sorted(level):
        levels[level[name]].append(name)
    return levels


"""Tests for cvm.graph."""

from __future__ import annotations

from pathlib import Path

import pytest

from cvm.errors import CycleError
from cvm.graph import DependencyGraph, build_graph, find_cycle, topo_levels, topo_sort
from cvm.models import DependencyEdge, PackageNode


def node(name: str, deps: tuple[str, ...] = (), dev: tuple[str, ...] = ()) -> PackageNode:
    return PackageNode(
        name=name,
        version="1.0.0",
        path=name,
        manifest_path=Path("/ws") / name / "Cargo.toml",
        dependencies=[DependencyEdge(name=d) for d in deps]
        + [DependencyEdge(name=d, ordering=False) for d in dev],
    )


def graph_of(*nodes: PackageNode) -> DependencyGraph:
    return build_graph({n.name: n for n in nodes})


class TestBuildGraph:
    def test_edges_and_reverse_edges(self) -> None:
        graph = graph_of(node("a", ("b",)), node("b", ("c",)), node("c"))
        assert graph.edges == {"a": ["b"], "b": ["c"], "c": []}
        assert graph.reverse_edges == {"a": [], "b": ["a"], "c": ["b"]}

    def test_fills_dependents(self) -> None:
        graph = graph_of(node("top", ("lib",)), node("app", ("lib",)), node("lib"))
        assert graph.packages["lib"].dependents == ["app", "top"]

    def test_dev_edges_are_dependents_but_not_ordering(self) -> None:
        graph = graph_of(node("app", dev=("kit",)), node("kit"))
        assert graph.edges["app"] == []
        assert graph.dependents_of("kit") == ["app"]

    def test_dev_edges_do_not_form_cycles(self) -> None:
        graph = graph_of(node("core", dev=("kit",)), node("kit", ("core",)))
        assert topo_sort(graph) == ["core", "kit"]

    def test_cycle_raises_with_path(self) -> None:
        with pytest.raises(CycleError) as exc_info:
            graph_of(node("a", ("b",)), node("b", ("c",)), node("c", ("a",)))
        assert exc_info.value.cycle == ["a", "b", "c", "a"]
        assert "a → b → c → a" in str(exc_info.value)

    def test_self_cycle(self) -> None:
        with pytest.raises(CycleError):
            graph_of(node("a", ("a",)))

    def test_unknown_dependency_ignored(self) -> None:
        graph = graph_of(node("a", ("external",)))
        assert graph.edges["a"] == []


class TestFindCycle:
    def test_acyclic(self) -> None:
        graph = DependencyGraph(
            packages={n: node(n) for n in "abc"},
            edges={"a": ["b"], "b": ["c"], "c": []},
        )
        assert find_cycle(graph) is None

    def test_cycle_behind_acyclic_prefix(self) -> None:
        graph = DependencyGraph(
            packages={n: node(n) for n in "abcd"},
            edges={"a": ["b"], "b": ["c"], "c": ["d"], "d": ["c"]},
        )
        assert find_cycle(graph) == ["c", "d", "c"]

    def test_deep_chain_does_not_recurse(self) -> None:
        names = [f"p{i:05d}" for i in range(5000)]
        edges = {name: [names[i + 1]] if i + 1 < len(names) else [] for i, name in enumerate(names)}
        graph = DependencyGraph(packages={n: node(n) for n in names}, edges=edges)
        assert find_cycle(graph) is None


class TestTopoSort:
    def test_no_deps_alphabetical(self) -> None:
        assert topo_sort(graph_of(node("c"), node("a"), node("b"))) == ["a", "b", "c"]

    def test_linear(self) -> None:
        graph = graph_of(node("a", ("b",)), node("b", ("c",)), node("c"))
        assert topo_sort(graph) == ["c", "b", "a"]

    def test_diamond(self) -> None:
        graph = graph_of(
            node("top", ("left", "right")),
            node("left", ("bottom",)),
            node("right", ("bottom",)),
            node("bottom"),
        )
        assert topo_sort(graph) == ["bottom", "left", "right", "top"]

    def test_ties_broken_by_name(self) -> None:
        graph = graph_of(node("z"), node("y", ("z",)), node("a", ("z",)), node("m"))
        assert topo_sort(graph) == ["m", "z", "a", "y"]

    def test_empty(self) -> None:
        assert topo_sort(DependencyGraph()) == []

    def test_cycle_raises(self) -> None:
        graph = DependencyGraph(
            packages={n: node(n) for n in "ab"},
            edges={"a": ["b"], "b": ["a"]},
            reverse_edges={"a": ["b"], "b": ["a"]},
        )
        with pytest.raises(CycleError):
            topo_sort(graph)


class TestTopoLevels:
    def test_levels(self) -> None:
        graph = graph_of(
            node("app", ("plugin",)),
            node("plugin", ("core",)),
            node("tool", ("core",)),
            node("core"),
            node("solo"),
        )
        assert topo_levels(graph) == [["core", "solo"], ["plugin", "tool"], ["app"]]

    def test_empty(self) -> None:
        assert topo_levels(DependencyGraph()) == []

"""Tests for the dependency graph — include edges and artifact invalidation."""

from __future__ import annotations

import pytest

from folio._errors import CyclicDependencyError
from folio.reactive.graph import DependencyGraph


@pytest.fixture
def graph() -> DependencyGraph:
    """index includes nothing, two pages share a partial, one nests it."""
    g = DependencyGraph()
    g.register("index.md", {"index.html"}, ())
    g.register("a.md", {"a/index.html"}, ("_shared.md",))
    g.register("b.md", {"b/index.html"}, ("_wrapper.md",))
    g.register("_wrapper.md", (), ("_shared.md",))
    g.register("_shared.md", (), ())
    return g


class TestRegister:
    def test_produces_and_producer(self, graph: DependencyGraph) -> None:
        assert graph.produces_of("a.md") == frozenset({"a/index.html"})
        assert graph.producer_of("a/index.html") == "a.md"
        assert graph.produces_of("_shared.md") == frozenset()

    def test_reverse_edges(self, graph: DependencyGraph) -> None:
        assert graph.included_by("_shared.md") == frozenset({"a.md", "_wrapper.md"})
        assert graph.included_by("index.md") == frozenset()

    def test_reregister_replaces_edges(self, graph: DependencyGraph) -> None:
        graph.register("a.md", {"a/index.html"}, ())
        assert graph.included_by("_shared.md") == frozenset({"_wrapper.md"})
        assert graph.includes_of("a.md") == ()

    def test_duplicate_includes_collapse(self) -> None:
        g = DependencyGraph()
        g.register("a.md", {"a.html"}, ("p.md", "p.md"))
        assert g.includes_of("a.md") == ("p.md",)

    def test_sources_and_artifacts_sorted(self, graph: DependencyGraph) -> None:
        assert graph.sources == ["_shared.md", "_wrapper.md", "a.md", "b.md", "index.md"]
        assert graph.artifacts == ["a/index.html", "b/index.html", "index.html"]
        assert len(graph) == 5
        assert "a.md" in graph

    def test_unregister_keeps_incoming_edges(self, graph: DependencyGraph) -> None:
        produced = graph.unregister("_shared.md")
        assert produced == frozenset()
        assert "_shared.md" not in graph
        # a.md still includes it; recreating the partial must rebuild a.md.
        assert graph.included_by("_shared.md") == frozenset({"a.md", "_wrapper.md"})

    def test_unregister_returns_products(self, graph: DependencyGraph) -> None:
        assert graph.unregister("a.md") == frozenset({"a/index.html"})
        assert graph.producer_of("a/index.html") is None

    def test_clear(self, graph: DependencyGraph) -> None:
        graph.clear()
        assert len(graph) == 0
        assert graph.artifacts == []


class TestAffected:
    def test_page_affects_itself(self, graph: DependencyGraph) -> None:
        assert graph.affected(["index.md"]) == ["index.html"]

    def test_partial_affects_transitive_includers(self, graph: DependencyGraph) -> None:
        assert graph.affected(["_shared.md"]) == ["a/index.html", "b/index.html"]

    def test_unknown_source_affects_nothing(self, graph: DependencyGraph) -> None:
        assert graph.affected(["nope.md"]) == []

    def test_batched_equals_union(self, graph: DependencyGraph) -> None:
        batched = set(graph.affected(["index.md", "_wrapper.md"]))
        single = set(graph.affected(["index.md"])) | set(graph.affected(["_wrapper.md"]))
        assert batched == single

    def test_dependents_include_changed(self, graph: DependencyGraph) -> None:
        assert graph.dependents(["_wrapper.md"]) == {"_wrapper.md", "b.md"}


class TestCycles:
    @pytest.fixture
    def cyclic(self) -> DependencyGraph:
        g = DependencyGraph()
        g.register("a.md", {"a/index.html"}, ("b.md",))
        g.register("b.md", {"b/index.html"}, ("a.md",))
        g.register("c.md", {"c/index.html"}, ())
        return g

    def test_affected_raises(self, cyclic: DependencyGraph) -> None:
        with pytest.raises(CyclicDependencyError) as exc_info:
            cyclic.affected(["a.md"])
        cycle = exc_info.value.cycle
        assert cycle[0] == cycle[-1]
        assert set(cycle) == {"a.md", "b.md"}

    def test_unrelated_source_unaffected(self, cyclic: DependencyGraph) -> None:
        assert cyclic.affected(["c.md"]) == ["c/index.html"]

    def test_reachable_dependents_tolerates_cycle(self, cyclic: DependencyGraph) -> None:
        assert cyclic.reachable_dependents(["a.md"]) == {"a.md", "b.md"}

    def test_in_cycle(self, cyclic: DependencyGraph) -> None:
        assert cyclic.in_cycle("a.md")
        assert not cyclic.in_cycle("c.md")

    def test_self_include(self) -> None:
        g = DependencyGraph()
        g.register("a.md", {"a/index.html"}, ("a.md",))
        assert g.in_cycle("a.md")
        with pytest.raises(CyclicDependencyError):
            g.affected(["a.md"])

    def test_include_closure(self, graph: DependencyGraph) -> None:
        assert graph.include_closure("b.md") == {"_wrapper.md", "_shared.md"}

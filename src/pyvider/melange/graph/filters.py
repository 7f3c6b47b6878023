"""
Pure, composable reductions of a `DependencyGraph`.

Every filter returns a new graph and leaves its input untouched. Filters
compose by sequential application. A later filter sees the edges an earlier
one rewrote rather than the original ones, so callers state the order they
apply them in.
"""

from collections.abc import Callable
from typing import Any

import networkx as nx

from ..exceptions import FilterInvariantViolation
from .corpus import Corpus
from .dag import DependencyGraph, node_key

GraphFilter = Callable[[DependencyGraph], DependencyGraph]
NodePredicate = Callable[[str, dict[str, Any]], bool]

_REQUIRED_NODE_DATA = ("package", "artifact")


def check_invariants(graph: DependencyGraph) -> DependencyGraph:
    """Fails if any edge points at a node the graph does not describe."""
    g = graph.graph
    for source, target in g.edges:
        for endpoint in (source, target):
            data = g.nodes[endpoint]
            if any(name not in data for name in _REQUIRED_NODE_DATA):
                raise FilterInvariantViolation(
                    f"Edge {source} -> {target} has a dangling endpoint {endpoint}"
                )
    return graph


def filter_graph(graph: DependencyGraph, predicate: NodePredicate) -> DependencyGraph:
    """Keeps the nodes satisfying `predicate`; edges touching any other node are dropped."""
    keep = [key for key, data in graph.graph.nodes(data=True) if predicate(key, data)]
    return check_invariants(DependencyGraph(graph.graph.subgraph(keep).copy()))


def filter_local(graph: DependencyGraph) -> DependencyGraph:
    return filter_graph(graph, lambda key, data: bool(data.get("local")))


def only_main_packages(corpus: Corpus) -> GraphFilter:
    def apply(graph: DependencyGraph) -> DependencyGraph:
        return filter_main_packages_only(graph, corpus)

    return apply


def filter_main_packages_only(graph: DependencyGraph, corpus: Corpus) -> DependencyGraph:
    """
    Keeps only the main package of each config in `corpus`.

    Edges that started or ended at a subpackage are moved onto the owning
    main package. Edges that would become self-loops, or whose endpoint has
    no main package in the result, are dropped.
    """
    source_graph = graph.graph
    reduced = nx.DiGraph()

    def owner(key: str) -> str | None:
        package = source_graph.nodes[key].get("package")
        if package is None or package not in corpus:
            return None
        return node_key(package, package)

    for key, data in source_graph.nodes(data=True):
        if data.get("package") in corpus and data.get("artifact") == data.get("package"):
            reduced.add_node(key, **{**data, "main": True})

    for source, target in source_graph.edges:
        new_source, new_target = owner(source), owner(target)
        if new_source is None or new_target is None or new_source == new_target:
            continue
        if new_source not in reduced or new_target not in reduced:
            continue
        reduced.add_edge(new_source, new_target)

    return check_invariants(DependencyGraph(reduced))


def apply_filters(graph: DependencyGraph, *filters: GraphFilter) -> DependencyGraph:
    for graph_filter in filters:
        graph = graph_filter(graph)
    return graph

"""The package dependency graph, keyed by `<package>:<artifact>`."""

from collections.abc import Iterable
from pathlib import Path
from typing import Any, Self

import networkx as nx

from pyvider.telemetry import logger

from ..config import ProviderOpts
from ..exceptions import EmptyCorpus
from .corpus import Corpus, normalize_dependency


def node_key(package: str, artifact: str) -> str:
    return f"{package}:{artifact}"


class DependencyGraph:
    """
    A directed graph where an edge `A -> B` means A needs B built first.

    Acyclicity is not enforced; callers that need a build order should
    check for cycles themselves (e.g. with `networkx.is_directed_acyclic_graph`).
    """

    def __init__(self, graph: nx.DiGraph | None = None) -> None:
        self.graph: nx.DiGraph = graph if graph is not None else nx.DiGraph()

    def __len__(self) -> int:
        return self.graph.number_of_nodes()

    def __contains__(self, key: object) -> bool:
        return key in self.graph

    def nodes(self) -> list[str]:
        return sorted(self.graph.nodes)

    def edges(self) -> list[tuple[str, str]]:
        return sorted(self.graph.edges)

    def node(self, key: str) -> dict[str, Any]:
        return dict(self.graph.nodes[key])

    def adjacency(self) -> dict[str, set[str]]:
        return {key: set(self.graph.successors(key)) for key in self.graph.nodes}

    def dependencies(self, key: str) -> set[str]:
        """Every node `key` needs, directly or transitively."""
        return set(nx.descendants(self.graph, key))

    def ancestors(self, key: str) -> set[str]:
        """Every node that needs `key`, directly or transitively."""
        return set(nx.ancestors(self.graph, key))

    def copy(self) -> Self:
        return type(self)(self.graph.copy())

    def add_node(
        self, package: str, artifact: str, *, local: bool, main: bool, **attrs: Any
    ) -> str:
        key = node_key(package, artifact)
        if key not in self.graph:
            self.graph.add_node(
                key, package=package, artifact=artifact, local=local, main=main, **attrs
            )
        return key

    @classmethod
    def from_corpus(
        cls,
        corpus: Corpus,
        repositories: Iterable[str] = (),
        keyring: Iterable[str] = (),
    ) -> Self:
        if len(corpus) == 0:
            where = f" in {corpus.root}" if corpus.root else ""
            raise EmptyCorpus(f"no packages found{where}")

        repositories = tuple(repositories)
        keyring = tuple(keyring)
        dag = cls()

        for config in corpus.packages():
            dag.add_node(config.name, config.name, local=True, main=True)
            for subpackage in config.subpackages:
                dag.add_node(config.name, subpackage.name, local=True, main=False)

        def need(source: str, dep: str) -> None:
            name = normalize_dependency(dep)
            if not name:
                return
            resolved = corpus.resolve(name)
            if resolved is not None:
                target = node_key(*resolved)
            else:
                target = dag.add_node(
                    name,
                    name,
                    local=False,
                    main=True,
                    repositories=repositories,
                    keyring=keyring,
                )
            if target != source:
                dag.graph.add_edge(source, target)

        for config in corpus.packages():
            main_key = node_key(config.name, config.name)
            for dep in corpus.build_needs(config):
                need(main_key, dep)
            for dep in config.package.dependencies.runtime:
                need(main_key, dep)
            for subpackage in config.subpackages:
                sub_key = node_key(config.name, subpackage.name)
                dag.graph.add_edge(sub_key, main_key)
                for dep in subpackage.dependencies.runtime:
                    need(sub_key, dep)

        logger.info(
            f"Built dependency graph with {dag.graph.number_of_nodes()} nodes "
            f"and {dag.graph.number_of_edges()} edges"
        )
        return dag


def build_graph(corpus: Corpus | Path, opts: ProviderOpts | None = None) -> DependencyGraph:
    """Builds the unfiltered graph of a corpus, loading it first if given a directory."""
    if not isinstance(corpus, Corpus):
        corpus = Corpus.load(Path(corpus))
    opts = opts or ProviderOpts()
    return DependencyGraph.from_corpus(corpus, opts.repositories, opts.keyring)

"""Projects a dependency graph into the `package -> [needs]` view callers consume."""

from pathlib import Path

from attrs import define

from pyvider.telemetry import logger

from ..config import ProviderOpts
from ..hashing import compute_identity
from .corpus import Corpus
from .dag import DependencyGraph
from .filters import GraphFilter, apply_filters, filter_local, only_main_packages


@define(frozen=True)
class GraphQueryResult:
    deps: dict[str, list[str]]
    identity: str


def short_name(key: str) -> str:
    return key.split(":", 1)[0]


def project_adjacency(graph: DependencyGraph) -> dict[str, list[str]]:
    """Maps each node's short name to the sorted short names it directly needs."""
    merged: dict[str, set[str]] = {}
    for key, targets in graph.adjacency().items():
        name = short_name(key)
        needs = merged.setdefault(name, set())
        needs.update(short_name(t) for t in targets if short_name(t) != name)
    return {name: sorted(merged[name]) for name in sorted(merged)}


def graph_identity(deps: dict[str, list[str]]) -> str:
    return compute_identity(deps)


def query_graph(
    corpus_dir: Path | None = None,
    opts: ProviderOpts | None = None,
    local_only: bool = True,
    main_only: bool = True,
) -> GraphQueryResult:
    opts = opts or ProviderOpts()
    corpus_dir = Path(corpus_dir) if corpus_dir is not None else opts.dir
    logger.debug(f"dir: {corpus_dir}")

    corpus = Corpus.load(corpus_dir)
    graph = DependencyGraph.from_corpus(corpus, opts.repositories, opts.keyring)
    logger.debug(f"configs: {corpus.package_names()}")

    # Drop externally resolved nodes first, then fold subpackages into the
    # configs that emit them.
    filters: list[GraphFilter] = []
    if local_only:
        filters.append(filter_local)
    if main_only:
        filters.append(only_main_packages(corpus))
    graph = apply_filters(graph, *filters)

    deps = project_adjacency(graph)
    return GraphQueryResult(deps=deps, identity=graph_identity(deps))

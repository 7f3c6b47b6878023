# pyvider/src/pyvider/melange/__init__.py
"""
This package reconciles melange package definitions against the artifacts
built from them, and computes the dependency graph of a corpus of definitions.
"""

from .build.reconciler import Reconciler, ReconcileResult, reconcile
from .config import ProviderOpts, load_config, load_config_file
from .graph.query import GraphQueryResult, query_graph
from .hashing import compute_identity
from .models import Architecture, PackageConfig

__all__ = [
    "Architecture",
    "GraphQueryResult",
    "PackageConfig",
    "ProviderOpts",
    "ReconcileResult",
    "Reconciler",
    "compute_identity",
    "load_config",
    "load_config_file",
    "query_graph",
    "reconcile",
]

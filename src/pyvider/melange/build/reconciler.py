"""Brings built artifacts in line with a declared package configuration."""

import asyncio
from collections.abc import Iterable

from attrs import define

from pyvider.telemetry import logger

from ..config import ProviderOpts
from ..hashing import compute_identity
from ..models import Architecture, BuildPlan, PackageConfig
from .dispatcher import BuildDispatcher
from .engine import BuildEngine, MelangeEngine
from .planner import ArchitecturePlanner


@define(frozen=True)
class ReconcileResult:
    identity: str
    plans: tuple[BuildPlan, ...]
    built: tuple[Architecture, ...]
    skipped: tuple[Architecture, ...]


class Reconciler:
    def __init__(
        self,
        opts: ProviderOpts,
        engine: BuildEngine | None = None,
        max_concurrency: int | None = None,
    ) -> None:
        self.opts = opts
        self.engine = engine or MelangeEngine(opts.melange)
        self.planner = ArchitecturePlanner(opts)
        self.dispatcher = BuildDispatcher(self.engine, max_concurrency)

    async def reconcile(
        self,
        config: PackageConfig,
        archs: Iterable[str | Architecture] | None = None,
        force: bool = False,
    ) -> ReconcileResult:
        # Identity and planning errors surface before any build is attempted.
        identity = compute_identity(config)
        plans = tuple(self.planner.plan(config, archs, force=force))
        logger.info(
            f"Reconciling {config.name}-{config.package.full_version}",
            identity=identity,
            build=[str(p.arch) for p in plans if p.needs_build],
            skip=[str(p.arch) for p in plans if not p.needs_build],
        )
        result = await self.dispatcher.dispatch(config.name, plans)
        return ReconcileResult(
            identity=identity, plans=plans, built=result.built, skipped=result.skipped
        )


def reconcile(
    config: PackageConfig,
    opts: ProviderOpts,
    engine: BuildEngine | None = None,
    archs: Iterable[str | Architecture] | None = None,
    force: bool = False,
    max_concurrency: int | None = None,
) -> ReconcileResult:
    """Synchronous entry point for callers without a running event loop."""
    reconciler = Reconciler(opts, engine, max_concurrency)
    return asyncio.run(reconciler.reconcile(config, archs, force=force))

"""Runs planned architecture builds concurrently and aggregates their failures."""

import asyncio
from collections.abc import Sequence
import contextlib

from attrs import define

from pyvider.telemetry import logger

from ..exceptions import BuildFailed
from ..models import Architecture, BuildPlan
from .engine import BuildEngine


@define(frozen=True)
class DispatchResult:
    built: tuple[Architecture, ...] = ()
    skipped: tuple[Architecture, ...] = ()


class BuildDispatcher:
    """
    Invokes the build engine once per architecture that needs a build.

    Architectures are independent: each task writes only to its own
    `<out_dir>/<arch>/` directory, so no ordering or locking is required.
    A failing architecture never cancels its siblings. Once every task has
    settled, all failures are raised together as `BuildFailed`.
    """

    def __init__(self, engine: BuildEngine, max_concurrency: int | None = None) -> None:
        if max_concurrency is not None and max_concurrency < 1:
            raise ValueError("max_concurrency must be a positive integer")
        self.engine = engine
        self.max_concurrency = max_concurrency

    async def dispatch(self, package: str, plans: Sequence[BuildPlan]) -> DispatchResult:
        to_build = [plan for plan in plans if plan.needs_build]
        skipped = tuple(plan.arch for plan in plans if not plan.needs_build)
        if not to_build:
            logger.info(f"Nothing to build for '{package}'")
            return DispatchResult(skipped=skipped)

        semaphore = (
            asyncio.Semaphore(self.max_concurrency) if self.max_concurrency else None
        )

        async def run(plan: BuildPlan) -> None:
            limiter = semaphore if semaphore is not None else contextlib.nullcontext()
            async with limiter:
                logger.info(f"Building {package} for {plan.arch}")
                await self.engine.build(package, plan.options)
                logger.info(f"Built {plan.artifact_path}")

        results = await asyncio.gather(
            *(run(plan) for plan in to_build), return_exceptions=True
        )

        failures: dict[Architecture, BaseException] = {}
        built: list[Architecture] = []
        for plan, result in zip(to_build, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                logger.error(f"Build of {package} for {plan.arch} failed", error=str(result))
                failures[plan.arch] = result
            else:
                built.append(plan.arch)

        if failures:
            raise BuildFailed(package, failures, succeeded=tuple(built))
        return DispatchResult(built=tuple(built), skipped=skipped)

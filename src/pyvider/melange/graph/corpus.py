"""Loads every melange definition (and shared pipeline) found under a directory."""

from collections.abc import Iterator
import os
from pathlib import Path
import re
from typing import Any, Self

import yaml

from pyvider.telemetry import logger

from ..config import load_yaml
from ..exceptions import ConfigInvalid, GraphConstructionError
from ..models import PackageConfig

DEFINITION_SUFFIXES = (".yaml", ".yml")
SKIPPED_DIRS = frozenset({"packages", "melange-cache"})

_CONSTRAINT = re.compile(r"[<>=~]")


def normalize_dependency(dep: str) -> str:
    """Strips a version constraint, so `foo>=1.2` becomes `foo`."""
    return _CONSTRAINT.split(dep, maxsplit=1)[0].strip()


def _read_yaml(path: Path) -> Any:
    try:
        return load_yaml(path.read_text())
    except (OSError, yaml.YAMLError) as e:
        raise GraphConstructionError(f"Failed to load {path}: {e}") from e


def _definition_files(root: Path, skip: set[Path]) -> Iterator[Path]:
    for dirpath, dirnames, filenames in os.walk(root):
        current = Path(dirpath)
        dirnames[:] = sorted(
            name
            for name in dirnames
            if not name.startswith(".")
            and name not in SKIPPED_DIRS
            and (current / name).resolve() not in skip
        )
        for filename in sorted(filenames):
            if filename.endswith(DEFINITION_SUFFIXES):
                yield current / filename


class Corpus:
    """
    The universe of package definitions used to build a dependency graph.

    Besides the definitions themselves, the corpus knows which local config
    provides each artifact name (main package, subpackage or `provides:`
    entry), and which packages each shared pipeline needs.
    """

    def __init__(
        self,
        configs: dict[str, PackageConfig],
        pipelines: dict[str, tuple[str, ...]] | None = None,
        root: Path | None = None,
    ) -> None:
        self.root = root
        self._configs = dict(sorted(configs.items()))
        self._pipelines = dict(pipelines or {})
        self._artifacts: dict[str, tuple[str, str]] = {}
        for config in self._configs.values():
            self._index(config)

    def _index(self, config: PackageConfig) -> None:
        owner = config.name
        entries = [(owner, owner)]
        entries += [(normalize_dependency(p), owner) for p in config.package.dependencies.provides]
        for subpackage in config.subpackages:
            entries.append((subpackage.name, subpackage.name))
            entries += [
                (normalize_dependency(p), subpackage.name)
                for p in subpackage.dependencies.provides
            ]
        for name, artifact in entries:
            existing = self._artifacts.get(name)
            if existing is not None and existing != (owner, artifact):
                logger.debug(
                    f"'{name}' is provided by both {existing[0]} and {owner}; keeping {existing[0]}"
                )
                continue
            self._artifacts[name] = (owner, artifact)

    @classmethod
    def load(cls, directory: Path, pipeline_dir: Path | None = None) -> Self:
        directory = Path(directory)
        if not directory.is_dir():
            raise GraphConstructionError(f"Corpus directory {directory} does not exist")
        pipeline_dir = Path(pipeline_dir) if pipeline_dir else directory / "pipelines"

        configs: dict[str, PackageConfig] = {}
        for path in _definition_files(directory, {pipeline_dir.resolve()}):
            data = _read_yaml(path)
            if not isinstance(data, dict) or not isinstance(data.get("package"), dict):
                continue
            try:
                config = PackageConfig.from_dict(data, source_path=path)
            except ConfigInvalid as e:
                raise GraphConstructionError(f"Invalid package definition {path}: {e}") from e
            if config.name in configs:
                raise GraphConstructionError(
                    f"Package '{config.name}' is defined by both "
                    f"{configs[config.name].source_path} and {path}"
                )
            configs[config.name] = config

        pipelines: dict[str, tuple[str, ...]] = {}
        if pipeline_dir.is_dir():
            for path in sorted(pipeline_dir.rglob("*")):
                if path.suffix not in DEFINITION_SUFFIXES or not path.is_file():
                    continue
                data = _read_yaml(path)
                if not isinstance(data, dict):
                    continue
                needs = (data.get("needs") or {}).get("packages") or []
                uses = [
                    step["uses"]
                    for step in data.get("pipeline") or []
                    if isinstance(step, dict) and step.get("uses")
                ]
                key = path.relative_to(pipeline_dir).with_suffix("").as_posix()
                pipelines[key] = tuple(str(n) for n in needs) + tuple(f"uses:{u}" for u in uses)

        logger.info(
            f"Loaded {len(configs)} package definitions from {directory}",
            pipelines=len(pipelines),
        )
        return cls(configs, pipelines, root=directory)

    def __len__(self) -> int:
        return len(self._configs)

    def __contains__(self, name: object) -> bool:
        return name in self._configs

    def packages(self) -> list[PackageConfig]:
        return list(self._configs.values())

    def package_names(self) -> list[str]:
        return list(self._configs)

    def config(self, name: str) -> PackageConfig:
        return self._configs[name]

    def resolve(self, name: str) -> tuple[str, str] | None:
        """Returns `(owning config, artifact)` for a locally provided name."""
        return self._artifacts.get(normalize_dependency(name))

    def provided_by(self, name: str) -> str | None:
        resolved = self.resolve(name)
        return resolved[0] if resolved else None

    def pipeline_needs(self, uses: str) -> list[str]:
        needs: list[str] = []
        pending, seen = [uses], set()
        while pending:
            current = pending.pop()
            if current in seen:
                continue
            seen.add(current)
            for entry in self._pipelines.get(current, ()):
                if entry.startswith("uses:"):
                    pending.append(entry.removeprefix("uses:"))
                elif entry not in needs:
                    needs.append(entry)
        return needs

    def build_needs(self, config: PackageConfig) -> list[str]:
        """Build-time needs: environment packages plus whatever its pipelines need."""
        needs = list(config.environment.contents.packages)
        for step in config.walk_pipeline():
            extra = list(step.needs)
            if step.uses:
                extra += self.pipeline_needs(step.uses)
            needs += [n for n in extra if n not in needs]
        return needs

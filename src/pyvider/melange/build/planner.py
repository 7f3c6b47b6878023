"""Decides, per architecture, whether a package needs building and with which options."""

from collections.abc import Iterable
import enum
from pathlib import Path

import yaml

from pyvider.telemetry import logger

from ..config import ProviderOpts
from ..exceptions import ConfigInvalid, PlanningError
from ..hashing import compute_identity
from ..models import (
    Architecture,
    BuildOptions,
    BuildPlan,
    PackageConfig,
    PlanAction,
    parse_architectures,
)


class Presence(enum.Enum):
    PRESENT = "present"
    ABSENT = "absent"
    ERROR = "error"


def probe(path: Path, directory: bool = False) -> tuple[Presence, OSError | None]:
    """Checks whether a file (or directory) exists without conflating absence and failure."""
    try:
        is_match = path.is_dir() if directory else path.is_file()
        if not is_match:
            path.stat()
    except (FileNotFoundError, NotADirectoryError):
        return Presence.ABSENT, None
    except OSError as e:
        return Presence.ERROR, e
    return (Presence.PRESENT if is_match else Presence.ABSENT), None


def artifact_path(out_dir: Path, config: PackageConfig, arch: Architecture) -> Path:
    return out_dir / arch.apk_name / config.package.artifact_name


class ArchitecturePlanner:
    """
    Plans one package's builds against provider defaults.

    An architecture is skipped when its artifact already exists under
    `<out_dir>/<arch>/` and no forced rebuild was requested. Every other
    architecture gets a fully resolved `BuildOptions`.
    """

    def __init__(self, opts: ProviderOpts) -> None:
        self.opts = opts

    def target_archs(
        self, config: PackageConfig, archs: Iterable[str | Architecture] | None = None
    ) -> tuple[Architecture, ...]:
        if archs is not None:
            return parse_architectures(archs)
        return config.environment.archs or self.opts.archs

    def plan(
        self,
        config: PackageConfig,
        archs: Iterable[str | Architecture] | None = None,
        force: bool = False,
    ) -> list[BuildPlan]:
        targets = self.target_archs(config, archs)
        if not targets:
            logger.info(f"No target architectures for '{config.name}', nothing to plan.")
            return []

        self._ensure_directories()

        decisions: list[tuple[Architecture, Path, PlanAction]] = []
        for arch in targets:
            apk_path = artifact_path(self.opts.out_dir, config, arch)
            action = self._decide(config, arch, apk_path, force)
            decisions.append((arch, apk_path, action))

        if not any(action is PlanAction.BUILD for _, _, action in decisions):
            return [BuildPlan(arch, action, apk_path) for arch, apk_path, action in decisions]

        config_file = self._config_file(config)
        plans = []
        for arch, apk_path, action in decisions:
            options = None
            if action is PlanAction.BUILD:
                options = self._resolve_options(config, arch, config_file)
            plans.append(BuildPlan(arch, action, apk_path, options))
        return plans

    def _decide(
        self, config: PackageConfig, arch: Architecture, apk_path: Path, force: bool
    ) -> PlanAction:
        presence, error = probe(apk_path)
        if presence is Presence.ERROR:
            raise PlanningError(
                f"Could not check for an existing artifact of '{config.name}' "
                f"for {arch} at {apk_path}: {error}"
            ) from error
        if presence is Presence.PRESENT and not force:
            logger.info(f"Skipping {apk_path}, already built")
            return PlanAction.SKIP
        if presence is Presence.PRESENT:
            logger.info(f"Forcing a rebuild of {apk_path}")
        else:
            logger.info(f"Will build {config.name} for {arch}")
        return PlanAction.BUILD

    def _ensure_directories(self) -> None:
        for directory in (self.opts.out_dir, self.opts.cache_dir):
            try:
                directory.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise ConfigInvalid(
                    f"Could not create required directory {directory}: {e}"
                ) from e

    def _config_file(self, config: PackageConfig) -> Path:
        """
        Writes the structured config where the build engine can read it.

        The file is always rendered from `config`, never copied from
        `config.source_path`.
        """
        identity = compute_identity(config)
        target = self.opts.cache_dir / "configs" / f"{config.name}-{identity[:12]}.yaml"
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(yaml.safe_dump(config.to_dict(), sort_keys=False))
        except OSError as e:
            raise PlanningError(
                f"Could not persist the configuration of '{config.name}' to {target}: {e}"
            ) from e
        logger.debug(f"Persisted melange config for '{config.name}'", path=str(target))
        return target

    def _optional(
        self, config: PackageConfig, path: Path, what: str, directory: bool = False
    ) -> Path | None:
        presence, error = probe(path, directory=directory)
        if presence is Presence.ERROR:
            raise PlanningError(
                f"Could not check the {what} of '{config.name}' at {path}: {error}"
            ) from error
        return path if presence is Presence.PRESENT else None

    def _resolve_options(
        self, config: PackageConfig, arch: Architecture, config_file: Path
    ) -> BuildOptions:
        opts = self.opts
        contents = config.environment.contents
        options = BuildOptions(
            arch=arch,
            config_file=config_file,
            pipeline_dir=opts.pipeline_dir,
            out_dir=opts.out_dir,
            cache_dir=opts.cache_dir,
            repositories=tuple(r for r in opts.repositories if r not in contents.repositories),
            keyring=tuple(k for k in opts.keyring if k not in contents.keyring),
            runner=opts.runner or None,
            generate_index=opts.generate_index,
            source_dir=self._optional(
                config, opts.dir / config.name, "source directory", directory=True
            ),
            signing_key=self._optional(config, opts.signing_key_path, "signing key"),
            env_file=self._optional(
                config, opts.dir / f"build-{arch.apk_name}.env", "environment file"
            ),
            namespace=opts.namespace or None,
        )
        logger.debug(
            f"Resolved build options for {config.name} on {arch}",
            args=" ".join(options.to_args()),
        )
        return options

"""Provider-level defaults and the loader for melange definition text."""

from collections.abc import Iterable
from pathlib import Path
import tomllib
from typing import Any, Self

import attrs
from attrs import define, field
import yaml

from pyvider.telemetry import logger

from .exceptions import ConfigInvalid, ConfigParseError
from .hashing import content_identity
from .models import Architecture, PackageConfig, parse_architectures

DEFAULT_SIGNING_KEY = "local-melange.rsa"
DEFAULT_RUNNER = "docker"
DEFAULT_MELANGE = "melange"


@define(frozen=True)
class ProviderOpts:
    """Defaults shared by every build and graph request."""

    dir: Path = field(default=Path("."), converter=Path)
    repositories: tuple[str, ...] = field(default=(), converter=tuple)
    keyring: tuple[str, ...] = field(default=(), converter=tuple)
    archs: tuple[Architecture, ...] = field(default=(), converter=parse_architectures)
    signing_key: Path = field(default=Path(DEFAULT_SIGNING_KEY), converter=Path)
    runner: str = DEFAULT_RUNNER
    namespace: str = ""
    melange: str = DEFAULT_MELANGE
    generate_index: bool = True

    @property
    def pipeline_dir(self) -> Path:
        return self.dir / "pipelines"

    @property
    def out_dir(self) -> Path:
        return self.dir / "packages"

    @property
    def cache_dir(self) -> Path:
        return self.dir / "melange-cache"

    @property
    def signing_key_path(self) -> Path:
        if self.signing_key.is_absolute():
            return self.signing_key
        return self.dir / self.signing_key

    def evolve(self, **changes: Any) -> Self:
        """Returns a copy with every non-None override applied."""
        return attrs.evolve(
            self, **{key: value for key, value in changes.items() if value is not None}
        )

    @classmethod
    def from_pyproject(cls, pyproject_path: Path) -> Self:
        """Reads the [tool.pyvider.melange] table, falling back to defaults."""
        if not pyproject_path.exists():
            logger.debug(f"No manifest at {pyproject_path}, using provider defaults.")
            return cls()
        try:
            with pyproject_path.open("rb") as f:
                pyproject_data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigInvalid(f"Could not parse {pyproject_path}: {e}") from e

        conf = pyproject_data.get("tool", {}).get("pyvider", {}).get("melange", {})
        manifest_dir = pyproject_path.parent
        build_dir = manifest_dir / conf.get("dir", ".")
        return cls(
            dir=build_dir,
            repositories=conf.get("extra_repositories", []),
            keyring=conf.get("extra_keyring", []),
            archs=conf.get("default_archs", []),
            signing_key=conf.get("signing_key") or DEFAULT_SIGNING_KEY,
            runner=conf.get("runner") or DEFAULT_RUNNER,
            namespace=conf.get("namespace", ""),
            melange=conf.get("melange", DEFAULT_MELANGE),
            generate_index=bool(conf.get("generate_index", True)),
        )


_STR_TAG = "tag:yaml.org,2002:str"
_NUMERIC_TAGS = frozenset({"tag:yaml.org,2002:int", "tag:yaml.org,2002:float"})
_TIMESTAMP_TAG = "tag:yaml.org,2002:timestamp"


class DefinitionLoader(yaml.SafeLoader):
    """
    A safe loader that reads melange definitions the way melange does.

    Timestamps stay strings, and every `version:` scalar keeps its literal
    text, so `1.10` is not read back as the float `1.1`.
    """

    yaml_implicit_resolvers = {
        first: [(tag, regexp) for tag, regexp in resolvers if tag != _TIMESTAMP_TAG]
        for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
    }

    def construct_mapping(self, node: yaml.MappingNode, deep: bool = False) -> dict[Any, Any]:
        for key_node, value_node in node.value:
            if (
                isinstance(key_node, yaml.ScalarNode)
                and key_node.value == "version"
                and isinstance(value_node, yaml.ScalarNode)
                and value_node.tag in _NUMERIC_TAGS
            ):
                value_node.tag = _STR_TAG
        return super().construct_mapping(node, deep=deep)


def load_yaml(text: str) -> Any:
    """Parses definition or pipeline text with `DefinitionLoader`."""
    return yaml.load(text, Loader=DefinitionLoader)


@define(frozen=True)
class LoadedConfig:
    config: PackageConfig
    identity: str


def _merge(ours: Iterable[str], theirs: Iterable[str]) -> tuple[str, ...]:
    return tuple(sorted(set(ours) | set(theirs)))


def parse_config(text: str, source_path: Path | None = None) -> PackageConfig:
    try:
        data = load_yaml(text)
    except yaml.YAMLError as e:
        where = f" in {source_path}" if source_path else ""
        raise ConfigParseError(f"Unable to parse melange configuration{where}: {e}") from e
    return PackageConfig.from_dict(data, source_path=source_path)


def load_config(
    text: str, opts: ProviderOpts | None = None, source_path: Path | None = None
) -> LoadedConfig:
    """
    Parses definition text and folds the provider defaults into it.

    Provider repositories and keys are unioned with the ones the definition
    declares. Provider architectures, when any are configured, replace the
    definition's own list. The identity is derived from the raw text.
    """
    config = parse_config(text, source_path)
    if opts is not None:
        contents = attrs.evolve(
            config.environment.contents,
            repositories=_merge(config.environment.contents.repositories, opts.repositories),
            keyring=_merge(config.environment.contents.keyring, opts.keyring),
        )
        environment = attrs.evolve(
            config.environment,
            contents=contents,
            archs=opts.archs or config.environment.archs,
        )
        config = attrs.evolve(config, environment=environment)
    logger.debug(f"Loaded melange config for '{config.name}'", version=config.package.full_version)
    return LoadedConfig(config=config, identity=content_identity(text))


def load_config_file(path: Path, opts: ProviderOpts | None = None) -> LoadedConfig:
    try:
        text = path.read_text()
    except OSError as e:
        raise ConfigInvalid(f"Could not read melange configuration {path}: {e}") from e
    return load_config(text, opts, source_path=path)

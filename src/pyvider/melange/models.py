"""Structured melange configuration records and the build plan types."""

from collections.abc import Iterable, Mapping
import enum
from pathlib import Path
from typing import Any, Self

from attrs import define, field

from .exceptions import ConfigInvalid

APK_EXTENSION = "apk"
APK_INDEX_NAME = "APKINDEX.tar.gz"


class Architecture(enum.Enum):
    """Supported CPU architectures, as (OCI platform name, APK directory name)."""

    X86_64 = ("amd64", "x86_64")
    AARCH64 = ("arm64", "aarch64")
    X86 = ("386", "x86")
    ARMHF = ("arm/v6", "armhf")
    ARMV7 = ("arm/v7", "armv7")
    PPC64LE = ("ppc64le", "ppc64le")
    S390X = ("s390x", "s390x")
    RISCV64 = ("riscv64", "riscv64")
    LOONGARCH64 = ("loong64", "loongarch64")

    def __init__(self, oci_name: str, apk_name: str) -> None:
        self.oci_name = oci_name
        self.apk_name = apk_name

    def __str__(self) -> str:
        return self.apk_name

    @classmethod
    def parse(cls, value: "str | Architecture") -> "Architecture":
        if isinstance(value, cls):
            return value
        needle = str(value).strip().lower()
        for arch in cls:
            if needle in (arch.oci_name, arch.apk_name):
                return arch
        raise ConfigInvalid(f"Unsupported architecture: {value!r}")


def parse_architectures(values: Iterable[str | Architecture]) -> tuple[Architecture, ...]:
    """Parses architecture names, expanding "all" and dropping duplicates."""
    archs: list[Architecture] = []
    for value in values:
        if isinstance(value, str) and value.strip().lower() == "all":
            candidates: Iterable[Architecture] = Architecture
        else:
            candidates = (Architecture.parse(value),)
        for arch in candidates:
            if arch not in archs:
                archs.append(arch)
    return tuple(archs)


def _str_list(data: Mapping[str, Any], key: str, where: str) -> tuple[str, ...]:
    value = data.get(key) or []
    if isinstance(value, str) or not isinstance(value, Iterable):
        raise ConfigInvalid(f"'{where}.{key}' must be a list of strings.")
    return tuple(str(item) for item in value)


def _mapping(value: Any, where: str) -> Mapping[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigInvalid(f"'{where}' must be a mapping.")
    return value


def _extra(data: Mapping[str, Any], known: Iterable[str]) -> dict[str, Any]:
    known = set(known)
    return {key: value for key, value in data.items() if key not in known}


@define(frozen=True)
class Dependencies:
    runtime: tuple[str, ...] = ()
    provides: tuple[str, ...] = ()
    extra: dict[str, Any] = field(factory=dict)

    @classmethod
    def from_dict(cls, data: Any, where: str = "dependencies") -> Self:
        data = _mapping(data, where)
        return cls(
            runtime=_str_list(data, "runtime", where),
            provides=_str_list(data, "provides", where),
            extra=_extra(data, ("runtime", "provides")),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = dict(self.extra)
        if self.runtime:
            out["runtime"] = list(self.runtime)
        if self.provides:
            out["provides"] = list(self.provides)
        return out


@define(frozen=True)
class Package:
    name: str
    version: str
    epoch: int = 0
    dependencies: Dependencies = field(factory=Dependencies)
    extra: dict[str, Any] = field(factory=dict)

    @property
    def full_version(self) -> str:
        return f"{self.version}-r{self.epoch}"

    @property
    def artifact_name(self) -> str:
        return f"{self.name}-{self.full_version}.{APK_EXTENSION}"

    @classmethod
    def from_dict(cls, data: Any) -> Self:
        data = _mapping(data, "package")
        name = data.get("name")
        version = data.get("version")
        if not name or version is None or version == "":
            raise ConfigInvalid("Missing 'name' or 'version' in the package block.")
        if isinstance(version, float):
            raise ConfigInvalid(
                f"Package '{name}' has a numeric version {version!r}; quote it to keep its text."
            )
        epoch = data.get("epoch", 0)
        if isinstance(epoch, bool) or not isinstance(epoch, int) or epoch < 0:
            raise ConfigInvalid(
                f"Package '{name}' has an invalid epoch {epoch!r}; "
                "expected a non-negative integer."
            )
        return cls(
            name=str(name),
            version=str(version),
            epoch=epoch,
            dependencies=Dependencies.from_dict(
                data.get("dependencies"), "package.dependencies"
            ),
            extra=_extra(data, ("name", "version", "epoch", "dependencies")),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "name": self.name,
            "version": self.version,
            "epoch": self.epoch,
        }
        out.update(self.extra)
        if deps := self.dependencies.to_dict():
            out["dependencies"] = deps
        return out


@define(frozen=True)
class Contents:
    repositories: tuple[str, ...] = ()
    keyring: tuple[str, ...] = ()
    packages: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Any) -> Self:
        where = "environment.contents"
        data = _mapping(data, where)
        return cls(
            repositories=_str_list(data, "repositories", where),
            keyring=_str_list(data, "keyring", where),
            packages=_str_list(data, "packages", where),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for key in ("repositories", "keyring", "packages"):
            if values := getattr(self, key):
                out[key] = list(values)
        return out


@define(frozen=True)
class Environment:
    contents: Contents = field(factory=Contents)
    archs: tuple[Architecture, ...] = ()
    extra: dict[str, Any] = field(factory=dict)

    @classmethod
    def from_dict(cls, data: Any) -> Self:
        data = _mapping(data, "environment")
        return cls(
            contents=Contents.from_dict(data.get("contents")),
            archs=parse_architectures(_str_list(data, "archs", "environment")),
            extra=_extra(data, ("contents", "archs")),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = dict(self.extra)
        if contents := self.contents.to_dict():
            out["contents"] = contents
        if self.archs:
            out["archs"] = [arch.apk_name for arch in self.archs]
        return out


@define(frozen=True)
class PipelineStep:
    uses: str | None = None
    runs: str | None = None
    with_: dict[str, Any] = field(factory=dict)
    needs: tuple[str, ...] = ()
    pipeline: tuple["PipelineStep", ...] = ()
    extra: dict[str, Any] = field(factory=dict)

    @classmethod
    def from_dict(cls, data: Any) -> Self:
        data = _mapping(data, "pipeline")
        needs = _mapping(data.get("needs"), "pipeline.needs")
        return cls(
            uses=data.get("uses"),
            runs=data.get("runs"),
            with_=dict(_mapping(data.get("with"), "pipeline.with")),
            needs=_str_list(needs, "packages", "pipeline.needs"),
            pipeline=tuple(cls.from_dict(step) for step in data.get("pipeline") or ()),
            extra=_extra(data, ("uses", "runs", "with", "needs", "pipeline")),
        )

    def walk(self) -> Iterable["PipelineStep"]:
        yield self
        for step in self.pipeline:
            yield from step.walk()

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = dict(self.extra)
        if self.uses is not None:
            out["uses"] = self.uses
        if self.runs is not None:
            out["runs"] = self.runs
        if self.with_:
            out["with"] = dict(self.with_)
        if self.needs:
            out["needs"] = {"packages": list(self.needs)}
        if self.pipeline:
            out["pipeline"] = [step.to_dict() for step in self.pipeline]
        return out


@define(frozen=True)
class Subpackage:
    name: str
    dependencies: Dependencies = field(factory=Dependencies)
    pipeline: tuple[PipelineStep, ...] = ()
    extra: dict[str, Any] = field(factory=dict)

    @classmethod
    def from_dict(cls, data: Any) -> Self:
        data = _mapping(data, "subpackages")
        if not data.get("name"):
            raise ConfigInvalid("Every subpackage requires a 'name'.")
        return cls(
            name=str(data["name"]),
            dependencies=Dependencies.from_dict(
                data.get("dependencies"), "subpackages.dependencies"
            ),
            pipeline=tuple(PipelineStep.from_dict(s) for s in data.get("pipeline") or ()),
            extra=_extra(data, ("name", "dependencies", "pipeline")),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"name": self.name}
        out.update(self.extra)
        if deps := self.dependencies.to_dict():
            out["dependencies"] = deps
        if self.pipeline:
            out["pipeline"] = [step.to_dict() for step in self.pipeline]
        return out


@define(frozen=True)
class PackageConfig:
    """The root melange configuration of a single package definition."""

    package: Package
    environment: Environment = field(factory=Environment)
    pipeline: tuple[PipelineStep, ...] = ()
    subpackages: tuple[Subpackage, ...] = ()
    extra: dict[str, Any] = field(factory=dict)
    source_path: Path | None = field(default=None, eq=False)

    @property
    def name(self) -> str:
        return self.package.name

    @classmethod
    def from_dict(cls, data: Any, source_path: Path | None = None) -> Self:
        if not isinstance(data, Mapping):
            raise ConfigInvalid("A melange configuration must be a mapping.")
        if "package" not in data:
            raise ConfigInvalid("A melange configuration requires a 'package' block.")
        return cls(
            package=Package.from_dict(data["package"]),
            environment=Environment.from_dict(data.get("environment")),
            pipeline=tuple(PipelineStep.from_dict(s) for s in data.get("pipeline") or ()),
            subpackages=tuple(
                Subpackage.from_dict(s) for s in data.get("subpackages") or ()
            ),
            extra=_extra(data, ("package", "environment", "pipeline", "subpackages")),
            source_path=source_path,
        )

    def walk_pipeline(self) -> Iterable[PipelineStep]:
        for step in self.pipeline:
            yield from step.walk()
        for subpackage in self.subpackages:
            for step in subpackage.pipeline:
                yield from step.walk()

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"package": self.package.to_dict()}
        if environment := self.environment.to_dict():
            out["environment"] = environment
        if self.pipeline:
            out["pipeline"] = [step.to_dict() for step in self.pipeline]
        if self.subpackages:
            out["subpackages"] = [sub.to_dict() for sub in self.subpackages]
        out.update(self.extra)
        return out


class PlanAction(enum.Enum):
    SKIP = "skip"
    BUILD = "build"


@define(frozen=True)
class BuildOptions:
    """The resolved option set handed to the build engine for one architecture."""

    arch: Architecture
    config_file: Path
    pipeline_dir: Path
    out_dir: Path
    cache_dir: Path
    repositories: tuple[str, ...] = ()
    keyring: tuple[str, ...] = ()
    runner: str | None = None
    log_policy: tuple[str, ...] = ("builtin:stderr",)
    generate_index: bool = True
    source_dir: Path | None = None
    signing_key: Path | None = None
    env_file: Path | None = None
    namespace: str | None = None

    def to_args(self) -> list[str]:
        args = [
            str(self.config_file),
            "--arch", self.arch.apk_name,
            "--pipeline-dir", str(self.pipeline_dir),
            "--out-dir", str(self.out_dir),
            "--cache-dir", str(self.cache_dir),
        ]
        if self.runner:
            args.extend(["--runner", self.runner])
        for policy in self.log_policy:
            args.extend(["--log-policy", policy])
        for repository in self.repositories:
            args.extend(["--repository-append", repository])
        for key in self.keyring:
            args.extend(["--keyring-append", key])
        if self.source_dir is not None:
            args.extend(["--source-dir", str(self.source_dir)])
        if self.signing_key is not None:
            args.extend(["--signing-key", str(self.signing_key)])
        if self.env_file is not None:
            args.extend(["--env-file", str(self.env_file)])
        if self.namespace:
            args.extend(["--namespace", self.namespace])
        args.append(f"--generate-index={str(self.generate_index).lower()}")
        return args


@define(frozen=True)
class BuildPlan:
    arch: Architecture
    action: PlanAction
    artifact_path: Path
    options: BuildOptions | None = None

    @property
    def needs_build(self) -> bool:
        return self.action is PlanAction.BUILD

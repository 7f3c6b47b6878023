"""Tests for the structured configuration records."""

from pathlib import Path

import pytest

from pyvider.melange.exceptions import ConfigInvalid
from pyvider.melange.models import (
    Architecture,
    BuildOptions,
    PackageConfig,
    parse_architectures,
)


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("amd64", Architecture.X86_64),
        ("x86_64", Architecture.X86_64),
        ("arm64", Architecture.AARCH64),
        ("aarch64", Architecture.AARCH64),
        ("arm/v7", Architecture.ARMV7),
        ("386", Architecture.X86),
        ("loong64", Architecture.LOONGARCH64),
    ],
)
def test_architecture_parse_accepts_both_spellings(name: str, expected: Architecture) -> None:
    assert Architecture.parse(name) is expected


def test_architecture_apk_names_are_canonical_directories() -> None:
    assert Architecture.X86_64.apk_name == "x86_64"
    assert Architecture.AARCH64.apk_name == "aarch64"
    assert Architecture.ARMHF.apk_name == "armhf"
    assert str(Architecture.AARCH64) == "aarch64"


def test_architecture_parse_rejects_unknown() -> None:
    with pytest.raises(ConfigInvalid, match="Unsupported architecture"):
        Architecture.parse("sparc")


def test_parse_architectures_expands_all_and_deduplicates() -> None:
    assert parse_architectures(["amd64", "x86_64", "arm64"]) == (
        Architecture.X86_64,
        Architecture.AARCH64,
    )
    assert parse_architectures(["all"]) == tuple(Architecture)
    assert parse_architectures([]) == ()


def test_package_config_round_trips_unknown_keys() -> None:
    data = {
        "package": {
            "name": "hello",
            "version": "2.12",
            "epoch": 1,
            "copyright": [{"license": "GPL-3.0-or-later"}],
            "dependencies": {"runtime": ["glibc"]},
        },
        "environment": {
            "contents": {"packages": ["build-base"]},
            "environment": {"CGO_ENABLED": "0"},
        },
        "pipeline": [
            {
                "uses": "fetch",
                "with": {"uri": "https://example.com/hello.tar.gz"},
                "if": "${{build.arch}} == 'x86_64'",
            },
            {"pipeline": [{"runs": "make"}]},
        ],
        "subpackages": [{"name": "hello-doc", "description": "docs"}],
        "update": {"enabled": True},
    }
    config = PackageConfig.from_dict(data)

    assert config.package.artifact_name == "hello-2.12-r1.apk"
    assert config.package.dependencies.runtime == ("glibc",)
    assert config.pipeline[0].with_ == {"uri": "https://example.com/hello.tar.gz"}
    assert [step.runs for step in config.walk_pipeline()] == [None, None, "make"]
    assert config.to_dict() == data


@pytest.mark.parametrize(
    ("data", "message"),
    [
        ({}, "requires a 'package' block"),
        ({"package": {"name": "x"}}, "Missing 'name' or 'version'"),
        ({"package": {"name": "x", "version": "1", "epoch": -1}}, "invalid epoch"),
        ({"package": {"name": "x", "version": "1", "epoch": "3"}}, "invalid epoch"),
        (
            {"package": {"name": "x", "version": "1"}, "environment": {"archs": "x86_64"}},
            "must be a list",
        ),
        ({"package": {"name": "x", "version": "1"}, "subpackages": [{}]}, "requires a 'name'"),
    ],
)
def test_package_config_validation(data: dict, message: str) -> None:
    with pytest.raises(ConfigInvalid, match=message):
        PackageConfig.from_dict(data)


def test_build_options_render_only_present_optionals(tmp_path: Path) -> None:
    options = BuildOptions(
        arch=Architecture.AARCH64,
        config_file=tmp_path / "hello.yaml",
        pipeline_dir=tmp_path / "pipelines",
        out_dir=tmp_path / "packages",
        cache_dir=tmp_path / "melange-cache",
        repositories=("https://packages.wolfi.dev/os",),
        runner="docker",
    )
    args = options.to_args()

    assert args[0] == str(tmp_path / "hello.yaml")
    assert args[args.index("--arch") + 1] == "aarch64"
    assert args[args.index("--repository-append") + 1] == "https://packages.wolfi.dev/os"
    assert "--generate-index=true" in args
    for flag in ("--source-dir", "--signing-key", "--env-file", "--namespace", "--keyring-append"):
        assert flag not in args

    with_optionals = BuildOptions(
        arch=Architecture.X86_64,
        config_file=tmp_path / "hello.yaml",
        pipeline_dir=tmp_path / "pipelines",
        out_dir=tmp_path / "packages",
        cache_dir=tmp_path / "melange-cache",
        source_dir=tmp_path / "hello",
        signing_key=tmp_path / "local-melange.rsa",
        env_file=tmp_path / "build-x86_64.env",
        namespace="wolfi",
        generate_index=False,
    ).to_args()
    assert with_optionals[with_optionals.index("--namespace") + 1] == "wolfi"
    assert with_optionals[with_optionals.index("--source-dir") + 1] == str(tmp_path / "hello")
    assert "--generate-index=false" in with_optionals

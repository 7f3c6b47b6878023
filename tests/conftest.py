"""Pytest fixtures for the entire pyvider-melange test suite."""

import asyncio
from collections.abc import Callable
import itertools
from pathlib import Path
import textwrap

import pytest

from pyvider.melange.build.engine import BuildEngine
from pyvider.melange.config import ProviderOpts, load_config
from pyvider.melange.models import Architecture, BuildOptions, PackageConfig

MINIMAL_YAML = """\
package:
  name: minimal
  version: 0.0.1
  epoch: 3
  description: a very basic melange example
environment:
  contents:
    packages:
      - wolfi-baselayout
      - busybox
pipeline:
  - runs: echo "hello"
"""


class FakeEngine(BuildEngine):
    """Records every build and writes the artifact melange would have produced."""

    def __init__(
        self,
        fail: set[Architecture] | None = None,
        delay: float = 0.0,
    ) -> None:
        self.fail = fail or set()
        self.delay = delay
        self.calls: list[tuple[str, BuildOptions]] = []
        self.active = 0
        self.peak = 0

    async def build(self, package: str, options: BuildOptions) -> None:
        self.calls.append((package, options))
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if options.arch in self.fail:
                raise RuntimeError(f"simulated failure on {options.arch}")
            text = options.config_file.read_text()
            config = load_config(text).config
            arch_dir = options.out_dir / options.arch.apk_name
            arch_dir.mkdir(parents=True, exist_ok=True)
            (arch_dir / config.package.artifact_name).write_text(text)
        finally:
            self.active -= 1

    @property
    def built_archs(self) -> list[Architecture]:
        return [options.arch for _, options in self.calls]


@pytest.fixture
def minimal_yaml() -> str:
    return MINIMAL_YAML


@pytest.fixture
def minimal_config() -> PackageConfig:
    return load_config(MINIMAL_YAML).config


@pytest.fixture
def provider_opts(tmp_path: Path) -> ProviderOpts:
    build_dir = tmp_path / "work"
    build_dir.mkdir()
    return ProviderOpts(
        dir=build_dir,
        archs=["x86_64"],
        repositories=["https://packages.wolfi.dev/os"],
        keyring=["https://packages.wolfi.dev/os/wolfi-signing.rsa.pub"],
    )


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def engine_factory() -> type[FakeEngine]:
    """Returns the fake engine class, for tests that need failures or delays."""
    return FakeEngine


@pytest.fixture
def write_corpus(tmp_path: Path) -> Callable[[dict[str, str]], Path]:
    """A factory fixture writing `{relative path: yaml}` into a fresh corpus directory."""
    counter = itertools.count()

    def _write(files: dict[str, str]) -> Path:
        corpus_dir = tmp_path / f"corpus-{next(counter)}"
        for rel_path, content in files.items():
            target = corpus_dir / rel_path
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(textwrap.dedent(content))
        return corpus_dir

    return _write


SCENARIO_CORPUS = {
    "a.yaml": """
        package:
          name: a
          version: 1.0.0
          epoch: 0
        environment:
          contents:
            packages:
              - b-dev
              - busybox
        pipeline:
          - runs: make
    """,
    "b.yaml": """
        package:
          name: b
          version: 2.1.0
          epoch: 1
          dependencies:
            runtime:
              - c>=1.0
        environment:
          contents:
            packages:
              - d
              - build-base
        pipeline:
          - uses: fetch
        subpackages:
          - name: b-dev
            dependencies:
              runtime:
                - b
                - glibc-dev
    """,
    "c.yaml": """
        package:
          name: c
          version: 0.1.0
          epoch: 0
        environment:
          contents:
            packages:
              - busybox
    """,
    "d.yaml": """
        package:
          name: d
          version: 0.2.0
          epoch: 0
        pipeline:
          - uses: go/build
    """,
    "minimal.yaml": MINIMAL_YAML,
    "pipelines/fetch.yaml": """
        name: Fetch and extract external object
        needs:
          packages:
            - wget
        pipeline:
          - runs: wget "${{inputs.uri}}"
    """,
    "pipelines/go/build.yaml": """
        name: Build a Go module
        needs:
          packages:
            - go
    """,
    ".github/workflows/ci.yaml": """
        name: ci
        on: push
    """,
}


@pytest.fixture
def scenario_corpus(write_corpus: Callable[[dict[str, str]], Path]) -> Path:
    return write_corpus(SCENARIO_CORPUS)

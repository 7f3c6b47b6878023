"""The `pyvmelange` command-line interface."""

import importlib.metadata
import json
from pathlib import Path
from typing import Never

import click

from .build.planner import ArchitecturePlanner
from .build.reconciler import reconcile
from .config import ProviderOpts, load_config_file
from .crypto import write_key_pair
from .exceptions import BuildFailed, MelangeError
from .graph.query import query_graph

try:
    __version__ = importlib.metadata.version("pyvider-melange")
except importlib.metadata.PackageNotFoundError:
    __version__ = "0.0.0-dev"

ARCH_OPTION = click.option(
    "--arch",
    "archs",
    multiple=True,
    help="Architecture to build for (repeatable). Defaults to the configured set.",
)
FORCE_OPTION = click.option(
    "--force", is_flag=True, help="Rebuild even if the package already exists."
)


def _fail(prefix: str, error: Exception) -> Never:
    click.secho(f"❌ {prefix}:\n{error}", fg="red", err=True)
    raise click.Abort() from error


@click.group(context_settings=dict(help_option_names=["-h", "--help"]))
@click.version_option(
    __version__,
    "-V",
    "--version",
    prog_name="pyvmelange",
    message="%(prog)s version %(version)s",
)
@click.option(
    "--manifest",
    "pyproject_toml_path",
    default="pyproject.toml",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Path to the pyproject.toml holding [tool.pyvider.melange] defaults.",
)
@click.option(
    "--dir",
    "build_dir",
    type=click.Path(file_okay=False, path_type=Path),
    help="Override the build directory from pyproject.toml.",
)
@click.pass_context
def cli(ctx: click.Context, pyproject_toml_path: Path, build_dir: Path | None) -> None:
    """Reconciles melange package definitions with their built artifacts."""
    try:
        opts = ProviderOpts.from_pyproject(pyproject_toml_path)
    except MelangeError as e:
        raise click.UsageError(str(e)) from e
    ctx.obj = opts.evolve(dir=build_dir)


@cli.command("config")
@click.argument(
    "config_file", type=click.Path(exists=True, dir_okay=False, path_type=Path)
)
@click.pass_obj
def config_command(opts: ProviderOpts, config_file: Path) -> None:
    """Parses a melange configuration and prints it with its identity."""
    try:
        loaded = load_config_file(config_file, opts)
    except MelangeError as e:
        _fail("Unable to parse melange configuration", e)
    click.echo(json.dumps(loaded.config.to_dict(), indent=2))
    click.echo(f"id: {loaded.identity}")


@cli.command("plan")
@click.argument(
    "config_file", type=click.Path(exists=True, dir_okay=False, path_type=Path)
)
@ARCH_OPTION
@FORCE_OPTION
@click.pass_obj
def plan_command(
    opts: ProviderOpts, config_file: Path, archs: tuple[str, ...], force: bool
) -> None:
    """Shows which architectures would be built."""
    try:
        config = load_config_file(config_file, opts).config
        plans = ArchitecturePlanner(opts).plan(config, archs or None, force=force)
    except MelangeError as e:
        _fail("Planning failed", e)
    if not plans:
        click.secho("i️ No target architectures, nothing to build.", fg="yellow")
        return
    for plan in plans:
        click.echo(f"{plan.arch}: {plan.action.value} ({plan.artifact_path})")


@cli.command("build")
@click.argument(
    "config_file", type=click.Path(exists=True, dir_okay=False, path_type=Path)
)
@ARCH_OPTION
@FORCE_OPTION
@click.option(
    "--max-concurrency",
    type=click.IntRange(min=1),
    help="Maximum number of architectures built at once.",
)
@click.pass_obj
def build_command(
    opts: ProviderOpts,
    config_file: Path,
    archs: tuple[str, ...],
    force: bool,
    max_concurrency: int | None,
) -> None:
    """Builds every architecture whose package is missing."""
    click.echo(f"🚀 Reconciling {config_file}...")
    try:
        config = load_config_file(config_file, opts).config
        result = reconcile(
            config,
            opts,
            archs=archs or None,
            force=force,
            max_concurrency=max_concurrency,
        )
    except BuildFailed as e:
        _fail("Build Failed", e)
    except MelangeError as e:
        _fail("Reconciliation Failed", e)

    for arch in result.skipped:
        click.secho(f"i️ {arch}: already built, skipped.", fg="yellow")
    for arch in result.built:
        click.secho(f"✅ {arch}: built.", fg="green")
    click.echo(f"id: {result.identity}")


@cli.command("graph")
@click.option(
    "--dir",
    "corpus_dir",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Directory to load configs from (overrides the provider dir).",
)
@click.option(
    "--no-local-filter", is_flag=True, help="Keep externally resolved dependencies."
)
@click.option("--no-main-filter", is_flag=True, help="Keep subpackage nodes.")
@click.pass_obj
def graph_command(
    opts: ProviderOpts,
    corpus_dir: Path | None,
    no_local_filter: bool,
    no_main_filter: bool,
) -> None:
    """Prints the dependency map of every package: this -> [needs]."""
    try:
        result = query_graph(
            corpus_dir,
            opts,
            local_only=not no_local_filter,
            main_only=not no_main_filter,
        )
    except MelangeError as e:
        _fail("Failed to build graph", e)
    click.echo(json.dumps({"deps": result.deps, "id": result.identity}, indent=2))


@cli.command()
@click.option(
    "--out",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Private key path. Defaults to the configured signing key.",
)
@click.pass_obj
def keygen(opts: ProviderOpts, out: Path | None) -> None:
    """Generates an RSA key pair for signing packages and indexes."""
    target = out or opts.signing_key_path
    try:
        private_path, public_path = write_key_pair(target)
    except MelangeError as e:
        if "key already exists" in str(e):
            click.secho(
                f"⚠️  Keys already exist. To regenerate, please delete them first.\n{e}",
                fg="yellow",
            )
            return
        _fail("Keygen failed", e)
    click.secho(f"✅ Signing key pair generated: {private_path}, {public_path}", fg="green")


main = cli

"""Adapters that hand a resolved option set to the external melange build engine."""

import abc
import asyncio
import contextlib
from pathlib import Path
import shutil

from pyvider.telemetry import logger

from ..exceptions import EngineError, EngineNotFound
from ..models import APK_INDEX_NAME, Architecture, BuildOptions

TERMINATE_GRACE_SECONDS = 10.0
OUTPUT_TAIL_LINES = 50


def find_melange(tool: str = "melange") -> Path:
    """Locates the melange binary, either an explicit path or a name on PATH."""
    candidate = Path(tool)
    if candidate.parent != Path(".") and candidate.is_file():
        return candidate
    found = shutil.which(tool)
    if not found:
        raise EngineNotFound(
            f"Build engine '{tool}' not found in PATH. Please install melange."
        )
    return Path(found)


def output_tail(output: bytes, lines: int = OUTPUT_TAIL_LINES) -> str:
    """The last `lines` lines of a process stream."""
    text = output.decode(errors="replace").strip()
    return "\n".join(text.splitlines()[-lines:])


def index_path(out_dir: Path, arch: Architecture) -> Path:
    return out_dir / arch.apk_name / APK_INDEX_NAME


class BuildEngine(abc.ABC):
    """Runs one package build for one architecture."""

    @abc.abstractmethod
    async def build(self, package: str, options: BuildOptions) -> None:
        """Builds `package` with `options`, raising on failure."""


class MelangeEngine(BuildEngine):
    def __init__(self, melange: str = "melange") -> None:
        self.melange = melange
        self._executable: Path | None = None

    @property
    def executable(self) -> Path:
        if self._executable is None:
            self._executable = find_melange(self.melange)
        return self._executable

    def command(self, options: BuildOptions) -> list[str]:
        return [str(self.executable), "build", *options.to_args()]

    async def build(self, package: str, options: BuildOptions) -> None:
        command = self.command(options)
        logger.info(f"Running command: {' '.join(command)}")
        process = await asyncio.create_subprocess_exec(
            *command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await process.communicate()
        except asyncio.CancelledError:
            logger.info(f"Cancelling build of {package} for {options.arch}")
            await self._terminate(process)
            raise

        err_text = output_tail(stderr)
        if process.returncode != 0:
            error_message = (
                f"melange build of '{package}' for {options.arch} failed "
                f"with exit code {process.returncode}.\n"
                f"  Command: {' '.join(command)}\n"
                f"  Stdout (last {OUTPUT_TAIL_LINES} lines):\n{output_tail(stdout)}\n"
                f"  Stderr (last {OUTPUT_TAIL_LINES} lines):\n{err_text}"
            )
            raise EngineError(error_message, command, process.returncode, err_text)
        if err_text:
            logger.debug("Command stderr", output=err_text)

    async def _terminate(self, process: asyncio.subprocess.Process) -> None:
        if process.returncode is not None:
            return
        with contextlib.suppress(ProcessLookupError):
            process.terminate()
        try:
            await asyncio.wait_for(process.wait(), TERMINATE_GRACE_SECONDS)
        except TimeoutError:
            with contextlib.suppress(ProcessLookupError):
                process.kill()
            await process.wait()

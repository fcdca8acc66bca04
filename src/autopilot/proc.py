from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from autopilot.errors import AutopilotError

logger = logging.getLogger(__name__)
_OVERRUN_CHUNK = 64 * 1024


class ProcessLaunchError(AutopilotError):
    """Raised when an external program cannot be started at all."""

    def __init__(self, message: str, *, program: str) -> None:
        super().__init__(message)
        self.program = program


@dataclass(slots=True)
class CommandResult:
    program: str
    args: list[str]
    exit_code: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    @property
    def command_line(self) -> str:
        return " ".join([self.program, *self.args])


class BackgroundProcess:
    """Handle of a detached, long-running process.

    Output is drained into the local log and never returned to callers.
    """

    def __init__(self, name: str, process: asyncio.subprocess.Process) -> None:
        self.name = name
        self.process = process
        self._tasks: set[asyncio.Task[None]] = set()
        if process.stdout is not None:
            self._spawn(self._drain(process.stdout, logging.INFO, "stdout"))
        if process.stderr is not None:
            self._spawn(self._drain(process.stderr, logging.WARNING, "stderr"))
        self._spawn(self._watch())

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def running(self) -> bool:
        return self.process.returncode is None

    async def _drain(self, stream: asyncio.StreamReader, level: int, channel: str) -> None:
        while True:
            try:
                raw_line = await stream.readline()
            except ValueError:
                # Line longer than the reader limit; the buffer was discarded.
                raw_line = await stream.read(_OVERRUN_CHUNK)
            if not raw_line:
                return
            for line in raw_line.decode("utf-8", errors="replace").splitlines():
                if line.strip():
                    logger.log(
                        level,
                        line.rstrip(),
                        extra={"process_name": self.name, "pid": self.pid, "channel": channel},
                    )

    async def _watch(self) -> None:
        return_code = await self.process.wait()
        logger.info(
            "Background process closed",
            extra={"process_name": self.name, "pid": self.pid, "exit_code": return_code},
        )

    async def terminate(self, timeout_seconds: float = 5.0) -> None:
        if not self.running:
            return
        logger.info(
            "Terminating background process",
            extra={"process_name": self.name, "pid": self.pid},
        )
        self.process.terminate()
        try:
            await asyncio.wait_for(self.process.wait(), timeout=timeout_seconds)
        except TimeoutError:
            self.process.kill()
            await self.process.wait()


class ProcessRunner:
    """Runs external programs for task behaviors, scaffolds and previews."""

    async def run(self, cwd: Path, program: str, args: Sequence[str] = ()) -> CommandResult:
        arguments = [str(arg) for arg in args]
        logger.info(
            "Running command",
            extra={"cwd": str(cwd), "command": " ".join([program, *arguments])},
        )
        try:
            process = await asyncio.create_subprocess_exec(
                program,
                *arguments,
                cwd=str(cwd),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except (FileNotFoundError, PermissionError) as exc:
            raise ProcessLaunchError(f"Unable to start {program}: {exc}", program=program) from exc

        stdout, stderr = await process.communicate()
        result = CommandResult(
            program=program,
            args=arguments,
            exit_code=process.returncode if process.returncode is not None else -1,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
        )
        logger.debug(
            "Command finished",
            extra={"command": result.command_line, "exit_code": result.exit_code},
        )
        return result

    async def launch(
        self,
        cwd: Path,
        program: str,
        args: Sequence[str] = (),
        *,
        name: str | None = None,
    ) -> BackgroundProcess:
        arguments = [str(arg) for arg in args]
        logger.info(
            "Launching background command",
            extra={"cwd": str(cwd), "command": " ".join([program, *arguments])},
        )
        try:
            process = await asyncio.create_subprocess_exec(
                program,
                *arguments,
                cwd=str(cwd),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except (FileNotFoundError, PermissionError) as exc:
            raise ProcessLaunchError(f"Unable to start {program}: {exc}", program=program) from exc
        return BackgroundProcess(name or program, process)

from __future__ import annotations

import logging
from pathlib import Path

from autopilot.errors import AutopilotError
from autopilot.proc import CommandResult, ProcessRunner

logger = logging.getLogger(__name__)

DEFAULT_BRANCH = "main"
COMMIT_IDENTITY = ("-c", "user.name=Autopilot", "-c", "user.email=autopilot@localhost")


class VersionControlError(AutopilotError):
    """Raised when a git command exits with a non-zero code."""

    def __init__(self, message: str, *, result: CommandResult) -> None:
        super().__init__(message)
        self.result = result


async def _run_git(runner: ProcessRunner, repo_root: Path, args: list[str]) -> CommandResult:
    result = await runner.run(repo_root, "git", ["--no-pager", *args])
    if not result.ok:
        raise VersionControlError(
            result.stderr.strip() or result.stdout.strip() or f"git {args[0]} failed",
            result=result,
        )
    return result


async def commit_initial(
    runner: ProcessRunner,
    repo_root: Path,
    message: str = "Initial commit",
) -> None:
    await _run_git(runner, repo_root, ["init", "-b", DEFAULT_BRANCH])
    await _run_git(runner, repo_root, ["add", "."])
    await _run_git(runner, repo_root, [*COMMIT_IDENTITY, "commit", "-m", message])
    logger.info("Created initial commit", extra={"repo_root": str(repo_root)})

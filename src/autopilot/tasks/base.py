from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

from autopilot.directives import Task
from autopilot.proc import CommandResult, ProcessRunner


class MalformedTaskError(ValueError):
    """Raised by a behavior when a task's arguments do not fit its contract."""


@dataclass(frozen=True, slots=True)
class TaskResult:
    success: bool
    message_to_agent: str | None = None

    @classmethod
    def ok(cls, message_to_agent: str | None = None) -> TaskResult:
        return cls(success=True, message_to_agent=message_to_agent)

    @classmethod
    def failed(cls, message_to_agent: str) -> TaskResult:
        return cls(success=False, message_to_agent=message_to_agent)


@dataclass(frozen=True, slots=True)
class TaskContext:
    root_path: Path
    runner: ProcessRunner
    session_id: str = ""

    def resolve(self, relative_path: str) -> Path:
        """Resolve a workspace-relative path, refusing anything outside the root."""
        root = self.root_path.resolve()
        candidate = (root / relative_path).resolve()
        if candidate != root and root not in candidate.parents:
            raise MalformedTaskError(f"path escapes the workspace: {relative_path}")
        return candidate


class TaskBehavior(ABC):
    marker: str = ""
    instructions: str = ""
    exposed_to_agent: bool = True
    convergence_check: bool = False
    package_install: bool = False

    @abstractmethod
    def extract(self, text: str) -> list[Task]:
        """Return every task of this behavior's marker found in ``text``."""

    @abstractmethod
    async def run(self, context: TaskContext, task: Task) -> TaskResult:
        """Execute one task against the workspace."""

    def title(self, task: Task) -> str:
        return self.marker


def require_args(task: Task, *names: str) -> tuple[str, ...]:
    values = tuple(task.arg(index) for index in range(len(names)))
    missing = [name for name, value in zip(names, values) if not value]
    if missing:
        raise MalformedTaskError("missing the " + " and ".join(missing))
    return values


def command_failure_message(label: str, result: CommandResult) -> str:
    return (
        f"{label} failed with code {result.exit_code}.\n\n"
        f"Stdout:\n\n```\n{result.stdout}\n```\n\n"
        f"Stderr:\n\n```\n{result.stderr}\n```"
    )


def command_result(label: str, result: CommandResult) -> TaskResult:
    if result.ok:
        return TaskResult.ok()
    return TaskResult.failed(command_failure_message(label, result))

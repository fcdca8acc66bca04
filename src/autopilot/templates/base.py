from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from types import MappingProxyType

from autopilot.errors import AutopilotError
from autopilot.proc import BackgroundProcess, CommandResult, ProcessRunner
from autopilot.tasks.base import TaskBehavior
from autopilot.tasks.files import ReadFileBehavior, UpdateFileBehavior
from autopilot.vcs import VersionControlError, commit_initial


class ScaffoldStatus(str, Enum):
    CREATED = "created"
    EXISTS = "exists"


class ScaffoldError(AutopilotError):
    """Raised when a scaffold command fails."""


class UnknownWorkspaceKindError(AutopilotError, LookupError):
    """Raised when no template is registered for a workspace kind."""


@dataclass(frozen=True, slots=True)
class TaskCatalog:
    kind: str
    briefing: str
    behaviors: Mapping[str, TaskBehavior]

    def __iter__(self) -> Iterator[TaskBehavior]:
        return iter(self.behaviors.values())

    def get(self, marker: str) -> TaskBehavior | None:
        return self.behaviors.get(marker)

    def convergence_checks(self) -> list[TaskBehavior]:
        return [behavior for behavior in self.behaviors.values() if behavior.convergence_check]

    def exposed(self) -> list[TaskBehavior]:
        return [behavior for behavior in self.behaviors.values() if behavior.exposed_to_agent]


class WorkspaceTemplate(ABC):
    name: str = "workspace"
    intro: tuple[str, ...] = ()
    outro: tuple[str, ...] = (
        "Please be concise, and don't explain anything until asked by a user.",
        "Don't forget to use ``` for code blocks.",
    )

    @abstractmethod
    def specific_behaviors(self) -> list[TaskBehavior]:
        """Behaviors only this workspace kind supports."""

    @abstractmethod
    async def materialize(self, root_path: Path, runner: ProcessRunner) -> None:
        """Create the initial project at ``root_path``, which does not exist yet."""

    @abstractmethod
    async def start_application(
        self,
        root_path: Path,
        port: int,
        runner: ProcessRunner,
    ) -> BackgroundProcess:
        """Launch the workspace's own runnable process in the background."""

    async def scaffold(self, root_path: Path, runner: ProcessRunner) -> ScaffoldStatus:
        if root_path.exists():
            return ScaffoldStatus.EXISTS
        await self.materialize(root_path, runner)
        try:
            await commit_initial(runner, root_path)
        except VersionControlError as exc:
            raise ScaffoldError(f"Initial commit failed: {exc}") from exc
        return ScaffoldStatus.CREATED

    @staticmethod
    def ensure_ok(step: str, result: CommandResult) -> None:
        if not result.ok:
            raise ScaffoldError(
                f"{step} failed with code {result.exit_code}: "
                f"{result.stderr.strip() or result.stdout.strip()}"
            )


def common_behaviors() -> list[TaskBehavior]:
    return [UpdateFileBehavior(), ReadFileBehavior()]


def merge_behaviors(
    common: Iterable[TaskBehavior],
    specific: Iterable[TaskBehavior],
) -> dict[str, TaskBehavior]:
    """Merge behavior lists into a marker map.

    Kind-specific behaviors come first and win on marker collisions; common
    behaviors follow in their own order.
    """
    merged: dict[str, TaskBehavior] = {}
    for behavior in specific:
        merged[behavior.marker] = behavior
    for behavior in common:
        merged.setdefault(behavior.marker, behavior)
    return merged


def compose_briefing(template: WorkspaceTemplate, behaviors: Iterable[TaskBehavior]) -> str:
    lines = list(template.intro)
    lines.extend(
        behavior.instructions
        for behavior in behaviors
        if behavior.exposed_to_agent and behavior.instructions
    )
    lines.extend(template.outro)
    return "\n".join(lines)


def build_catalog(template: WorkspaceTemplate) -> TaskCatalog:
    behaviors = merge_behaviors(common_behaviors(), template.specific_behaviors())
    return TaskCatalog(
        kind=template.name,
        briefing=compose_briefing(template, behaviors.values()),
        behaviors=MappingProxyType(behaviors),
    )

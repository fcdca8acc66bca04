from __future__ import annotations

import asyncio
from pathlib import Path

from autopilot.proc import BackgroundProcess, ProcessRunner
from autopilot.tasks.base import TaskBehavior
from autopilot.tasks.bundler import BundleAddBehavior, ZeitwerkCheckBehavior
from autopilot.templates.base import WorkspaceTemplate


class RailsTemplate(WorkspaceTemplate):
    name = "rails"
    intro = (
        "You are a senior professional Ruby On Rails developer. Your task is to work on a Rails "
        "project based on provided description.",
    )

    def specific_behaviors(self) -> list[TaskBehavior]:
        return [BundleAddBehavior(), ZeitwerkCheckBehavior()]

    async def materialize(self, root_path: Path, runner: ProcessRunner) -> None:
        parent = root_path.parent
        await asyncio.to_thread(parent.mkdir, parents=True, exist_ok=True)
        self.ensure_ok(
            "rails new",
            await runner.run(parent, "rails", ["new", root_path.name, "--skip-git"]),
        )

    async def start_application(
        self,
        root_path: Path,
        port: int,
        runner: ProcessRunner,
    ) -> BackgroundProcess:
        return await runner.launch(
            root_path,
            str(root_path / "bin" / "rails"),
            ["server", "-p", str(port)],
            name=f"rails:{root_path.name}",
        )

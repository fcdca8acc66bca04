from __future__ import annotations

import asyncio
from pathlib import Path

from autopilot.proc import BackgroundProcess, ProcessRunner
from autopilot.tasks.base import TaskBehavior
from autopilot.tasks.npm import NpmInstallBehavior, NpmInstallDevBehavior, TypeScriptCheckBehavior
from autopilot.templates.base import WorkspaceTemplate


class ViteReactTsTemplate(WorkspaceTemplate):
    name = "vite-react-ts"
    intro = (
        "You are a professional TypeScript and React programmer. Your task is to update an "
        "existing website based on the provided description.",
        "Whatever files you create/update, make sure they are as small as possible. It's better "
        "to have multiple small files than a single large file.",
    )
    outro = (
        "Please be concise, and don't explain anything until asked by a user.",
        "Consider the following good practices: files should be small, components should be "
        "reusable, the code should be clean and easy to understand. In CSS, use CSS variables "
        "(--u1, --u2, and so on) for length units.",
        "Don't forget to use ``` for code blocks.",
    )

    def specific_behaviors(self) -> list[TaskBehavior]:
        return [NpmInstallBehavior(), NpmInstallDevBehavior(), TypeScriptCheckBehavior()]

    async def materialize(self, root_path: Path, runner: ProcessRunner) -> None:
        parent = root_path.parent
        await asyncio.to_thread(parent.mkdir, parents=True, exist_ok=True)
        self.ensure_ok(
            "npm create vite",
            await runner.run(
                parent,
                "npm",
                ["create", "vite@latest", root_path.name, "--", "--template", "react-ts"],
            ),
        )
        self.ensure_ok("npm install", await runner.run(root_path, "npm", ["install"]))

        # Start without the stock stylesheet.
        index_css = root_path / "src" / "index.css"
        await asyncio.to_thread(index_css.parent.mkdir, parents=True, exist_ok=True)
        await asyncio.to_thread(index_css.write_text, "", encoding="utf-8")

    async def start_application(
        self,
        root_path: Path,
        port: int,
        runner: ProcessRunner,
    ) -> BackgroundProcess:
        return await runner.launch(
            root_path,
            "npm",
            ["run", "dev", "--", "--port", str(port)],
            name=f"vite:{root_path.name}",
        )

from __future__ import annotations

import logging

from autopilot.directives import Task, extract_line_directives
from autopilot.tasks.base import (
    TaskBehavior,
    TaskContext,
    TaskResult,
    command_result,
    require_args,
)

logger = logging.getLogger(__name__)

NPM_INSTALL_MARKER = "[npm-install]"
NPM_INSTALL_DEV_MARKER = "[npm-install-dev]"
TS_CHECK_TYPES_MARKER = "[ts-check-types]"


async def _npm_install(context: TaskContext, task: Task, *extra: str) -> TaskResult:
    (names,) = require_args(task, "package name")
    packages = names.split()
    logger.info(
        "Installing packages",
        extra={"session_id": context.session_id, "packages": packages, "flags": list(extra)},
    )
    result = await context.runner.run(context.root_path, "npm", ["install", *packages, *extra])
    return command_result(task.marker, result)


class NpmInstallBehavior(TaskBehavior):
    marker = NPM_INSTALL_MARKER
    package_install = True
    instructions = (
        f"At any time you can ask to install an npm module: write {NPM_INSTALL_MARKER} <name>. "
        "Make sure you start with a new line."
    )

    def extract(self, text: str) -> list[Task]:
        return extract_line_directives(text, self.marker, strip_period=True)

    async def run(self, context: TaskContext, task: Task) -> TaskResult:
        return await _npm_install(context, task)

    def title(self, task: Task) -> str:
        return f"Installing package {task.arg(0)}"


class NpmInstallDevBehavior(TaskBehavior):
    marker = NPM_INSTALL_DEV_MARKER
    package_install = True
    instructions = (
        "At any time you can ask to install a development npm module: write "
        f"{NPM_INSTALL_DEV_MARKER} <name>. Make sure you start with a new line."
    )

    def extract(self, text: str) -> list[Task]:
        return extract_line_directives(text, self.marker, strip_period=True)

    async def run(self, context: TaskContext, task: Task) -> TaskResult:
        return await _npm_install(context, task, "--save-dev")

    def title(self, task: Task) -> str:
        return f"Installing dev package {task.arg(0)}"


class TypeScriptCheckBehavior(TaskBehavior):
    marker = TS_CHECK_TYPES_MARKER
    exposed_to_agent = False
    convergence_check = True

    def extract(self, text: str) -> list[Task]:
        return []

    async def run(self, context: TaskContext, task: Task) -> TaskResult:
        tsc = context.root_path / "node_modules" / ".bin" / "tsc"
        logger.info("Checking types", extra={"session_id": context.session_id})
        result = await context.runner.run(context.root_path, str(tsc), ["--noEmit"])
        if not result.ok:
            logger.info(
                "Type check failed",
                extra={"session_id": context.session_id, "exit_code": result.exit_code},
            )
        return command_result(self.marker, result)

    def title(self, task: Task) -> str:
        return "Checking types..."

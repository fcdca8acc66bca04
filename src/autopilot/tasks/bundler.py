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

BUNDLE_ADD_MARKER = "[bundle-add]"
ZEITWERK_CHECK_MARKER = "[rails-zeitwerk-check]"


class BundleAddBehavior(TaskBehavior):
    marker = BUNDLE_ADD_MARKER
    package_install = True
    instructions = (
        f"At any time you can ask to add a gem to the Gemfile: write {BUNDLE_ADD_MARKER} <name>. "
        "Make sure you start with a new line."
    )

    def extract(self, text: str) -> list[Task]:
        return extract_line_directives(text, self.marker, strip_period=True)

    async def run(self, context: TaskContext, task: Task) -> TaskResult:
        (names,) = require_args(task, "gem name")
        gems = names.split()
        logger.info("Adding gems", extra={"session_id": context.session_id, "gems": gems})
        result = await context.runner.run(context.root_path, "bundle", ["add", *gems])
        return command_result(task.marker, result)

    def title(self, task: Task) -> str:
        return f"Adding gem {task.arg(0)}"


class ZeitwerkCheckBehavior(TaskBehavior):
    marker = ZEITWERK_CHECK_MARKER
    exposed_to_agent = False
    convergence_check = True

    def extract(self, text: str) -> list[Task]:
        return []

    async def run(self, context: TaskContext, task: Task) -> TaskResult:
        rails = context.root_path / "bin" / "rails"
        result = await context.runner.run(context.root_path, str(rails), ["zeitwerk:check"])
        return command_result(self.marker, result)

    def title(self, task: Task) -> str:
        return "Checking autoloading..."

from __future__ import annotations

import logging

from autopilot.directives import Task
from autopilot.tasks.base import MalformedTaskError, TaskContext, TaskResult
from autopilot.templates.base import TaskCatalog

logger = logging.getLogger(__name__)


class TaskExecutor:
    def __init__(self, catalog: TaskCatalog, context: TaskContext) -> None:
        self.catalog = catalog
        self.context = context

    def title(self, task: Task) -> str:
        behavior = self.catalog.get(task.marker)
        if behavior is None:
            return f"Unknown task {task.marker}"
        return behavior.title(task)

    async def run(self, task: Task) -> TaskResult:
        behavior = self.catalog.get(task.marker)
        if behavior is None:
            logger.warning(
                "Unknown task type",
                extra={"session_id": self.context.session_id, "marker": task.marker},
            )
            return TaskResult.failed(f"Unknown task type: {task.marker}")

        try:
            result = await behavior.run(self.context, task)
        except MalformedTaskError as exc:
            logger.warning(
                "Malformed task",
                extra={
                    "session_id": self.context.session_id,
                    "marker": task.marker,
                    "reason": str(exc),
                },
            )
            return TaskResult.failed(f"Malformed task {task.marker}: {exc}")

        logger.info(
            "Task finished",
            extra={
                "session_id": self.context.session_id,
                "marker": task.marker,
                "success": result.success,
            },
        )
        return result

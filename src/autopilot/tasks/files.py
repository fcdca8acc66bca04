from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from autopilot.directives import FENCE, Task, extract_block_directives, extract_line_directives
from autopilot.tasks.base import TaskBehavior, TaskContext, TaskResult, require_args

logger = logging.getLogger(__name__)

UPDATE_FILE_MARKER = "[update-file]"
READ_FILE_MARKER = "[read-file]"


def _write_file(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


class UpdateFileBehavior(TaskBehavior):
    marker = UPDATE_FILE_MARKER
    instructions = (
        f"At any time you can ask to update a specific file. Write {UPDATE_FILE_MARKER} "
        "<path_of_the_file_to_update>, followed by code. Make sure you start with a new line. "
        "Make sure to provide the full file contents including the parts that are not changed."
    )

    def extract(self, text: str) -> list[Task]:
        return extract_block_directives(text, self.marker)

    async def run(self, context: TaskContext, task: Task) -> TaskResult:
        relative_path, content = require_args(task, "file path", "content")
        file_path = context.resolve(relative_path)
        logger.info(
            "Updating file",
            extra={"session_id": context.session_id, "file_path": str(file_path)},
        )
        await asyncio.to_thread(_write_file, file_path, content)
        return TaskResult.ok()

    def title(self, task: Task) -> str:
        return f"Updating file {task.arg(0)}"


class ReadFileBehavior(TaskBehavior):
    marker = READ_FILE_MARKER
    instructions = (
        f"To read contents of a file, write {READ_FILE_MARKER} <path_of_the_file_to_read>. "
        "The file contents will be returned in the response."
    )

    def extract(self, text: str) -> list[Task]:
        return extract_line_directives(text, self.marker)

    async def run(self, context: TaskContext, task: Task) -> TaskResult:
        (relative_path,) = require_args(task, "file path")
        file_path = context.resolve(relative_path)
        logger.info(
            "Reading file",
            extra={"session_id": context.session_id, "file_path": str(file_path)},
        )
        if not file_path.is_file():
            return TaskResult.failed(f"File not found: {relative_path}")
        content = await asyncio.to_thread(
            file_path.read_text, encoding="utf-8", errors="replace"
        )
        return TaskResult.ok(f"[file {relative_path} content]\n\n{FENCE}\n{content}\n{FENCE}")

    def title(self, task: Task) -> str:
        return f"Sending file {task.arg(0)}"

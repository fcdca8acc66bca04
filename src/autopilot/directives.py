"""Extraction of directives embedded in agent replies.

Two directive shapes exist. Single-line directives carry one argument, the rest
of the line after the marker. Block directives name a path on the marker line
and carry a fenced body that follows it.

There is no escaping: marker text inside prose, or inside the body of another
directive, is read as a directive.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from autopilot.tasks.base import TaskBehavior

FENCE = "```"


@dataclass(frozen=True, slots=True)
class Task:
    marker: str
    args: tuple[str, ...] = ()

    def arg(self, index: int) -> str:
        if index < len(self.args):
            return self.args[index]
        return ""

    def to_dict(self) -> dict[str, object]:
        return {"marker": self.marker, "args": list(self.args)}


class _BlockState(str, Enum):
    IDLE = "idle"
    ARMED = "armed"
    COLLECTING = "collecting"


def extract_line_directives(
    text: str,
    marker: str,
    *,
    strip_period: bool = False,
) -> list[Task]:
    tasks: list[Task] = []
    for line in text.split("\n"):
        position = line.find(marker)
        if position < 0:
            continue
        argument = line[position + len(marker) :].strip()
        if strip_period and argument.endswith("."):
            argument = argument[:-1]
        tasks.append(Task(marker=marker, args=(argument,)))
    return tasks


def extract_block_directives(text: str, marker: str) -> list[Task]:
    tasks: list[Task] = []
    state = _BlockState.IDLE
    path = ""
    body: list[str] = []

    for line in text.split("\n"):
        if line.startswith(marker):
            # A new marker line re-arms, dropping any body still being collected.
            state = _BlockState.ARMED
            path = line[len(marker) :].strip()
            body = []
            continue
        if state is _BlockState.ARMED:
            if line.strip().startswith(FENCE):
                state = _BlockState.COLLECTING
            continue
        if state is _BlockState.COLLECTING:
            if line.startswith(FENCE):
                tasks.append(Task(marker=marker, args=(path, "".join(body))))
                state = _BlockState.IDLE
                path = ""
                body = []
            else:
                body.append(line + "\n")

    return tasks


def extract_tasks(behaviors: Iterable[TaskBehavior], text: str) -> list[Task]:
    """Run every behavior's extractor over ``text``.

    Results are concatenated in behavior registration order, so two directives
    of different kinds come out grouped by kind rather than by position.
    """
    tasks: list[Task] = []
    for behavior in behaviors:
        tasks.extend(behavior.extract(text))
    return tasks

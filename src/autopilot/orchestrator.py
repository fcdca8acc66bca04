"""Convergence cycle run after every completed agent turn.

A cycle extracts the reply's tasks, runs package installs before anything
else, relays every message a task produced back into the conversation, and
only when nothing needed relaying runs the workspace's convergence checks.
The first check with something to say ends the cycle; when every check is
silent the session goes into autopilot-off until the next turn.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field

from autopilot.cycle import CycleState, transition
from autopilot.directives import Task, extract_tasks
from autopilot.errors import AutopilotError
from autopilot.events import AutopilotOff, EventBus, ForcedMessage, TaskFinished, TaskStarted
from autopilot.executor import TaskExecutor
from autopilot.proc import ProcessRunner
from autopilot.sessions import WorkspaceSession
from autopilot.tasks.base import TaskContext, TaskResult
from autopilot.templates.base import TaskCatalog

logger = logging.getLogger(__name__)

CHECK_FAILED_FALLBACK = "Check {marker} failed without any output."


class CycleAbortedError(AutopilotError):
    """Raised when an unexpected fault stops a cycle midway."""

    def __init__(self, message: str, *, session_id: str) -> None:
        super().__init__(message)
        self.session_id = session_id


@dataclass(slots=True)
class CycleOutcome:
    tasks: list[Task] = field(default_factory=list)
    forced_message: str | None = None
    checks_run: list[str] = field(default_factory=list)
    final_state: CycleState = CycleState.AWAITING_TURN

    @property
    def autopilot_off(self) -> bool:
        return self.final_state is CycleState.AUTOPILOT_OFF


def partition_tasks(
    catalog: TaskCatalog,
    tasks: Sequence[Task],
) -> tuple[list[Task], list[Task]]:
    """Split tasks into (installs, remaining), dropping convergence checks."""
    installs: list[Task] = []
    remaining: list[Task] = []
    for task in tasks:
        behavior = catalog.get(task.marker)
        if behavior is not None and behavior.convergence_check:
            continue
        if behavior is not None and behavior.package_install:
            installs.append(task)
        else:
            remaining.append(task)
    return installs, remaining


class ConvergenceOrchestrator:
    def __init__(self, events: EventBus, runner: ProcessRunner | None = None) -> None:
        self.events = events
        self.runner = runner or ProcessRunner()

    async def handle_turn(self, session: WorkspaceSession, text: str) -> CycleOutcome:
        async with session.cycle_lock:
            try:
                return await self._cycle(session, text)
            except Exception as exc:
                session.state = CycleState.AWAITING_TURN
                logger.exception("Cycle aborted", extra={"session_id": session.id})
                raise CycleAbortedError(
                    str(exc) or exc.__class__.__name__,
                    session_id=session.id,
                ) from exc

    def _advance(self, session: WorkspaceSession, to: CycleState) -> None:
        session.state = transition(session.state, to)

    async def _cycle(self, session: WorkspaceSession, text: str) -> CycleOutcome:
        executor = TaskExecutor(
            session.catalog,
            TaskContext(root_path=session.root_path, runner=self.runner, session_id=session.id),
        )

        self._advance(session, CycleState.EXTRACTING)
        tasks = extract_tasks(session.catalog, text)
        outcome = CycleOutcome(tasks=tasks)
        installs, remaining = partition_tasks(session.catalog, tasks)
        logger.info(
            "Cycle started",
            extra={
                "session_id": session.id,
                "task_count": len(tasks),
                "install_count": len(installs),
            },
        )

        messages: list[str] = []

        self._advance(session, CycleState.RUNNING_PRIORITY)
        for task in installs:
            result = await self._run_task(session, executor, task)
            if result.message_to_agent:
                messages.append(result.message_to_agent)

        self._advance(session, CycleState.RUNNING_REMAINING)
        for task in remaining:
            result = await self._run_task(session, executor, task)
            if result.message_to_agent:
                messages.append(result.message_to_agent)

        self._advance(session, CycleState.CHECKING_ESCALATION)
        if messages:
            await self._relay(session, "\n\n".join(messages), outcome)
            self._advance(session, CycleState.AWAITING_TURN)
            outcome.final_state = session.state
            return outcome

        self._advance(session, CycleState.RUNNING_VALIDATION)
        for behavior in session.catalog.convergence_checks():
            check = Task(behavior.marker)
            outcome.checks_run.append(behavior.marker)
            result = await self._run_task(session, executor, check)
            if not result.success:
                message = result.message_to_agent or CHECK_FAILED_FALLBACK.format(
                    marker=behavior.marker
                )
                await self._relay(session, message, outcome)
                self._advance(session, CycleState.AWAITING_TURN)
                outcome.final_state = session.state
                return outcome
            if result.message_to_agent:
                await self._relay(session, result.message_to_agent, outcome)
                self._advance(session, CycleState.AWAITING_TURN)
                outcome.final_state = session.state
                return outcome

        self._advance(session, CycleState.AUTOPILOT_OFF)
        self.events.publish(AutopilotOff(session_id=session.id))
        logger.info("Autopilot off", extra={"session_id": session.id})
        outcome.final_state = session.state
        return outcome

    async def _run_task(
        self,
        session: WorkspaceSession,
        executor: TaskExecutor,
        task: Task,
    ) -> TaskResult:
        task_id = uuid.uuid4().hex
        self.events.publish(
            TaskStarted(session_id=session.id, title=executor.title(task), task_id=task_id)
        )
        result = await executor.run(task)
        self.events.publish(TaskFinished(session_id=session.id, task_id=task_id))
        return result

    async def _relay(self, session: WorkspaceSession, message: str, outcome: CycleOutcome) -> None:
        outcome.forced_message = message
        self.events.publish(ForcedMessage(session_id=session.id, content=message))
        logger.info(
            "Relaying task output to the agent",
            extra={"session_id": session.id, "length": len(message)},
        )
        await session.conversation.post_message(message, synthetic=True)

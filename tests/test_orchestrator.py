import asyncio
from collections.abc import AsyncIterator, Sequence
from pathlib import Path
from types import MappingProxyType

import pytest

from autopilot.backends.base import ChatBackend
from autopilot.config import ProfileConfig
from autopilot.cycle import CycleState
from autopilot.directives import Task, extract_line_directives
from autopilot.events import (
    AutopilotOff,
    Event,
    EventBus,
    ForcedMessage,
    TaskFinished,
    TaskStarted,
)
from autopilot.orchestrator import ConvergenceOrchestrator, CycleAbortedError
from autopilot.proc import CommandResult, ProcessRunner
from autopilot.sessions import WorkspaceSession
from autopilot.tasks import TaskBehavior, TaskContext, TaskResult
from autopilot.templates import TaskCatalog, ViteReactTsTemplate, build_catalog

REPLY = "[npm-install] lodash\n[update-file] src/a.ts\n```\nexport const a=1;\n```\n"


class EchoConversation(ChatBackend):
    vendor = "fake"

    async def stream_reply(self) -> AsyncIterator[str]:
        yield "noted"


class RecordingRunner(ProcessRunner):
    def __init__(self, root_path: Path, exit_code: int = 0) -> None:
        self.root_path = root_path
        self.exit_code = exit_code
        self.calls: list[tuple[str, list[str], bool]] = []

    async def run(self, cwd: Path, program: str, args: Sequence[str] = ()) -> CommandResult:
        written = (self.root_path / "src" / "a.ts").exists()
        self.calls.append((Path(program).name, list(args), written))
        return CommandResult(
            program=program,
            args=list(args),
            exit_code=self.exit_code,
            stdout="",
            stderr="type error" if self.exit_code else "",
        )


class ScriptedBehavior(TaskBehavior):
    def __init__(
        self,
        marker: str,
        log: list[str],
        result: TaskResult | None = None,
        *,
        package_install: bool = False,
        convergence_check: bool = False,
    ) -> None:
        self.marker = marker
        self.log = log
        self.result = result or TaskResult.ok()
        self.package_install = package_install
        self.convergence_check = convergence_check
        self.exposed_to_agent = not convergence_check

    def extract(self, text: str) -> list[Task]:
        if self.convergence_check:
            return []
        return extract_line_directives(text, self.marker)

    async def run(self, context: TaskContext, task: Task) -> TaskResult:
        self.log.append(self.marker)
        return self.result


class ExplodingBehavior(ScriptedBehavior):
    async def run(self, context: TaskContext, task: Task) -> TaskResult:
        raise RuntimeError("disk on fire")


class SlowBehavior(ScriptedBehavior):
    async def run(self, context: TaskContext, task: Task) -> TaskResult:
        self.log.append(f"enter {task.arg(0)}")
        await asyncio.sleep(0.01)
        self.log.append(f"exit {task.arg(0)}")
        return self.result


def _catalog(*behaviors: TaskBehavior) -> TaskCatalog:
    return TaskCatalog(
        kind="test",
        briefing="",
        behaviors=MappingProxyType({behavior.marker: behavior for behavior in behaviors}),
    )


def _session(tmp_path: Path, catalog: TaskCatalog) -> WorkspaceSession:
    return WorkspaceSession(
        id="s1",
        name="site",
        profile=ProfileConfig(vendor="openai", model="gpt-4.1"),
        root_path=tmp_path,
        preview_port=5174,
        template=ViteReactTsTemplate(),
        catalog=catalog,
        conversation=EchoConversation("fake-model", "briefing"),
    )


def _recorded(bus: EventBus) -> list[Event]:
    events: list[Event] = []
    bus.subscribe(events.append)
    return events


def _of_type(events: list[Event], event_type: type[Event]) -> list[Event]:
    return [event for event in events if isinstance(event, event_type)]


def test_install_runs_before_file_write(tmp_path: Path) -> None:
    bus = EventBus()
    events = _recorded(bus)
    runner = RecordingRunner(tmp_path)
    session = _session(tmp_path, build_catalog(ViteReactTsTemplate()))

    outcome = asyncio.run(ConvergenceOrchestrator(bus, runner).handle_turn(session, REPLY))

    assert runner.calls[0] == ("npm", ["install", "lodash"], False)
    assert (tmp_path / "src" / "a.ts").read_text(encoding="utf-8") == "export const a=1;\n"
    assert runner.calls[1] == ("tsc", ["--noEmit"], True)
    assert [event.title for event in _of_type(events, TaskStarted)] == [
        "Installing package lodash",
        "Updating file src/a.ts",
        "Checking types...",
    ]
    assert len(_of_type(events, TaskFinished)) == 3
    assert len(_of_type(events, AutopilotOff)) == 1
    assert outcome.autopilot_off
    assert session.state is CycleState.AUTOPILOT_OFF


def test_install_first_even_when_written_last(tmp_path: Path) -> None:
    runner = RecordingRunner(tmp_path)
    session = _session(tmp_path, build_catalog(ViteReactTsTemplate()))
    reply = "[update-file] src/a.ts\n```\nexport const a=1;\n```\n[npm-install] lodash\n"

    asyncio.run(ConvergenceOrchestrator(EventBus(), runner).handle_turn(session, reply))

    assert runner.calls[0] == ("npm", ["install", "lodash"], False)


def test_task_messages_are_joined_and_relayed(tmp_path: Path) -> None:
    bus = EventBus()
    events = _recorded(bus)
    log: list[str] = []
    check = ScriptedBehavior("[check]", log, convergence_check=True)
    session = _session(
        tmp_path,
        _catalog(
            ScriptedBehavior("[first]", log, TaskResult.failed("first failed")),
            ScriptedBehavior("[second]", log, TaskResult.ok("second says hi")),
            check,
        ),
    )

    async def scenario() -> None:
        await ConvergenceOrchestrator(bus).handle_turn(session, "[second] x\n[first] y\n")
        await session.conversation.wait_idle()

    asyncio.run(scenario())

    forced = _of_type(events, ForcedMessage)
    assert len(forced) == 1
    assert forced[0].content == "first failed\n\nsecond says hi"
    assert log == ["[first]", "[second]"]
    assert _of_type(events, AutopilotOff) == []
    assert session.state is CycleState.AWAITING_TURN
    assert session.conversation.turns[0].content == "first failed\n\nsecond says hi"
    assert session.conversation.turns[0].synthetic
    assert session.conversation.turns[1].content == "noted"


def test_read_file_escalates_contents(tmp_path: Path) -> None:
    (tmp_path / "notes.md").write_text("hello\n", encoding="utf-8")
    bus = EventBus()
    events = _recorded(bus)
    session = _session(tmp_path, build_catalog(ViteReactTsTemplate()))

    outcome = asyncio.run(
        ConvergenceOrchestrator(bus, RecordingRunner(tmp_path)).handle_turn(
            session, "[read-file] notes.md\n"
        )
    )

    assert outcome.forced_message == "[file notes.md content]\n\n```\nhello\n\n```"
    assert outcome.checks_run == []
    assert len(_of_type(events, ForcedMessage)) == 1


def test_first_failing_check_stops_validation(tmp_path: Path) -> None:
    bus = EventBus()
    events = _recorded(bus)
    log: list[str] = []
    session = _session(
        tmp_path,
        _catalog(
            ScriptedBehavior(
                "[check-a]", log, TaskResult.failed("types broken"), convergence_check=True
            ),
            ScriptedBehavior("[check-b]", log, convergence_check=True),
        ),
    )

    outcome = asyncio.run(ConvergenceOrchestrator(bus).handle_turn(session, "all done"))

    assert log == ["[check-a]"]
    assert outcome.checks_run == ["[check-a]"]
    assert [event.content for event in _of_type(events, ForcedMessage)] == ["types broken"]
    assert _of_type(events, AutopilotOff) == []


def test_check_success_with_message_also_stops(tmp_path: Path) -> None:
    bus = EventBus()
    events = _recorded(bus)
    log: list[str] = []
    session = _session(
        tmp_path,
        _catalog(
            ScriptedBehavior("[check-a]", log, TaskResult.ok("warning"), convergence_check=True),
            ScriptedBehavior("[check-b]", log, convergence_check=True),
        ),
    )

    asyncio.run(ConvergenceOrchestrator(bus).handle_turn(session, ""))

    assert log == ["[check-a]"]
    assert [event.content for event in _of_type(events, ForcedMessage)] == ["warning"]


def test_silent_check_failure_uses_fallback_message(tmp_path: Path) -> None:
    log: list[str] = []
    failing = ScriptedBehavior(
        "[check-a]", log, TaskResult(success=False), convergence_check=True
    )
    session = _session(tmp_path, _catalog(failing))

    outcome = asyncio.run(ConvergenceOrchestrator(EventBus()).handle_turn(session, ""))

    assert outcome.forced_message == "Check [check-a] failed without any output."


def test_no_tasks_and_silent_checks_turn_autopilot_off(tmp_path: Path) -> None:
    bus = EventBus()
    events = _recorded(bus)
    log: list[str] = []
    session = _session(
        tmp_path,
        _catalog(
            ScriptedBehavior("[check-a]", log, convergence_check=True),
            ScriptedBehavior("[check-b]", log, convergence_check=True),
        ),
    )

    asyncio.run(ConvergenceOrchestrator(bus).handle_turn(session, "nothing to do"))

    assert log == ["[check-a]", "[check-b]"]
    assert len(_of_type(events, AutopilotOff)) == 1
    assert _of_type(events, ForcedMessage) == []


def test_checks_named_in_reply_run_only_during_validation(tmp_path: Path) -> None:
    log: list[str] = []
    check = ScriptedBehavior("[check-a]", log, convergence_check=True)
    session = _session(tmp_path, _catalog(check))

    outcome = asyncio.run(ConvergenceOrchestrator(EventBus()).handle_turn(session, "[check-a]\n"))

    assert log == ["[check-a]"]
    assert outcome.tasks == []


def test_next_turn_reenables_autopilot(tmp_path: Path) -> None:
    log: list[str] = []
    check = ScriptedBehavior("[check-a]", log, convergence_check=True)
    session = _session(tmp_path, _catalog(check))
    orchestrator = ConvergenceOrchestrator(EventBus())

    async def scenario() -> None:
        await orchestrator.handle_turn(session, "")
        await orchestrator.handle_turn(session, "")

    asyncio.run(scenario())

    assert log == ["[check-a]", "[check-a]"]
    assert session.state is CycleState.AUTOPILOT_OFF


def test_unexpected_exception_aborts_cycle(tmp_path: Path) -> None:
    bus = EventBus()
    events = _recorded(bus)
    log: list[str] = []
    check = ScriptedBehavior("[check-a]", log, convergence_check=True)
    session = _session(tmp_path, _catalog(ExplodingBehavior("[boom]", log), check))

    with pytest.raises(CycleAbortedError, match="disk on fire") as excinfo:
        asyncio.run(ConvergenceOrchestrator(bus).handle_turn(session, "[boom] now\n"))

    assert excinfo.value.session_id == "s1"
    assert session.state is CycleState.AWAITING_TURN
    assert log == []
    assert _of_type(events, ForcedMessage) == []
    assert _of_type(events, AutopilotOff) == []


def test_cycles_of_one_session_never_overlap(tmp_path: Path) -> None:
    log: list[str] = []
    session = _session(tmp_path, _catalog(SlowBehavior("[slow]", log)))
    orchestrator = ConvergenceOrchestrator(EventBus())

    async def scenario() -> None:
        await asyncio.gather(
            orchestrator.handle_turn(session, "[slow] one\n"),
            orchestrator.handle_turn(session, "[slow] two\n"),
        )

    asyncio.run(scenario())

    assert log in (
        ["enter one", "exit one", "enter two", "exit two"],
        ["enter two", "exit two", "enter one", "exit one"],
    )

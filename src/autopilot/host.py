from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path

from autopilot.backends import build_chat_backend
from autopilot.backends.base import ChatBackend, ImageAttachment
from autopilot.config import (
    AutopilotConfig,
    ProfileConfig,
    WorkspaceMarker,
    read_marker,
    write_marker,
)
from autopilot.errors import AutopilotError
from autopilot.events import ChatError, ChatStarted, EventBus, PartialReply
from autopilot.orchestrator import ConvergenceOrchestrator, CycleAbortedError
from autopilot.proc import BackgroundProcess, ProcessRunner
from autopilot.sessions import SessionRegistry, WorkspaceSession
from autopilot.templates import TEMPLATES, get_template
from autopilot.templates.base import ScaffoldStatus, WorkspaceTemplate, build_catalog

logger = logging.getLogger(__name__)

ChatFactory = Callable[[ProfileConfig, str, AutopilotConfig], ChatBackend]


class WorkspaceExistsError(AutopilotError):
    """Raised when asked to create a workspace whose directory already exists."""


class UnknownProfileError(AutopilotError, LookupError):
    """Raised when a profile id is not configured."""


@dataclass(frozen=True, slots=True)
class WorkspaceSelector:
    name: str
    create: bool
    kind: str | None = None


def _validate_workspace_name(name: str) -> str:
    cleaned = name.strip()
    if not cleaned or cleaned in {".", ".."} or "/" in cleaned or "\\" in cleaned:
        raise ValueError(f"Invalid workspace name: {name!r}")
    return cleaned


class AgentHost:
    def __init__(
        self,
        config: AutopilotConfig,
        events: EventBus | None = None,
        runner: ProcessRunner | None = None,
        chat_factory: ChatFactory = build_chat_backend,
        templates: Mapping[str, type[WorkspaceTemplate]] = TEMPLATES,
    ) -> None:
        self.config = config
        self.events = events or EventBus()
        self.runner = runner or ProcessRunner()
        self.chat_factory = chat_factory
        self.templates = templates
        self.sessions = SessionRegistry()
        self.orchestrator = ConvergenceOrchestrator(self.events, self.runner)
        self._markers: dict[Path, WorkspaceMarker] = {}
        self._abandoned: list[BackgroundProcess] = []

    @property
    def projects_root(self) -> Path:
        return self.config.projects_path

    def _profile(self, profile_id: str) -> ProfileConfig:
        profile = self.config.profiles.get(profile_id)
        if profile is None:
            known = ", ".join(sorted(self.config.profiles))
            raise UnknownProfileError(f"Unknown profile '{profile_id}'. Known profiles: {known}")
        return profile

    async def _marker(self, root_path: Path) -> WorkspaceMarker:
        key = root_path.resolve()
        cached = self._markers.get(key)
        if cached is None:
            cached = await asyncio.to_thread(read_marker, root_path)
            self._markers[key] = cached
        return cached

    def _free_port(self) -> int:
        used = {session.preview_port for session in self.sessions}
        port = self.config.workspace.preview_base_port
        while port in used:
            port += 1
        return port

    async def _create_workspace(
        self,
        root_path: Path,
        kind: str,
    ) -> tuple[WorkspaceTemplate, WorkspaceMarker]:
        template = get_template(kind, self.templates)
        if root_path.exists():
            raise WorkspaceExistsError(f"Workspace already exists: {root_path}")

        await asyncio.to_thread(root_path.parent.mkdir, parents=True, exist_ok=True)
        status = await template.scaffold(root_path, self.runner)
        if status is ScaffoldStatus.EXISTS:
            raise WorkspaceExistsError(f"Workspace already exists: {root_path}")

        marker = WorkspaceMarker(preview_port=self._free_port(), kind=template.name)
        await asyncio.to_thread(write_marker, root_path, marker)
        self._markers[root_path.resolve()] = marker
        logger.info(
            "Workspace created",
            extra={"root_path": str(root_path), "kind": marker.kind, "port": marker.preview_port},
        )
        return template, marker

    async def _open_workspace(self, root_path: Path) -> tuple[WorkspaceTemplate, WorkspaceMarker]:
        marker = await self._marker(root_path)
        return get_template(marker.kind, self.templates), marker

    async def start_chat(self, profile_id: str, selector: WorkspaceSelector) -> WorkspaceSession:
        profile = self._profile(profile_id)
        name = _validate_workspace_name(selector.name)
        root_path = self.projects_root / name

        if selector.create:
            kind = selector.kind or self.config.workspace.default_kind
            template, marker = await self._create_workspace(root_path, kind)
        else:
            template, marker = await self._open_workspace(root_path)

        catalog = build_catalog(template)
        conversation = self.chat_factory(profile, catalog.briefing, self.config)
        session = WorkspaceSession(
            id=uuid.uuid4().hex,
            name=name,
            profile=profile,
            root_path=root_path,
            preview_port=marker.preview_port,
            template=template,
            catalog=catalog,
            conversation=conversation,
            preview_host=self.config.workspace.preview_host,
        )
        session.preview = await template.start_application(
            root_path, session.preview_port, self.runner
        )
        self.sessions.add(session)
        self._wire(session)
        self.events.publish(
            ChatStarted(name=name, preview_url=session.preview_url, id=session.id)
        )
        logger.info(
            "Chat started",
            extra={
                "session_id": session.id,
                "workspace": name,
                "profile": profile_id,
                "kind": catalog.kind,
            },
        )
        return session

    def _wire(self, session: WorkspaceSession) -> None:
        def _partial(text: str) -> None:
            self.events.publish(PartialReply(session_id=session.id, text=text))

        async def _complete(full_text: str) -> None:
            try:
                await self.orchestrator.handle_turn(session, full_text)
            except CycleAbortedError as exc:
                self.events.publish(ChatError(session_id=session.id, error=str(exc)))

        def _error(message: str) -> None:
            self.events.publish(ChatError(session_id=session.id, error=message))

        session.conversation.on_partial_text(_partial)
        session.conversation.on_turn_complete(_complete)
        session.conversation.on_error(_error)

    async def post_message(
        self,
        session_id: str,
        content: str,
        image: ImageAttachment | None = None,
    ) -> asyncio.Task[None]:
        session = self.sessions.get(session_id)
        return await session.conversation.post_message(content, image)

    async def restart_preview(self, session_id: str) -> BackgroundProcess:
        session = self.sessions.get(session_id)
        previous = session.preview
        if previous is not None and previous.running:
            if self.config.workspace.preview_restart == "terminate":
                await previous.terminate()
            else:
                self._abandoned.append(previous)
                logger.info(
                    "Previous preview left running",
                    extra={"session_id": session.id, "pid": previous.pid},
                )

        session.preview = await session.template.start_application(
            session.root_path, session.preview_port, self.runner
        )
        return session.preview

    async def shutdown(self) -> None:
        handles = [session.preview for session in self.sessions if session.preview is not None]
        handles.extend(self._abandoned)
        for handle in handles:
            if handle.running:
                await handle.terminate()
        self._abandoned.clear()

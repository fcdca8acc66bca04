from __future__ import annotations

import asyncio
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

from autopilot.backends.base import ChatBackend
from autopilot.config import ProfileConfig
from autopilot.cycle import CycleState
from autopilot.errors import AutopilotError
from autopilot.proc import BackgroundProcess
from autopilot.templates.base import TaskCatalog, WorkspaceTemplate


class SessionNotFoundError(AutopilotError, LookupError):
    """Raised when a session id is not registered."""


@dataclass(slots=True)
class WorkspaceSession:
    id: str
    name: str
    profile: ProfileConfig
    root_path: Path
    preview_port: int
    template: WorkspaceTemplate
    catalog: TaskCatalog
    conversation: ChatBackend
    preview_host: str = "localhost"
    preview: BackgroundProcess | None = None
    state: CycleState = CycleState.AWAITING_TURN
    cycle_lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def kind(self) -> str:
        return self.catalog.kind

    @property
    def preview_url(self) -> str:
        return f"http://{self.preview_host}:{self.preview_port}"


class SessionRegistry:
    """Sessions live for the rest of the process once registered."""

    def __init__(self) -> None:
        self._sessions: dict[str, WorkspaceSession] = {}

    def add(self, session: WorkspaceSession) -> None:
        if session.id in self._sessions:
            raise ValueError(f"Session already registered: {session.id}")
        self._sessions[session.id] = session

    def get(self, session_id: str) -> WorkspaceSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"Unknown session: {session_id}")
        return session

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def __iter__(self) -> Iterator[WorkspaceSession]:
        return iter(list(self._sessions.values()))

"""Lifecycle events and the broadcast channel that carries them.

Every event goes to every subscriber regardless of session. Subscribers that
only care about one session wrap themselves with :func:`for_session`.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import asdict, dataclass
from typing import ClassVar

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Event:
    type: ClassVar[str] = "event"

    def to_dict(self) -> dict[str, object]:
        return {"type": self.type, **asdict(self)}


@dataclass(frozen=True, slots=True)
class ChatStarted(Event):
    type: ClassVar[str] = "chat-started"
    name: str
    preview_url: str
    id: str

    @property
    def session_id(self) -> str:
        return self.id


@dataclass(frozen=True, slots=True)
class PartialReply(Event):
    type: ClassVar[str] = "partial-reply"
    session_id: str
    text: str


@dataclass(frozen=True, slots=True)
class TaskStarted(Event):
    type: ClassVar[str] = "task-started"
    session_id: str
    title: str
    task_id: str


@dataclass(frozen=True, slots=True)
class TaskFinished(Event):
    type: ClassVar[str] = "task-finished"
    session_id: str
    task_id: str


@dataclass(frozen=True, slots=True)
class ForcedMessage(Event):
    type: ClassVar[str] = "forced-message"
    session_id: str
    content: str


@dataclass(frozen=True, slots=True)
class AutopilotOff(Event):
    type: ClassVar[str] = "autopilot-off"
    session_id: str


@dataclass(frozen=True, slots=True)
class ChatError(Event):
    type: ClassVar[str] = "chat-error"
    session_id: str
    error: str


Listener = Callable[[Event], None]


class EventBus:
    def __init__(self) -> None:
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def publish(self, event: Event) -> None:
        logger.debug("Publishing event", extra={"event": event.to_dict()})
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Event listener failed", extra={"event_type": event.type})

    def queue(self) -> tuple[asyncio.Queue[Event], Callable[[], None]]:
        """Subscribe an unbounded queue; returns the queue and its unsubscribe hook."""
        events: asyncio.Queue[Event] = asyncio.Queue()
        return events, self.subscribe(events.put_nowait)


def for_session(session_id: str, listener: Listener) -> Listener:
    def _filtered(event: Event) -> None:
        if getattr(event, "session_id", None) == session_id:
            listener(event)

    return _filtered

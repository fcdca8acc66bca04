from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from typing import Literal

logger = logging.getLogger(__name__)

PartialTextCallback = Callable[[str], None]
TurnCompleteCallback = Callable[[str], Awaitable[None]]
ErrorCallback = Callable[[str], None]


@dataclass(frozen=True, slots=True)
class ImageAttachment:
    data: str
    media_type: str

    @property
    def data_url(self) -> str:
        return f"data:{self.media_type};base64,{self.data}"


@dataclass(frozen=True, slots=True)
class ChatTurn:
    role: Literal["user", "assistant"]
    content: str
    image: ImageAttachment | None = None
    synthetic: bool = False


class ChatBackend(ABC):
    """Streaming conversation with one vendor model.

    Posting a message schedules the agent's turn in the background; turns of one
    conversation never overlap. Listeners see partial text as it streams, the
    full text once the turn completes, or an error message if streaming fails.
    """

    vendor: str = "chat"

    def __init__(self, model: str, system_prompt: str, *, max_tokens: int = 1024) -> None:
        self.model = model
        self.system_prompt = system_prompt
        self.max_tokens = max_tokens
        self.turns: list[ChatTurn] = []
        self._partial_listeners: list[PartialTextCallback] = []
        self._complete_listeners: list[TurnCompleteCallback] = []
        self._error_listeners: list[ErrorCallback] = []
        self._turn_lock = asyncio.Lock()
        self._pending: set[asyncio.Task[None]] = set()

    def on_partial_text(self, callback: PartialTextCallback) -> None:
        self._partial_listeners.append(callback)

    def on_turn_complete(self, callback: TurnCompleteCallback) -> None:
        self._complete_listeners.append(callback)

    def on_error(self, callback: ErrorCallback) -> None:
        self._error_listeners.append(callback)

    async def post_message(
        self,
        text: str,
        image: ImageAttachment | None = None,
        *,
        synthetic: bool = False,
    ) -> asyncio.Task[None]:
        turn = ChatTurn(role="user", content=text, image=image, synthetic=synthetic)
        task = asyncio.create_task(self._run_turn(turn))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def wait_idle(self) -> None:
        while self._pending:
            await asyncio.gather(*list(self._pending))

    async def _run_turn(self, turn: ChatTurn) -> None:
        async with self._turn_lock:
            self.turns.append(turn)
            chunks: list[str] = []
            try:
                async for fragment in self.stream_reply():
                    if not fragment:
                        continue
                    chunks.append(fragment)
                    for partial_listener in list(self._partial_listeners):
                        partial_listener(fragment)
            except Exception as exc:
                logger.exception(
                    "Agent turn failed while streaming",
                    extra={"vendor": self.vendor, "model": self.model},
                )
                for error_listener in list(self._error_listeners):
                    error_listener(str(exc) or exc.__class__.__name__)
                return

            full_text = "".join(chunks)
            self.turns.append(ChatTurn(role="assistant", content=full_text))

        for complete_listener in list(self._complete_listeners):
            await complete_listener(full_text)

    @abstractmethod
    def stream_reply(self) -> AsyncIterator[str]:
        """Stream the agent's reply to the current ``turns``."""

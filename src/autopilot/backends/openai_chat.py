from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

from openai import AsyncOpenAI

from autopilot.backends.base import ChatBackend, ChatTurn


class OpenAIChatBackend(ChatBackend):
    vendor = "openai"

    def __init__(
        self,
        model: str,
        system_prompt: str,
        *,
        api_key: str | None = None,
        max_tokens: int = 1024,
    ) -> None:
        super().__init__(model, system_prompt, max_tokens=max_tokens)
        self.api_key = api_key or None
        self._client: AsyncOpenAI | None = None

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self.api_key)
        return self._client

    @staticmethod
    def _convert_turn(turn: ChatTurn) -> dict[str, Any]:
        if turn.image is None:
            return {"role": turn.role, "content": turn.content}
        return {
            "role": turn.role,
            "content": [
                {"type": "image_url", "image_url": {"url": turn.image.data_url}},
                {"type": "text", "text": turn.content},
            ],
        }

    def build_messages(self) -> list[dict[str, Any]]:
        messages: list[dict[str, Any]] = [{"role": "system", "content": self.system_prompt}]
        messages.extend(self._convert_turn(turn) for turn in self.turns)
        return messages

    async def stream_reply(self) -> AsyncIterator[str]:
        stream = await self._get_client().chat.completions.create(
            model=self.model,
            messages=self.build_messages(),
            stream=True,
        )
        async for part in stream:
            if not part.choices:
                continue
            content = part.choices[0].delta.content
            if content:
                yield content

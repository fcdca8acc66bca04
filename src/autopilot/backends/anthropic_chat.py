from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

from anthropic import AsyncAnthropic

from autopilot.backends.base import ChatBackend, ChatTurn


class AnthropicChatBackend(ChatBackend):
    vendor = "anthropic"

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
        self._client: AsyncAnthropic | None = None

    def _get_client(self) -> AsyncAnthropic:
        if self._client is None:
            self._client = AsyncAnthropic(api_key=self.api_key)
        return self._client

    @staticmethod
    def _convert_turn(turn: ChatTurn) -> dict[str, Any]:
        if turn.image is None:
            return {"role": turn.role, "content": turn.content}
        return {
            "role": turn.role,
            "content": [
                {
                    "type": "image",
                    "source": {
                        "type": "base64",
                        "media_type": turn.image.media_type,
                        "data": turn.image.data,
                    },
                },
                {"type": "text", "text": turn.content},
            ],
        }

    def build_messages(self) -> list[dict[str, Any]]:
        return [self._convert_turn(turn) for turn in self.turns]

    async def stream_reply(self) -> AsyncIterator[str]:
        async with self._get_client().messages.stream(
            model=self.model,
            max_tokens=self.max_tokens,
            system=self.system_prompt,
            messages=self.build_messages(),
        ) as stream:
            async for text in stream.text_stream:
                yield text

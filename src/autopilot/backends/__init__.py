from __future__ import annotations

from autopilot.backends.anthropic_chat import AnthropicChatBackend
from autopilot.backends.base import ChatBackend, ChatTurn, ImageAttachment
from autopilot.backends.openai_chat import OpenAIChatBackend
from autopilot.config import AutopilotConfig, ProfileConfig


def build_chat_backend(
    profile: ProfileConfig,
    briefing: str,
    config: AutopilotConfig,
) -> ChatBackend:
    if profile.vendor == "openai":
        return OpenAIChatBackend(
            profile.model,
            briefing,
            api_key=config.agent.openai_api_key,
            max_tokens=config.agent.max_tokens,
        )
    if profile.vendor == "anthropic":
        return AnthropicChatBackend(
            profile.model,
            briefing,
            api_key=config.agent.anthropic_api_key,
            max_tokens=config.agent.max_tokens,
        )
    raise ValueError(f"Unsupported vendor: {profile.vendor}")


__all__ = [
    "AnthropicChatBackend",
    "ChatBackend",
    "ChatTurn",
    "ImageAttachment",
    "OpenAIChatBackend",
    "build_chat_backend",
]

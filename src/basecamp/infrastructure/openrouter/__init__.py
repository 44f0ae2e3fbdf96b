"""OpenRouter (OpenAI-compatible) chat-completions adapter."""

from .client import OpenRouterChatClient
from .sse import SSEStreamDecoder

__all__ = ["OpenRouterChatClient", "SSEStreamDecoder"]

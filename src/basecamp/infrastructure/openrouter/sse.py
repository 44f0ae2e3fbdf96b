"""Incremental decoder for OpenRouter server-sent-event streams.

Frames are separated by a blank line and each ``data:`` line holds one JSON
chunk.  Reads may split a frame anywhere; the undecoded tail is kept and
prefixed onto the next ``feed``.  ``finish`` parses whatever is left once the
stream has closed.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Optional

from basecamp.domain import StreamResult, TokenUsage
from basecamp.infrastructure.openrouter._parser import normalize_content

logger = logging.getLogger(__name__)

_DATA_PREFIX = "data:"
_DONE = "[DONE]"


def _usage_value(value: Any, current: Optional[int]) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return current
    return int(value)


class SSEStreamDecoder:
    """Accumulates text, model id and usage from a chat-completion stream.

    ``on_token`` is called synchronously with each non-empty content delta.
    ``on_chunk`` receives the running count of parsed chunks; it is
    observational and anything it raises is dropped.
    """

    def __init__(
        self,
        on_token: Callable[[str], None],
        on_chunk: Optional[Callable[[int], None]] = None,
    ) -> None:
        self._on_token = on_token
        self._on_chunk = on_chunk
        self._buffer = ""
        self._parts: list[str] = []
        self._model: Optional[str] = None
        self._usage = TokenUsage()
        self._chunks = 0

    @property
    def chunks_processed(self) -> int:
        return self._chunks

    def feed(self, text: str) -> None:
        """Consume the next piece of decoded stream text."""
        if not text:
            return
        self._buffer = (self._buffer + text).replace("\r\n", "\n")
        frames = self._buffer.split("\n\n")
        self._buffer = frames.pop()
        for frame in frames:
            self._process_frame(frame)

    def finish(self) -> StreamResult:
        """Flush the unterminated remainder (if any) and return the aggregate."""
        if self._buffer.strip():
            self._process_frame(self._buffer)
        self._buffer = ""
        return StreamResult(
            output_text="".join(self._parts),
            model=self._model,
            usage=self._usage,
            chunks_processed=self._chunks,
        )

    def _process_frame(self, frame: str) -> None:
        for line in frame.split("\n"):
            line = line.strip()
            if not line.startswith(_DATA_PREFIX):
                continue
            data = line[len(_DATA_PREFIX):].strip()
            if not data or data == _DONE:
                continue
            try:
                chunk = json.loads(data)
            except json.JSONDecodeError:
                logger.debug("Skipping malformed stream chunk: %.200s", data)
                continue
            self._chunks += 1
            if self._on_chunk is not None:
                try:
                    self._on_chunk(self._chunks)
                except Exception:  # noqa: BLE001
                    logger.debug("on_chunk callback failed", exc_info=True)
            if isinstance(chunk, dict):
                self._apply_chunk(chunk)

    def _apply_chunk(self, chunk: dict) -> None:
        model = chunk.get("model")
        if isinstance(model, str) and model.strip():
            self._model = model

        usage = chunk.get("usage")
        if isinstance(usage, dict):
            self._usage = TokenUsage(
                prompt_tokens=_usage_value(usage.get("prompt_tokens"), self._usage.prompt_tokens),
                completion_tokens=_usage_value(usage.get("completion_tokens"), self._usage.completion_tokens),
                total_tokens=_usage_value(usage.get("total_tokens"), self._usage.total_tokens),
            )

        choices = chunk.get("choices")
        if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
            return
        delta = choices[0].get("delta")
        if not isinstance(delta, dict):
            return
        token = normalize_content(delta.get("content"))
        if token:
            self._parts.append(token)
            self._on_token(token)

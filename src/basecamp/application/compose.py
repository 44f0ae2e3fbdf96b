"""Message composer: camp state -> outbound chat-completion request.

Composition is pure and deterministic.  The same camp, user text, artifact
selection and tools always produce byte-identical request payloads, which is
what makes persisted history replayable: the messages a turn appends to the
transcript recompose into exactly the sequence that turn sent.

Order of the composed sequence:

1. system prompt (when non-blank)
2. structured memory, as key-sorted JSON
3. selected artifacts, sorted by (title, id), within the character budgets
4. the valid part of the persisted transcript
5. the new user message (when non-blank)
"""

from __future__ import annotations

import json
import logging
from typing import Any, List, Optional, Sequence, Tuple

from basecamp.config.constants import (
    ARTIFACT_ITEM_CHAR_CAP,
    ARTIFACT_TOTAL_CHAR_BUDGET,
    MEMORY_MESSAGE_PREFIX,
    TRUNCATION_MARKER,
)
from basecamp.domain import (
    ArtifactInclusion,
    Camp,
    CampArtifact,
    CampMessage,
    ChatMessage,
    ComposeError,
    ComposedBreakdown,
    ComposedRequest,
    ToolCall,
    ToolSpec,
)

logger = logging.getLogger(__name__)

_TRUNCATION_SUFFIX = "\n" + TRUNCATION_MARKER


# ---------------------------------------------------------------------------
# Building blocks
# ---------------------------------------------------------------------------

def stable_json(value: Any) -> str:
    """Compact JSON with keys sorted at every level, so insertion order never shows."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def truncate_with_marker(text: str, limit: int) -> Tuple[str, bool]:
    """Cut ``text`` to at most ``limit`` characters, marker included.

    Returns ``(text, truncated)``.  When ``limit`` is too small to hold the
    marker, the marker itself is cut.
    """
    if len(text) <= limit:
        return text, False
    if limit <= len(_TRUNCATION_SUFFIX):
        return TRUNCATION_MARKER[: max(limit, 0)], True
    return text[: limit - len(_TRUNCATION_SUFFIX)] + _TRUNCATION_SUFFIX, True


def assistant_message(text: str) -> ChatMessage:
    return ChatMessage(role="assistant", content=text.strip())


def assistant_tool_turn(text: Optional[str], tool_calls: Sequence[ToolCall]) -> ChatMessage:
    """Assistant message that carries tool calls; content is kept (trimmed) even when empty."""
    return ChatMessage(role="assistant", content=(text or "").strip(), tool_calls=list(tool_calls))


def tool_result_message(tool_call_id: str, name: str, content: str) -> ChatMessage:
    return ChatMessage(role="tool", content=content.strip(), name=name, tool_call_id=tool_call_id)


def _replay(message: CampMessage) -> Optional[ChatMessage]:
    """Outbound form of a persisted message, or ``None`` when it must be skipped."""
    content = (message.content or "").strip()
    if message.role == "tool":
        if not message.tool_call_id or not message.name or not content:
            return None
        return tool_result_message(message.tool_call_id, message.name, content)
    if message.role == "assistant" and message.tool_calls:
        return assistant_tool_turn(content, message.tool_calls)
    if message.role not in ("user", "assistant", "system") or not content:
        return None
    return ChatMessage(role=message.role, content=content)


def _artifact_messages(
    artifacts: Sequence[CampArtifact],
) -> Tuple[List[ChatMessage], List[ArtifactInclusion], List[str]]:
    messages: List[ChatMessage] = []
    included: List[ArtifactInclusion] = []
    omitted: List[str] = []
    remaining = ARTIFACT_TOTAL_CHAR_BUDGET

    for artifact in sorted(artifacts, key=lambda a: (a.title, a.id)):
        if remaining <= 0:
            omitted.append(artifact.id)
            continue
        body, truncated = truncate_with_marker(artifact.body, min(ARTIFACT_ITEM_CHAR_CAP, remaining))
        remaining -= len(body)
        messages.append(
            ChatMessage(role="system", content=f"Artifact: {artifact.title} (id: {artifact.id})\n\n{body}")
        )
        included.append(
            ArtifactInclusion(
                id=artifact.id,
                title=artifact.title,
                original_chars=len(artifact.body),
                included_chars=len(body),
                truncated=truncated,
            )
        )
    return messages, included, omitted


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def compose_camp_messages(
    camp: Camp,
    *,
    user_message: str = "",
    selected_artifacts: Optional[Sequence[CampArtifact]] = None,
) -> Tuple[List[ChatMessage], ComposedBreakdown]:
    """Build the ordered message sequence for ``camp`` plus its breakdown."""
    messages: List[ChatMessage] = []

    system_prompt = (camp.system_prompt or "").strip()
    if system_prompt:
        messages.append(ChatMessage(role="system", content=system_prompt))

    memory_json = stable_json(camp.memory)
    messages.append(ChatMessage(role="system", content=MEMORY_MESSAGE_PREFIX + memory_json))

    artifact_msgs, included, omitted = _artifact_messages(selected_artifacts or [])
    messages.extend(artifact_msgs)
    if omitted:
        logger.debug("Artifact budget exhausted; omitted %d artifact(s)", len(omitted))

    transcript_included = 0
    for entry in camp.transcript:
        replayed = _replay(entry)
        if replayed is None:
            continue
        messages.append(replayed)
        transcript_included += 1

    user_text = (user_message or "").strip()
    if user_text:
        messages.append(ChatMessage(role="user", content=user_text))

    breakdown = ComposedBreakdown(
        system_prompt=system_prompt,
        memory_json=memory_json,
        artifacts=included,
        omitted_artifact_ids=omitted,
        transcript_total=len(camp.transcript),
        transcript_included=transcript_included,
        user_message=user_text,
    )
    return messages, breakdown


def validate_request_params(model: str, temperature: float, max_tokens: int) -> None:
    """Raise ``ComposeError`` unless the request parameters are in range."""
    if not isinstance(model, str) or not model.strip():
        raise ComposeError("Model id must be a non-empty string.")
    if isinstance(temperature, bool) or not isinstance(temperature, (int, float)) or not 0 <= temperature <= 2:
        raise ComposeError(f"Temperature must be between 0 and 2, got {temperature!r}.")
    if isinstance(max_tokens, bool) or not isinstance(max_tokens, int) or max_tokens <= 0:
        raise ComposeError(f"max_tokens must be a positive integer, got {max_tokens!r}.")


def compose_camp_request(
    camp: Camp,
    *,
    temperature: float,
    max_tokens: int,
    user_message: str = "",
    selected_artifacts: Optional[Sequence[CampArtifact]] = None,
    tools: Optional[Sequence[ToolSpec]] = None,
    model: Optional[str] = None,
) -> Tuple[ComposedRequest, ComposedBreakdown]:
    """Compose the full request for one turn.

    ``model`` overrides ``camp.config.model``.  A non-empty ``tools`` list is
    attached with ``tool_choice="auto"``; otherwise both fields stay absent.

    Raises:
        ComposeError: model id, temperature or max_tokens out of range.
    """
    model_id = model if model is not None else camp.config.model
    validate_request_params(model_id, temperature, max_tokens)
    messages, breakdown = compose_camp_messages(
        camp, user_message=user_message, selected_artifacts=selected_artifacts
    )
    tool_list = list(tools) if tools else None
    request = ComposedRequest(
        model=model_id.strip(),
        messages=messages,
        temperature=temperature,
        max_tokens=max_tokens,
        tools=tool_list,
        tool_choice="auto" if tool_list else None,
    )
    return request, breakdown

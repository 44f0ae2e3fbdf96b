"""Domain layer: entities and value objects. No I/O."""

from .models import (
    APPROVAL_AUTO_SAFE,
    APPROVAL_MANUAL,
    DECISION_APPROVE,
    DECISION_REJECT,
    ArtifactInclusion,
    Camp,
    CampArtifact,
    CampConfig,
    CampMessage,
    ChatCompletion,
    ChatMessage,
    ComposedBreakdown,
    ComposedRequest,
    LoopResult,
    RunEvent,
    RunState,
    StreamResult,
    TokenUsage,
    ToolCall,
    ToolSpec,
    TurnResult,
)
from .errors import (
    BasecampError,
    ComposeError,
    EmptyOutputError,
    HTTPError,
    LoopExceededError,
    OpenRouterRequestError,
    ResponseValidationError,
    StreamUnavailableError,
    ToolExecutionError,
    ToolRejectedError,
    ToolTimeoutError,
)

__all__ = [
    "APPROVAL_AUTO_SAFE",
    "APPROVAL_MANUAL",
    "DECISION_APPROVE",
    "DECISION_REJECT",
    "ArtifactInclusion",
    "Camp",
    "CampArtifact",
    "CampConfig",
    "CampMessage",
    "ChatCompletion",
    "ChatMessage",
    "ComposedBreakdown",
    "ComposedRequest",
    "LoopResult",
    "RunEvent",
    "RunState",
    "StreamResult",
    "TokenUsage",
    "ToolCall",
    "ToolSpec",
    "TurnResult",
    "BasecampError",
    "ComposeError",
    "EmptyOutputError",
    "HTTPError",
    "LoopExceededError",
    "OpenRouterRequestError",
    "ResponseValidationError",
    "StreamUnavailableError",
    "ToolExecutionError",
    "ToolRejectedError",
    "ToolTimeoutError",
]

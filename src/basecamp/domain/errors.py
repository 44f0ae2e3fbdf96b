"""Domain and application errors."""

from __future__ import annotations

from typing import Any, Dict, Optional


class BasecampError(Exception):
    """Base for runtime errors."""
    pass


class ComposeError(BasecampError):
    """The outbound request could not be built (invalid parameters or missing collaborators)."""
    pass


# ---------------------------------------------------------------------------
# Chat-completion API errors
# ---------------------------------------------------------------------------

class OpenRouterRequestError(BasecampError):
    """A chat-completion request failed.

    Carries the request payload that was sent and, when one was received, the
    decoded response body so callers can surface or log the exchange.
    """

    def __init__(
        self,
        message: str,
        *,
        request_payload: Optional[Dict[str, Any]] = None,
        response_payload: Any = None,
    ) -> None:
        super().__init__(message)
        self.request_payload = request_payload
        self.response_payload = response_payload


class HTTPError(OpenRouterRequestError):
    """The API answered with a non-2xx status."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int,
        request_payload: Optional[Dict[str, Any]] = None,
        response_payload: Any = None,
    ) -> None:
        super().__init__(message, request_payload=request_payload, response_payload=response_payload)
        self.status_code = status_code


class ResponseValidationError(OpenRouterRequestError):
    """The response body does not match the chat-completion schema."""
    pass


class StreamUnavailableError(OpenRouterRequestError):
    """A streaming request was accepted but no readable body came back."""
    pass


# ---------------------------------------------------------------------------
# Tool execution errors (converted to tool-message data by the gateway)
# ---------------------------------------------------------------------------

class ToolExecutionError(BasecampError):
    """Tool execution failed."""
    pass


class ToolTimeoutError(ToolExecutionError):
    """Tool did not finish before its deadline."""

    def __init__(self, tool_name: str, timeout_s: float) -> None:
        super().__init__(f'Tool "{tool_name}" timed out after {_format_seconds(timeout_s)}s')
        self.tool_name = tool_name
        self.timeout_s = timeout_s


class ToolRejectedError(ToolExecutionError):
    """The user rejected the tool call at the approval gate."""

    def __init__(self, message: str = "Tool call rejected by user.") -> None:
        super().__init__(message)


# ---------------------------------------------------------------------------
# Loop errors
# ---------------------------------------------------------------------------

class LoopExceededError(BasecampError):
    """The model kept requesting tools past the iteration ceiling."""

    def __init__(self, max_iterations: int) -> None:
        super().__init__(f"Tool-use loop exceeded {max_iterations} iterations.")
        self.max_iterations = max_iterations


class EmptyOutputError(BasecampError):
    """The model finished without producing any text."""

    def __init__(self, message: str = "Model returned an empty response.") -> None:
        super().__init__(message)


def _format_seconds(value: float) -> str:
    # 30.0 -> "30", 0.5 -> "0.5"
    return f"{value:g}"

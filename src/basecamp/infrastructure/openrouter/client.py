"""OpenRouter chat-completions client.

Speaks the OpenAI-compatible ``POST {base_url}/chat/completions`` protocol in
both modes the runtime needs: a plain JSON request for tool-use rounds and a
``text/event-stream`` request for tool-less turns, decoded incrementally by
:class:`~basecamp.infrastructure.openrouter.sse.SSEStreamDecoder`.

Failures map onto the runtime's error taxonomy: non-2xx ->
``HTTPError``, schema mismatch -> ``ResponseValidationError``, missing
stream body -> ``StreamUnavailableError``.  Transport errors from httpx
propagate unchanged after the error hook has fired.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Optional

import httpx

from basecamp.application.hooks import (
    RequestEndEvent,
    RequestErrorEvent,
    RequestStartEvent,
    StreamChunkEvent,
    TelemetryHooks,
    call_hook,
    now_ms,
)
from basecamp.config.constants import (
    CORRELATION_ID_HEADER,
    DEFAULT_APP_TITLE,
    DEFAULT_OPENROUTER_BASE_URL,
    DEFAULT_REFERER,
    OPENROUTER_DEFAULT_TIMEOUT_S,
)
from basecamp.config.schema import OpenRouterConfig
from basecamp.domain import (
    ChatCompletion,
    ComposedRequest,
    HTTPError,
    OpenRouterRequestError,
    StreamResult,
    StreamUnavailableError,
)
from basecamp.infrastructure.openrouter._parser import parse_completion
from basecamp.infrastructure.openrouter.sse import SSEStreamDecoder

logger = logging.getLogger(__name__)

STREAM_UNAVAILABLE_MESSAGE = "OpenRouter response stream is not available."

_BLOCKED_HEADERS = frozenset({"set-cookie", "cookie", "authorization", "proxy-authorization"})


def safe_response_headers(response: httpx.Response) -> Dict[str, str]:
    """Response headers minus credentials and cookies."""
    return {k: v for k, v in response.headers.items() if k.lower() not in _BLOCKED_HEADERS}


def _json_or_none(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


def _error_message(status: int, body: Any) -> str:
    """``error.message`` from the body when present, else a generic status message."""
    if isinstance(body, dict):
        err = body.get("error")
        if isinstance(err, dict) and isinstance(err.get("message"), str):
            return err["message"]
    return f"OpenRouter request failed with status {status}"


class OpenRouterChatClient:
    """Chat-completion client for OpenRouter and other OpenAI-compatible APIs.

    A new ``httpx.AsyncClient`` is opened per request.  ``transport`` is
    passed through to it (tests use ``httpx.MockTransport``).
    """

    def __init__(
        self,
        base_url: str = DEFAULT_OPENROUTER_BASE_URL,
        api_key: str = "",
        timeout_s: float = OPENROUTER_DEFAULT_TIMEOUT_S,
        app_title: str = DEFAULT_APP_TITLE,
        referer: str = DEFAULT_REFERER,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout_s
        self._app_title = app_title
        self._referer = referer
        self._transport = transport

    @classmethod
    def from_config(
        cls,
        config: OpenRouterConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "OpenRouterChatClient":
        return cls(
            base_url=config.base_url,
            api_key=config.api_key,
            timeout_s=config.timeout_s,
            app_title=config.app_title,
            referer=config.referer,
            transport=transport,
        )

    @property
    def url(self) -> str:
        return f"{self._base_url}/chat/completions"

    def _headers(self, correlation_id: Optional[str]) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        headers["Content-Type"] = "application/json"
        headers["HTTP-Referer"] = self._referer
        headers["X-Title"] = self._app_title
        if correlation_id:
            headers[CORRELATION_ID_HEADER] = correlation_id
        return headers

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=httpx.Timeout(self._timeout), transport=self._transport)

    # ------------------------------------------------------------------
    # Non-streaming
    # ------------------------------------------------------------------

    async def complete(
        self,
        request: ComposedRequest,
        *,
        correlation_id: Optional[str] = None,
        hooks: Optional[TelemetryHooks] = None,
    ) -> ChatCompletion:
        """Send one non-streaming request and return the validated response."""
        hooks = hooks or TelemetryHooks()
        payload = request.to_payload()
        started = time.monotonic()
        self._on_start(hooks, correlation_id, request, payload, stream=False)

        try:
            async with self._client() as client:
                response = await client.post(self.url, headers=self._headers(correlation_id), json=payload)
        except httpx.HTTPError as exc:
            self._on_error(hooks, correlation_id, started, str(exc) or type(exc).__name__)
            raise

        body = _json_or_none(response)
        if not response.is_success:
            message = _error_message(response.status_code, body)
            self._on_error(hooks, correlation_id, started, message, status=response.status_code)
            raise HTTPError(
                message,
                status_code=response.status_code,
                request_payload=payload,
                response_payload=body,
            )

        try:
            completion = parse_completion(body, request_payload=payload)
        except OpenRouterRequestError as exc:
            self._on_error(hooks, correlation_id, started, str(exc), status=response.status_code)
            raise

        call_hook(
            hooks.on_request_end,
            RequestEndEvent(
                correlation_id=correlation_id,
                timestamp_ms=now_ms(),
                duration_ms=_elapsed_ms(started),
                status=response.status_code,
                headers=safe_response_headers(response),
                model=completion.model,
                usage=completion.usage,
                response_payload=body,
            ),
        )
        return completion

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    async def stream(
        self,
        request: ComposedRequest,
        on_token: Callable[[str], None],
        *,
        correlation_id: Optional[str] = None,
        hooks: Optional[TelemetryHooks] = None,
    ) -> StreamResult:
        """Send a streaming request; ``on_token`` fires for every content delta."""
        hooks = hooks or TelemetryHooks()
        payload = request.with_stream(True).to_payload()
        started = time.monotonic()
        self._on_start(hooks, correlation_id, request, payload, stream=True)

        def _on_chunk(count: int) -> None:
            call_hook(
                hooks.on_stream_chunk,
                StreamChunkEvent(correlation_id=correlation_id, timestamp_ms=now_ms(), chunk_count=count),
            )

        decoder = SSEStreamDecoder(on_token, on_chunk=_on_chunk)
        try:
            async with self._client() as client:
                async with client.stream(
                    "POST", self.url, headers=self._headers(correlation_id), json=payload
                ) as response:
                    if not response.is_success:
                        await response.aread()
                        body = _json_or_none(response)
                        message = _error_message(response.status_code, body)
                        self._on_error(hooks, correlation_id, started, message, status=response.status_code)
                        raise HTTPError(
                            message,
                            status_code=response.status_code,
                            request_payload=payload,
                            response_payload=body,
                        )
                    if response.status_code == 204 or response.headers.get("content-length") == "0":
                        self._on_error(
                            hooks, correlation_id, started, STREAM_UNAVAILABLE_MESSAGE, status=response.status_code
                        )
                        raise StreamUnavailableError(STREAM_UNAVAILABLE_MESSAGE, request_payload=payload)
                    try:
                        async for text in response.aiter_text():
                            decoder.feed(text)
                    except httpx.StreamError as exc:
                        self._on_error(
                            hooks, correlation_id, started, STREAM_UNAVAILABLE_MESSAGE, status=response.status_code
                        )
                        raise StreamUnavailableError(STREAM_UNAVAILABLE_MESSAGE, request_payload=payload) from exc
                    status = response.status_code
                    headers = safe_response_headers(response)
        except httpx.HTTPError as exc:
            self._on_error(hooks, correlation_id, started, str(exc) or type(exc).__name__)
            raise

        result = decoder.finish()
        logger.debug(
            "Stream done: model=%s chunks=%d chars=%d", result.model, result.chunks_processed, len(result.output_text)
        )
        call_hook(
            hooks.on_request_end,
            RequestEndEvent(
                correlation_id=correlation_id,
                timestamp_ms=now_ms(),
                duration_ms=_elapsed_ms(started),
                status=status,
                headers=headers,
                model=result.model,
                usage=result.usage,
                response_payload={
                    "chunks_processed": result.chunks_processed,
                    "output_text": result.output_text,
                },
            ),
        )
        return result

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    def _on_start(
        self,
        hooks: TelemetryHooks,
        correlation_id: Optional[str],
        request: ComposedRequest,
        payload: Dict[str, Any],
        *,
        stream: bool,
    ) -> None:
        logger.debug(
            "POST %s model=%s messages=%d tools=%d stream=%s",
            self.url, request.model, len(request.messages), len(request.tools or []), stream,
        )
        call_hook(
            hooks.on_request_start,
            RequestStartEvent(
                correlation_id=correlation_id,
                timestamp_ms=now_ms(),
                model=request.model,
                stream=stream,
                message_count=len(request.messages),
                tool_count=len(request.tools or []),
                request_payload=payload,
            ),
        )

    @staticmethod
    def _on_error(
        hooks: TelemetryHooks,
        correlation_id: Optional[str],
        started: float,
        message: str,
        *,
        status: Optional[int] = None,
    ) -> None:
        logger.warning("OpenRouter request failed: status=%s error=%s", status, message)
        call_hook(
            hooks.on_request_error,
            RequestErrorEvent(
                correlation_id=correlation_id,
                timestamp_ms=now_ms(),
                duration_ms=_elapsed_ms(started),
                error=message,
                status=status,
            ),
        )


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)

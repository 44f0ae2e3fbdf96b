"""Optional OpenTelemetry tracing for basecamp.

With ``opentelemetry-api`` and ``opentelemetry-sdk`` installed (``pip install
"basecamp-runtime[otel]"``) and ``telemetry.enabled`` set, spans go to the
configured exporter.  Otherwise ``get_tracer()`` hands back a no-op tracer
with the same surface, so call sites never branch.

Usage::

    from basecamp.infrastructure.telemetry import get_tracer

    with get_tracer().start_as_current_span("basecamp.tool_call") as span:
        span.set_attribute("tool_name", name)

Spans emitted by the runtime: ``basecamp.turn``, ``basecamp.llm_call``,
``basecamp.tool_call``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from basecamp.config import BasecampConfig
    from basecamp.config.schema import TelemetryConfig

logger = logging.getLogger(__name__)

TRACER_NAME = "basecamp"

try:
    import opentelemetry  # noqa: F401
    _otel_available = True
except ImportError:
    _otel_available = False


class _NoOpSpan:
    """Span stand-in: accepts every call, records nothing."""

    __slots__ = ()

    def set_attribute(self, key: str, value: Any) -> None:  # noqa: ARG002
        return None

    def record_exception(self, exc: BaseException) -> None:  # noqa: ARG002
        return None

    def set_status(self, *args: Any, **kwargs: Any) -> None:  # noqa: ARG002
        return None

    def __enter__(self) -> "_NoOpSpan":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        return None


_NOOP_SPAN = _NoOpSpan()


class _NoOpTracer:
    def start_as_current_span(self, name: str, **kwargs: Any) -> _NoOpSpan:  # noqa: ARG002
        return _NOOP_SPAN


NOOP_TRACER = _NoOpTracer()

_tracer: Any = None


def _build_exporter(tel_cfg: "TelemetryConfig") -> Optional[Any]:
    """Span exporter for ``tel_cfg.exporter``, or ``None`` when spans are not exported."""
    if tel_cfg.exporter == "none":
        return None
    if tel_cfg.exporter == "console":
        from opentelemetry.sdk.trace.export import ConsoleSpanExporter
        return ConsoleSpanExporter()
    if tel_cfg.exporter == "otlp":
        if not tel_cfg.otlp_endpoint:
            logger.warning("telemetry.exporter is 'otlp' but otlp_endpoint is empty; spans will not be exported")
            return None
        try:
            from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
        except ImportError:
            logger.warning("OTLP export needs 'opentelemetry-exporter-otlp-proto-grpc'; spans will not be exported")
            return None
        return OTLPSpanExporter(endpoint=tel_cfg.otlp_endpoint)
    logger.warning("Unknown telemetry exporter %r; spans will not be exported", tel_cfg.exporter)
    return None


def setup_telemetry(config: "BasecampConfig") -> None:
    """Install a tracer provider according to ``config.telemetry``.

    Safe to call more than once; only the first successful call has effect.
    Does nothing when telemetry is disabled or OpenTelemetry is missing.
    """
    global _tracer  # noqa: PLW0603
    if _tracer is not None:
        return

    tel_cfg = config.telemetry
    if not tel_cfg.enabled:
        logger.debug("Telemetry disabled; spans are no-ops")
        return
    if not _otel_available:
        logger.warning(
            "telemetry.enabled is set but opentelemetry-sdk is not installed. "
            "Install with: pip install 'basecamp-runtime[otel]'"
        )
        return

    from opentelemetry import trace
    from opentelemetry.sdk.resources import SERVICE_NAME, Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import BatchSpanProcessor

    provider = TracerProvider(resource=Resource(attributes={SERVICE_NAME: tel_cfg.service_name}))
    exporter = _build_exporter(tel_cfg)
    if exporter is not None:
        provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)
    _tracer = trace.get_tracer(TRACER_NAME)
    logger.debug("Telemetry on: service=%s exporter=%s", tel_cfg.service_name, tel_cfg.exporter)


def get_tracer() -> Any:
    """The installed tracer, or the no-op tracer."""
    return _tracer if _tracer is not None else NOOP_TRACER


def reset_for_testing() -> None:
    """Forget the installed tracer."""
    global _tracer  # noqa: PLW0603
    _tracer = None

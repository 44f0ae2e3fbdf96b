"""Tests for infrastructure/telemetry.py: no-op shim and real OTEL integration.

Tests that exercise real OTEL spans use InMemorySpanExporter and are skipped
when opentelemetry-sdk is not installed.
"""
from __future__ import annotations

import pytest

from basecamp.config.schema import BasecampConfig, TelemetryConfig
from basecamp.infrastructure import telemetry
from basecamp.infrastructure.telemetry import NOOP_TRACER, get_tracer, reset_for_testing, setup_telemetry


def test_noop_tracer_spans_accept_everything():
    with NOOP_TRACER.start_as_current_span("basecamp.turn") as span:
        span.set_attribute("camp_id", "camp-1")
        span.record_exception(RuntimeError("x"))
        span.set_status("ERROR")


def test_get_tracer_is_noop_when_disabled():
    setup_telemetry(BasecampConfig())
    assert get_tracer() is NOOP_TRACER


def test_enabled_without_otel_warns_and_stays_noop(monkeypatch, caplog):
    monkeypatch.setattr(telemetry, "_otel_available", False)
    with caplog.at_level("WARNING", logger="basecamp.infrastructure.telemetry"):
        setup_telemetry(BasecampConfig(telemetry=TelemetryConfig(enabled=True)))
    assert get_tracer() is NOOP_TRACER
    assert "opentelemetry-sdk is not installed" in caplog.text


def test_reset_for_testing_restores_noop():
    telemetry._tracer = object()
    reset_for_testing()
    assert get_tracer() is NOOP_TRACER


def test_real_tracer_records_spans():
    pytest.importorskip("opentelemetry.sdk")
    from opentelemetry import trace

    setup_telemetry(BasecampConfig(telemetry=TelemetryConfig(enabled=True, exporter="none")))
    tracer = get_tracer()
    assert tracer is not NOOP_TRACER
    with tracer.start_as_current_span("basecamp.tool_call") as span:
        span.set_attribute("tool_name", "read_file")
        assert trace.get_current_span() is span

"""Configuration schema. Defaults point at the public OpenRouter API."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator, model_validator

from .constants import (
    DEFAULT_APP_TITLE,
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_OPENROUTER_BASE_URL,
    DEFAULT_REFERER,
    DEFAULT_TOOL_TIMEOUT_S,
    MAX_ITERATIONS_CEILING,
    OPENROUTER_DEFAULT_TIMEOUT_S,
)


class OpenRouterConfig(BaseModel):
    """Chat-completion endpoint (OpenRouter or any OpenAI-compatible API)."""
    base_url: str = Field(DEFAULT_OPENROUTER_BASE_URL, description="API root; /chat/completions is appended.")
    api_key: str = Field("", description="Bearer token; no Authorization header is sent when empty.")
    timeout_s: float = Field(OPENROUTER_DEFAULT_TIMEOUT_S, gt=0, description="HTTP read timeout per request.")
    app_title: str = Field(DEFAULT_APP_TITLE, description="Sent as X-Title.")
    referer: str = Field(DEFAULT_REFERER, description="Sent as HTTP-Referer.")


class ToolLoopConfig(BaseModel):
    """Limits and approval behaviour for tool-enabled turns."""
    max_iterations: int = Field(DEFAULT_MAX_ITERATIONS, ge=1, le=MAX_ITERATIONS_CEILING)
    tool_timeout_s: float = Field(DEFAULT_TOOL_TIMEOUT_S, gt=0)
    approval_policy: str = Field(
        "manual",
        description="'manual': every tool call waits for a decision. 'auto-safe': only mutating tools wait.",
    )

    @field_validator("approval_policy")
    @classmethod
    def _check_policy(cls, value: str) -> str:
        if value not in ("manual", "auto-safe"):
            raise ValueError(f"approval_policy must be 'manual' or 'auto-safe', got {value!r}")
        return value


class TelemetryConfig(BaseModel):
    """Optional OpenTelemetry tracing configuration."""
    enabled: bool = False
    service_name: str = "basecamp"
    exporter: str = Field(
        "none",
        description="Span exporter: 'none' (default), 'console' (stdout), or 'otlp' (gRPC endpoint).",
    )
    otlp_endpoint: str = Field(
        "",
        description="OTLP gRPC endpoint, e.g. 'http://localhost:4317'. Required when exporter='otlp'.",
    )


class BasecampConfig(BaseModel):
    """Root config."""
    openrouter: OpenRouterConfig = Field(default_factory=OpenRouterConfig)
    tool_loop: ToolLoopConfig = Field(default_factory=ToolLoopConfig)
    telemetry: TelemetryConfig = Field(default_factory=TelemetryConfig)
    default_model: str = Field("openrouter/auto", description="Used when a camp has no model set.")
    temperature: float = Field(0.3, ge=0, le=2)
    max_tokens: int = Field(1024, gt=0)
    run_log_dir: str = Field(".basecamp", description="Root directory for run-state logs.")

    @model_validator(mode="after")
    def _check_default_model(self) -> "BasecampConfig":
        if not self.default_model.strip():
            raise ValueError("default_model must not be empty")
        return self


DEFAULT_CONFIG = BasecampConfig()

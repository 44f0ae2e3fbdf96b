"""Configuration: schema and loading from env/file."""

from .schema import DEFAULT_CONFIG, BasecampConfig, OpenRouterConfig, TelemetryConfig, ToolLoopConfig
from .loader import load_config

get_config = load_config  # alias

__all__ = [
    "DEFAULT_CONFIG",
    "BasecampConfig",
    "OpenRouterConfig",
    "TelemetryConfig",
    "ToolLoopConfig",
    "load_config",
    "get_config",
]

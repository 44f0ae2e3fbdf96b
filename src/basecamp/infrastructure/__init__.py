"""Adapters for the application ports: HTTP client, approval broker, run-state log, tracing."""

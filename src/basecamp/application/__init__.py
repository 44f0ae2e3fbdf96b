"""Use cases and ports. Depends on the domain layer only (plus the tracer)."""

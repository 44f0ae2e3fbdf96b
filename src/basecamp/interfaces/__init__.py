"""CLI and other entry points."""

"""Use cases — top-level operations called by the CLI."""

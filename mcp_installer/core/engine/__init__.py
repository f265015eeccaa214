"""Execution engine — step runners, recovery, executor, verifier."""

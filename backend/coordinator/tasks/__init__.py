"""Shared task queue and claim protocol."""

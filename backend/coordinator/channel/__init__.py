"""Shared agent channel with per-sender rate limiting."""

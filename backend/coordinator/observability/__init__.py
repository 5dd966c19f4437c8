"""Logging and request context for the coordinator service."""

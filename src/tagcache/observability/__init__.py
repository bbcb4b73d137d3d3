"""Observability – structured logging for the cache backends."""

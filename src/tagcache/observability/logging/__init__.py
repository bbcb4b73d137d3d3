"""Observability – structured logging helpers."""
from tagcache.observability.logging.factory import JsonLoggerFactory
from tagcache.observability.logging.processors import CacheErrorProcessor, get_logger

__all__ = ["CacheErrorProcessor", "JsonLoggerFactory", "get_logger"]

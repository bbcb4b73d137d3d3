"""Adapters – storage drivers for the cache backends."""

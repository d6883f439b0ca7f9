"""Persistence layer."""

from smartdocs.storage.store import Store, get_store

__all__ = ["Store", "get_store"]

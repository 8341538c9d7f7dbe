"""Pending intent stores (in-memory, Redis)."""

# Re-export convenience types for app assembly
from .memory_store import InMemoryPendingStore
from .redis_store import RedisPendingStore

__all__ = [
    "InMemoryPendingStore",
    "RedisPendingStore",
]

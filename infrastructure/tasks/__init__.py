"""Background task infrastructure (in-process asyncio tasks)."""
from .sweeper import PendingSweeper

__all__ = ["PendingSweeper"]

"""Operator alert port."""
from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class AlertPort(Protocol):
    async def send(self, text: str) -> None: ...

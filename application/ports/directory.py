"""Application-owned directory (mailing list) port.

The reconciliation flow enrolls a paying subject into a destination group;
adapters translate these calls to the concrete mailing-list API.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Protocol, runtime_checkable


@dataclass
class DirectoryEntry:
    id: str
    groups: list[str] = field(default_factory=list)

    def in_group(self, group_id: str) -> bool:
        return str(group_id) in {str(g) for g in self.groups}


@dataclass
class SubscriberRecord:
    email: str
    group_id: str
    name: Optional[str] = None
    phone: Optional[str] = None
    category: Optional[str] = None
    receipt_number: Optional[str] = None
    amount: Optional[Any] = None

    def fields(self) -> dict[str, Any]:
        values = {
            "name": self.name,
            "phone": self.phone,
            "industry": self.category,
            "mpesa_receipt": self.receipt_number,
            "amount": self.amount,
        }
        return {k: v for k, v in values.items() if v not in (None, "")}


@runtime_checkable
class DirectoryPort(Protocol):
    async def find_by_subject_id(self, subject_id: str) -> Optional[DirectoryEntry]: ...

    async def remove_from_group(self, entry_id: str, group_id: str) -> None: ...

    async def upsert(self, record: SubscriberRecord) -> None: ...

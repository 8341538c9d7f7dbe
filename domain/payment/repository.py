"""
待回调支付意图仓储接口 - 只定义能做什么，不管怎么做
"""
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Optional

from .entity import PaymentIntent


class PendingStore(ABC):
    """Owns pending payment intents keyed by correlation key.

    Absence is "not found", never an error. ``take_if_present`` is the only
    path that resolves a record: reading and removing happen together, so
    two callbacks for the same key can never both observe it.
    """

    @abstractmethod
    async def put(self, key: str, intent: PaymentIntent) -> None:
        """登记新的支付意图"""

    @abstractmethod
    async def rekey(self, old_key: str, new_key: str, *, merchant_request_id: Optional[str] = None) -> bool:
        """原子地把记录从临时键迁移到网关交易号；旧键随即失效"""

    @abstractmethod
    async def take_if_present(self, key: str) -> Optional[PaymentIntent]:
        """原子地查找并移除记录"""

    @abstractmethod
    async def sweep_expired(self, max_age: Optional[timedelta] = None) -> int:
        """回收超过 TTL 的记录，返回回收数量"""

    @abstractmethod
    async def get(self, key: str) -> Optional[PaymentIntent]:
        """只读查询（返回副本），不参与对账"""

    @abstractmethod
    async def count(self) -> int:
        """当前待回调记录数"""

    async def aclose(self) -> None:
        return None

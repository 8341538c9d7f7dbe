"""In-memory implementation of PendingStore.

Single-process only. The map is split into shards, each with its own
asyncio.Lock, so unrelated keys never contend on one lock. Operations that
touch two keys (rekey) take both shard locks in shard-index order.
"""
from __future__ import annotations

import asyncio
import zlib
from contextlib import AsyncExitStack
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from core.logging_config import get_logger
from domain.payment.entity import IntentState, PaymentIntent, utc_now
from domain.payment.repository import PendingStore


logger = get_logger(__name__)


class _Shard:
    __slots__ = ("index", "lock", "records")

    def __init__(self, index: int) -> None:
        self.index = index
        self.lock = asyncio.Lock()
        self.records: Dict[str, PaymentIntent] = {}


class InMemoryPendingStore(PendingStore):
    def __init__(
        self,
        *,
        ttl_seconds: float = 300,
        shards: int = 16,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._ttl = timedelta(seconds=ttl_seconds)
        self._shards: List[_Shard] = [_Shard(i) for i in range(max(1, shards))]
        self._clock = clock or utc_now

    def _shard_for(self, key: str) -> _Shard:
        return self._shards[zlib.crc32(key.encode("utf-8")) % len(self._shards)]

    def _expired(self, intent: PaymentIntent, max_age: Optional[timedelta] = None) -> bool:
        return intent.is_expired(max_age or self._ttl, now=self._clock())

    async def put(self, key: str, intent: PaymentIntent) -> None:  # type: ignore[override]
        shard = self._shard_for(key)
        async with shard.lock:
            previous = shard.records.get(key)
            if previous is not None and not self._expired(previous):
                logger.warning("pending_intent_replaced", correlation_key=key, previous_state=previous.state.value)
            shard.records[key] = intent
        logger.info("pending_intent_stored", correlation_key=key, state=intent.state.value)

    async def rekey(self, old_key: str, new_key: str, *, merchant_request_id: Optional[str] = None) -> bool:  # type: ignore[override]
        if old_key == new_key:
            return False
        src, dst = self._shard_for(old_key), self._shard_for(new_key)
        ordered = sorted({src.index: src, dst.index: dst}.values(), key=lambda s: s.index)
        async with AsyncExitStack() as stack:
            for shard in ordered:
                await stack.enter_async_context(shard.lock)

            intent = src.records.get(old_key)
            if intent is None:
                logger.warning("pending_rekey_missing", old_key=old_key, new_key=new_key)
                return False
            if self._expired(intent):
                del src.records[old_key]
                intent.expire()
                logger.info("pending_rekey_expired", old_key=old_key, new_key=new_key)
                return False
            if intent.state is not IntentState.AWAITING_GATEWAY_ID:
                logger.warning("pending_rekey_invalid_state", old_key=old_key, state=intent.state.value)
                return False
            existing = dst.records.get(new_key)
            if existing is not None and not self._expired(existing):
                logger.error("pending_rekey_conflict", old_key=old_key, new_key=new_key)
                return False

            intent.bind_gateway_id(new_key, merchant_request_id)
            del src.records[old_key]
            dst.records[new_key] = intent
        logger.info("pending_intent_rekeyed", old_key=old_key, correlation_key=new_key)
        return True

    async def take_if_present(self, key: str) -> Optional[PaymentIntent]:  # type: ignore[override]
        shard = self._shard_for(key)
        async with shard.lock:
            intent = shard.records.pop(key, None)
        if intent is None:
            return None
        if self._expired(intent):
            intent.expire()
            logger.info("pending_intent_expired_on_take", correlation_key=key)
            return None
        return intent

    async def sweep_expired(self, max_age: Optional[timedelta] = None) -> int:  # type: ignore[override]
        reclaimed = 0
        for shard in self._shards:
            async with shard.lock:
                stale = [k for k, intent in shard.records.items() if self._expired(intent, max_age)]
                for key in stale:
                    shard.records.pop(key).expire()
            reclaimed += len(stale)
        if reclaimed:
            logger.info("pending_intents_swept", reclaimed=reclaimed)
        return reclaimed

    async def get(self, key: str) -> Optional[PaymentIntent]:  # type: ignore[override]
        shard = self._shard_for(key)
        async with shard.lock:
            intent = shard.records.get(key)
            if intent is None or self._expired(intent):
                return None
            return intent.copy()

    async def count(self) -> int:  # type: ignore[override]
        total = 0
        for shard in self._shards:
            async with shard.lock:
                total += len(shard.records)
        return total

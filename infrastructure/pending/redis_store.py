"""Redis implementation of PendingStore.

Shared by every worker process pointing at the same Redis. Records are JSON
values with a PX expiry equal to the TTL, so Redis reclaims abandoned
intents itself and ``sweep_expired`` has nothing to do.
"""
from __future__ import annotations

import json
from datetime import timedelta
from typing import Any, Optional

from core.logging_config import get_logger
from domain.payment.entity import IntentState, PaymentIntent
from domain.payment.repository import PendingStore


logger = get_logger(__name__)


# Compare-and-swap move of a pending record to its gateway key.
# KEYS[1] = old key, KEYS[2] = new key
# ARGV[1] = expected current value of KEYS[1], ARGV[2] = new value
# Returns: 1 moved, 0 old key gone or changed, -1 new key already live
REKEY_LUA_SCRIPT = """
local current = redis.call('GET', KEYS[1])
if (not current) or current ~= ARGV[1] then
    return 0
end
if redis.call('EXISTS', KEYS[2]) == 1 then
    return -1
end
local ttl = redis.call('PTTL', KEYS[1])
redis.call('DEL', KEYS[1])
if ttl > 0 then
    redis.call('SET', KEYS[2], ARGV[2], 'PX', ttl)
else
    redis.call('SET', KEYS[2], ARGV[2])
end
return 1
"""


class RedisPendingStore(PendingStore):
    def __init__(self, client: Any, *, ttl_seconds: float = 300, namespace: str = "stkpush") -> None:
        self._redis = client
        self._ttl_ms = int(ttl_seconds * 1000)
        self._prefix = f"{namespace}:pending:"
        self._rekey_script = client.register_script(REKEY_LUA_SCRIPT)

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    @staticmethod
    def _dump(intent: PaymentIntent) -> str:
        return json.dumps(intent.to_dict(), ensure_ascii=False, sort_keys=True)

    @staticmethod
    def _load(raw: Any) -> Optional[PaymentIntent]:
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        try:
            return PaymentIntent.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as exc:
            logger.error("pending_record_corrupt", error=str(exc))
            return None

    async def put(self, key: str, intent: PaymentIntent) -> None:  # type: ignore[override]
        await self._redis.set(self._key(key), self._dump(intent), px=self._ttl_ms)
        logger.info("pending_intent_stored", correlation_key=key, state=intent.state.value, backend="redis")

    async def rekey(self, old_key: str, new_key: str, *, merchant_request_id: Optional[str] = None) -> bool:  # type: ignore[override]
        if old_key == new_key:
            return False
        raw = await self._redis.get(self._key(old_key))
        intent = self._load(raw)
        if intent is None or intent.state is not IntentState.AWAITING_GATEWAY_ID:
            logger.warning("pending_rekey_missing", old_key=old_key, new_key=new_key, backend="redis")
            return False
        expected = raw.decode("utf-8") if isinstance(raw, bytes) else raw
        intent.bind_gateway_id(new_key, merchant_request_id)
        result = int(
            await self._rekey_script(
                keys=[self._key(old_key), self._key(new_key)],
                args=[expected, self._dump(intent)],
            )
        )
        if result == 1:
            logger.info("pending_intent_rekeyed", old_key=old_key, correlation_key=new_key, backend="redis")
            return True
        if result == -1:
            logger.error("pending_rekey_conflict", old_key=old_key, new_key=new_key, backend="redis")
        else:
            logger.warning("pending_rekey_lost_race", old_key=old_key, new_key=new_key, backend="redis")
        return False

    async def take_if_present(self, key: str) -> Optional[PaymentIntent]:  # type: ignore[override]
        return self._load(await self._redis.getdel(self._key(key)))

    async def sweep_expired(self, max_age: Optional[timedelta] = None) -> int:  # type: ignore[override]
        # Redis PX expiry already reclaims stale records
        return 0

    async def get(self, key: str) -> Optional[PaymentIntent]:  # type: ignore[override]
        return self._load(await self._redis.get(self._key(key)))

    async def count(self) -> int:  # type: ignore[override]
        total = 0
        async for _ in self._redis.scan_iter(match=f"{self._prefix}*", count=500):
            total += 1
        return total

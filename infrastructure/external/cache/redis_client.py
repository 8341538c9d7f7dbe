"""
Redis 连接管理 - 进程级单例，供 Redis 版待回调存储使用
"""
from __future__ import annotations

import asyncio
import socket
from typing import Optional

from redis import asyncio as aioredis

from core.config import settings
from core.logging_config import get_logger


logger = get_logger(__name__)

_redis_client: Optional[aioredis.Redis] = None
_lock = asyncio.Lock()


def _keepalive_options() -> dict:
    # 构建跨平台 keepalive 选项（若可用）
    if hasattr(socket, "TCP_KEEPIDLE") and hasattr(socket, "TCP_KEEPINTVL") and hasattr(socket, "TCP_KEEPCNT"):
        return {
            socket.TCP_KEEPIDLE: 1,
            socket.TCP_KEEPINTVL: 1,
            socket.TCP_KEEPCNT: 3,
        }
    return {}


async def init_redis_client(**kwargs) -> aioredis.Redis:
    """
    初始化Redis客户端

    Args:
        **kwargs: 其他Redis连接参数

    Returns:
        redis.asyncio.Redis 实例
    """
    global _redis_client

    if _redis_client is not None:
        return _redis_client

    async with _lock:
        if _redis_client is not None:
            return _redis_client

        if not settings.redis.url:
            raise RuntimeError("REDIS__URL 未配置，无法初始化Redis客户端")

        client = aioredis.from_url(
            settings.redis.url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=settings.redis.max_connections,
            socket_keepalive=True,
            socket_keepalive_options=_keepalive_options(),
            **kwargs
        )
        # 测试连接
        await client.ping()
        _redis_client = client
        logger.info("redis_client_initialized", namespace=settings.redis.namespace)
        return client


async def shutdown_redis_client() -> None:
    """关闭Redis连接"""
    global _redis_client

    if _redis_client is None:
        return
    try:
        await _redis_client.aclose()
        logger.info("redis_client_closed")
    except Exception as exc:
        logger.error("redis_client_close_failed", error=str(exc))
    finally:
        _redis_client = None


__all__ = [
    "init_redis_client",
    "shutdown_redis_client",
]

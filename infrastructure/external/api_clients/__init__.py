"""
API客户端模块

目录服务与告警适配器共用的 REST 客户端基类
"""
from .base import APIError, APIResponse, BaseAPIClient, NotFoundError

__all__ = [
    "BaseAPIClient",
    "APIResponse",
    "APIError",
    "NotFoundError",
]

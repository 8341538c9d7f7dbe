"""
配置文件 - 项目配置管理
"""
import json
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RedisSettings(BaseModel):
    url: Optional[str] = None
    max_connections: int = 10
    namespace: str = "stkpush"


class PendingStoreSettings(BaseModel):
    # memory: single process (default); redis: shared across workers
    backend: Literal["memory", "redis"] = "memory"
    ttl_seconds: int = Field(default=300, gt=0)
    sweep_interval_seconds: int = Field(default=60, gt=0)
    shards: int = Field(default=16, gt=0)


class Settings(BaseSettings):
    """项目配置"""

    # 基础配置
    PROJECT_NAME: str = Field(default="STK Push Enrollment Service")
    VERSION: str = Field(default="1.0.0")
    DEBUG: bool = Field(default=False)
    ENVIRONMENT: str = Field(default="development")
    PORT: int = Field(default=3000)

    redis: RedisSettings = Field(default_factory=RedisSettings)
    pending: PendingStoreSettings = Field(default_factory=PendingStoreSettings)

    # CORS配置
    CORS_ORIGINS: list = Field(default=["http://localhost:3000"])

    # 日志/请求体记录配置
    LOG_REQUEST_BODY_ENABLE_BY_DEFAULT: bool = Field(default=True)
    LOG_REQUEST_BODY_MAX_BYTES: int = Field(default=2048)

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def _parse_cors_origins(cls, v):
        """允许 JSON 字符串或逗号分隔字符串两种格式。"""
        if isinstance(v, list):
            return v
        if isinstance(v, str):
            s = v.strip()
            if s.startswith("[") and s.endswith("]"):
                try:
                    arr = json.loads(s)
                except ValueError:
                    arr = None
                if isinstance(arr, list):
                    return arr
            if "," in s:
                return [item.strip() for item in s.split(",") if item.strip()]
            return [s]
        return v


settings = Settings()

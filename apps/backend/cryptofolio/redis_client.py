"""
CryptoFolio 快取後端模組

每個 key 保存 (資料, 寫入時間)，讀取時才檢查是否仍在有效期內。
有設定 REDIS_URL 時寫入 Redis；Redis 不可用時自動降級為記憶體快取。
"""

import json
import logging
import time
from typing import Any

from cryptofolio.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()

# Redis 客戶端（延遲初始化）
_redis_client = None

# 記憶體快取：key -> (value, captured_at)，不主動清除
_memory_cache: dict[str, tuple[Any, float]] = {}


def _now() -> float:
    return time.time()


async def get_redis():
    """取得 Redis 連線，若不可用則返回 None"""
    global _redis_client

    if settings.redis_url is None:
        return None

    if _redis_client is None:
        try:
            import redis.asyncio as aioredis
            _redis_client = aioredis.from_url(
                settings.redis_url,
                encoding="utf-8",
                decode_responses=True,
                max_connections=20,
            )
            # 測試連線
            await _redis_client.ping()
            logger.info("Redis 連線成功: %s", settings.redis_url)
        except Exception as e:
            logger.warning("Redis 連線失敗，改用記憶體快取: %s", e)
            _redis_client = None
            return None

    return _redis_client


def _is_fresh(captured_at: float, ttl: float) -> bool:
    return _now() - captured_at < ttl


async def cache_get(key: str, ttl: float | None = None) -> Any | None:
    """讀取仍在有效期內的快取資料，優先 Redis，備用記憶體快取"""
    if ttl is None:
        ttl = settings.price_cache_ttl

    redis = await get_redis()
    if redis:
        try:
            raw = await redis.get(key)
            if raw:
                entry = json.loads(raw)
                if _is_fresh(entry["captured_at"], ttl):
                    return entry["value"]
                return None
        except Exception as e:
            logger.warning("Redis GET 失敗: %s", e)

    # 記憶體快取 fallback
    entry = _memory_cache.get(key)
    if entry:
        value, captured_at = entry
        if _is_fresh(captured_at, ttl):
            return value

    return None


async def cache_set(key: str, value: Any, ttl: int | None = None) -> None:
    """寫入快取（覆蓋同 key 的舊資料），優先 Redis，備用記憶體快取"""
    if ttl is None:
        ttl = settings.price_cache_ttl

    captured_at = _now()

    redis = await get_redis()
    if redis:
        try:
            payload = {"value": value, "captured_at": captured_at}
            await redis.set(key, json.dumps(payload, default=str), ex=ttl)
            return
        except Exception as e:
            logger.warning("Redis SET 失敗: %s", e)

    _memory_cache[key] = (value, captured_at)


def clear_memory_cache() -> None:
    """清空記憶體快取"""
    _memory_cache.clear()


async def close_redis() -> None:
    """關閉 Redis 連線"""
    global _redis_client
    if _redis_client:
        await _redis_client.close()
        _redis_client = None

"""
報價快取模組

以「排序後、去重的幣種 ID 組合」作為快取 Key，
相同組合在有效期內直接回傳快取結果。
"""

import logging
from decimal import Decimal

from cryptofolio.price.base import CoinQuote
from cryptofolio.redis_client import cache_get, cache_set

logger = logging.getLogger(__name__)

# 快取 Key 前綴
CACHE_PREFIX = "price"


def normalize_ids(coin_ids) -> list[str]:
    """去重並排序幣種 ID"""
    return sorted(set(coin_ids))


def make_key(coin_ids: list[str]) -> str:
    """產生快取 Key（順序不同的相同組合得到相同 Key）"""
    return f"{CACHE_PREFIX}:{','.join(normalize_ids(coin_ids))}"


def _quote_to_dict(quote: CoinQuote) -> dict:
    """將 CoinQuote 轉為可序列化的 dict"""
    return {
        "coin_id": quote.coin_id,
        "price": str(quote.price),
        "change_pct_24h": str(quote.change_pct_24h) if quote.change_pct_24h is not None else None,
    }


def _dict_to_quote(data: dict) -> CoinQuote:
    """從 dict 還原 CoinQuote"""
    change = data.get("change_pct_24h")
    return CoinQuote(
        coin_id=data["coin_id"],
        price=Decimal(data["price"]),
        change_pct_24h=Decimal(change) if change is not None else None,
    )


async def get_cached_quotes(
    coin_ids: list[str], ttl: int | None = None
) -> dict[str, CoinQuote] | None:
    """從快取取得整組報價，過期或不存在時回傳 None"""
    key = make_key(coin_ids)
    data = await cache_get(key, ttl=ttl)
    if data is None:
        return None
    logger.debug("快取命中: %s", key)
    return {coin_id: _dict_to_quote(item) for coin_id, item in data.items()}


async def set_cached_quotes(
    coin_ids: list[str], quotes: dict[str, CoinQuote], ttl: int | None = None
) -> None:
    """將整組報價寫入快取"""
    key = make_key(coin_ids)
    await cache_set(
        key,
        {coin_id: _quote_to_dict(q) for coin_id, q in quotes.items()},
        ttl=ttl,
    )
    logger.debug("快取寫入: %s (TTL=%s)", key, ttl)

"""
報價管理器

統一入口，整合快取邏輯：先查快取，過期才呼叫 Provider 取得最新報價。
"""

import asyncio
import logging

from cryptofolio.config import get_settings
from cryptofolio.price.base import PriceProvider, CoinQuote, SearchResult
from cryptofolio.price.cache import normalize_ids, make_key, get_cached_quotes, set_cached_quotes
from cryptofolio.price.coingecko import CoinGeckoProvider

logger = logging.getLogger(__name__)


class PriceManager:
    """
    報價管理器

    使用方式：
        manager = PriceManager()
        quotes = await manager.fetch_prices(["bitcoin", "ethereum"])
    """

    def __init__(self, provider: PriceProvider | None = None, ttl: int | None = None):
        settings = get_settings()
        if provider is None:
            provider = CoinGeckoProvider(
                api_key=settings.coingecko_api_key,
                base_url=settings.coingecko_base_url,
                timeout=settings.http_timeout,
                search_limit=settings.search_limit,
                search_min_length=settings.search_min_length,
            )
        self._provider = provider
        self._ttl = ttl if ttl is not None else settings.price_cache_ttl
        self._fetching: dict[str, asyncio.Future] = {}

    @property
    def provider(self) -> PriceProvider:
        return self._provider

    async def fetch_prices(self, coin_ids) -> dict[str, CoinQuote]:
        """
        取得一組幣種的即時報價（含快取邏輯）

        流程：
        1. 去重、排序幣種 ID，空集合直接回傳
        2. 先查快取，仍在有效期內則不發出請求
        3. 快取過期 → 呼叫 Provider，並覆蓋該組合的快取

        Args:
            coin_ids: 幣種 ID（可重複、順序不拘）

        Returns:
            {coin_id: CoinQuote, ...}
        """
        ids = normalize_ids(coin_ids)
        if not ids:
            return {}

        # 1. 先查快取
        cached = await get_cached_quotes(ids, ttl=self._ttl)
        if cached is not None:
            return cached

        # Singleflight: 相同組合的請求進行中時，直接等待該請求結果
        flight_key = make_key(ids)
        if flight_key in self._fetching:
            logger.info("等待進行中的報價請求: %s", flight_key)
            return await self._fetching[flight_key]

        future = asyncio.get_running_loop().create_future()
        self._fetching[flight_key] = future

        try:
            # 2. 快取未命中，呼叫 Provider
            logger.info("快取未命中，正在取得 %d 個幣種報價...", len(ids))
            quotes = await self._provider.fetch_prices(ids)

            # 3. 寫入快取
            await set_cached_quotes(ids, quotes, ttl=self._ttl)
            future.set_result(quotes)
            return quotes
        except Exception as e:
            future.set_exception(e)
            # 沒有其他等待者時避免 "exception was never retrieved"
            future.exception()
            raise
        finally:
            self._fetching.pop(flight_key, None)

    async def search_coins(self, query: str) -> list[SearchResult]:
        """搜尋幣種（不快取）"""
        return await self._provider.search_coins(query)

    async def close(self):
        """關閉 Provider 的資源"""
        if hasattr(self._provider, "close"):
            await self._provider.close()

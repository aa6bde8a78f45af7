"""
加密貨幣報價提供者

透過 CoinGecko 公開 API 取得加密貨幣即時價格與搜尋結果。
免費方案速率限制：10-50 次/分鐘，需搭配快取使用。
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Any

import httpx

from cryptofolio.price.base import (
    PriceProvider, CoinQuote, SearchResult, FETCH_FAILED_MESSAGE,
    ProviderError, RateLimitError, FetchFailedError,
)

logger = logging.getLogger(__name__)

BASE_URL = "https://api.coingecko.com/api/v3"

RATE_LIMIT_MESSAGE = "已超過 API 速率限制，請稍候再試。"
SEARCH_RATE_LIMIT_MESSAGE = "已超過 API 速率限制，請稍候。"

# 常用幣種（快速新增用）
POPULAR_COINS: list[dict[str, str]] = [
    {"id": "bitcoin", "symbol": "BTC", "name": "Bitcoin"},
    {"id": "ethereum", "symbol": "ETH", "name": "Ethereum"},
    {"id": "solana", "symbol": "SOL", "name": "Solana"},
    {"id": "cardano", "symbol": "ADA", "name": "Cardano"},
    {"id": "polkadot", "symbol": "DOT", "name": "Polkadot"},
    {"id": "chainlink", "symbol": "LINK", "name": "Chainlink"},
    {"id": "avalanche-2", "symbol": "AVAX", "name": "Avalanche"},
    {"id": "polygon", "symbol": "MATIC", "name": "Polygon"},
]


class CoinGeckoProvider(PriceProvider):
    """CoinGecko 加密貨幣報價提供者"""

    def __init__(
        self,
        api_key: str = "",
        base_url: str = BASE_URL,
        timeout: float = 10.0,
        search_limit: int = 10,
        search_min_length: int = 2,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        headers = {"Accept": "application/json"}
        if api_key:
            headers["x-cg-demo-api-key"] = api_key
        self._search_limit = search_limit
        self._search_min_length = search_min_length
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers=headers,
            transport=transport,
        )

    async def _get_json(
        self, path: str, params: dict[str, Any], failure: str, rate_limit_message: str
    ) -> Any:
        """
        發出 GET 請求並依狀態碼分類錯誤

        429 → RateLimitError，其他非 2xx → FetchFailedError，
        連線失敗或回應無法解析 → ProviderError。不做自動重試。
        """
        try:
            response = await self._client.get(path, params=params)
        except httpx.HTTPError as e:
            raise ProviderError(f"{failure}: {e}") from e

        if response.status_code == 429:
            logger.warning("CoinGecko 速率限制: %s", path)
            raise RateLimitError(rate_limit_message)
        if not response.is_success:
            raise FetchFailedError(
                f"{failure}: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise ProviderError(f"{failure}: 回應格式錯誤") from e

    async def fetch_prices(self, coin_ids: list[str]) -> dict[str, CoinQuote]:
        """取得多個幣種的 USD 報價與 24 小時漲跌幅"""
        if not coin_ids:
            return {}

        data = await self._get_json(
            "/simple/price",
            params={
                "ids": ",".join(coin_ids),
                "vs_currencies": "usd",
                "include_24hr_change": "true",
            },
            failure=FETCH_FAILED_MESSAGE,
            rate_limit_message=RATE_LIMIT_MESSAGE,
        )

        if not isinstance(data, dict):
            raise ProviderError(f"{FETCH_FAILED_MESSAGE}: 回應格式錯誤")

        quotes: dict[str, CoinQuote] = {}
        try:
            for coin_id, coin_data in data.items():
                if not isinstance(coin_data, dict) or coin_data.get("usd") is None:
                    logger.debug("CoinGecko 回應缺少 %s 的 USD 報價", coin_id)
                    continue
                change = coin_data.get("usd_24h_change")
                quotes[coin_id] = CoinQuote(
                    coin_id=coin_id,
                    price=Decimal(str(coin_data["usd"])),
                    change_pct_24h=Decimal(str(change)) if change is not None else None,
                )
        except (InvalidOperation, TypeError, ValueError) as e:
            raise ProviderError(f"{FETCH_FAILED_MESSAGE}: 報價數值無法解析") from e
        return quotes

    async def search_coins(self, query: str) -> list[SearchResult]:
        """搜尋加密貨幣，關鍵字太短時不發出請求"""
        if not query or len(query) < self._search_min_length:
            return []

        data = await self._get_json(
            "/search",
            params={"query": query},
            failure="搜尋失敗",
            rate_limit_message=SEARCH_RATE_LIMIT_MESSAGE,
        )

        if not isinstance(data, dict) or not isinstance(data.get("coins", []), list):
            raise ProviderError("搜尋失敗: 回應格式錯誤")

        results = []
        try:
            for coin in data.get("coins", [])[:self._search_limit]:
                results.append(SearchResult(
                    coin_id=coin.get("id", ""),
                    symbol=(coin.get("symbol") or "").upper(),
                    name=coin.get("name", ""),
                    thumb=coin.get("thumb"),
                ))
        except (AttributeError, TypeError) as e:
            raise ProviderError("搜尋失敗: 回應格式錯誤") from e
        return results

    async def fetch_coin_details(self, coin_id: str) -> dict[str, Any]:
        """取得單一幣種詳細資料（含 7 日 sparkline）"""
        return await self._get_json(
            f"/coins/{coin_id}",
            params={
                "localization": "false",
                "tickers": "false",
                "community_data": "false",
                "developer_data": "false",
                "sparkline": "true",
            },
            failure="取得幣種詳情失敗",
            rate_limit_message=RATE_LIMIT_MESSAGE,
        )

    async def close(self):
        """關閉 HTTP Client"""
        await self._client.aclose()

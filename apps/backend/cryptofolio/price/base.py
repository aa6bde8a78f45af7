"""
報價提供者抽象基礎類別

定義報價來源必須實作的介面，以及報價錯誤的分類。
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal

# 報價來源沒有提供錯誤訊息時使用的通用訊息
FETCH_FAILED_MESSAGE = "取得報價失敗"


@dataclass
class CoinQuote:
    """單一幣種的即時報價"""
    coin_id: str
    price: Decimal
    change_pct_24h: Decimal | None = None


@dataclass
class SearchResult:
    """搜尋結果資料"""
    coin_id: str
    symbol: str
    name: str
    thumb: str | None = None


class PriceProvider(ABC):
    """
    報價提供者抽象類別

    報價來源（目前為 CoinGecko）必須繼承此類別並實作以下方法。
    """

    @abstractmethod
    async def fetch_prices(self, coin_ids: list[str]) -> dict[str, CoinQuote]:
        """
        批次取得多個幣種的即時報價。

        Args:
            coin_ids: 報價來源的幣種 ID（如 bitcoin, ethereum）

        Returns:
            {coin_id: CoinQuote, ...}，回應中缺少的幣種不會出現

        Raises:
            RateLimitError: 超過報價來源的速率限制
            FetchFailedError: 報價來源回傳非 2xx 狀態
            ProviderError: 連線或解析失敗
        """
        ...

    @abstractmethod
    async def search_coins(self, query: str) -> list[SearchResult]:
        """
        搜尋幣種

        Args:
            query: 搜尋關鍵字 (代碼或名稱)

        Returns:
            SearchResult 列表，最多返回前 10 筆
        """
        ...


class ProviderError(Exception):
    """報價提供者錯誤"""
    kind = "fetch_failed"


class RateLimitError(ProviderError):
    """報價來源回傳 429，可稍後重試"""
    kind = "rate_limited"


class FetchFailedError(ProviderError):
    """報價來源回傳非成功狀態碼"""

    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.status_code = status_code

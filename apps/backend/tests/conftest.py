import asyncio
from decimal import Decimal

import pytest

from cryptofolio import redis_client
from cryptofolio.price.base import PriceProvider, CoinQuote, SearchResult
from cryptofolio.price.manager import PriceManager
from cryptofolio.schemas.portfolio import AssetCreate
from cryptofolio.services.persistence import MemoryStateStorage
from cryptofolio.services.portfolio_store import PortfolioStore


class FakeProvider(PriceProvider):
    """記錄呼叫次數的假報價來源"""

    def __init__(self, prices: dict[str, tuple[str, str | None]] | None = None):
        self.prices = prices or {}
        self.price_calls: list[list[str]] = []
        self.search_calls: list[str] = []
        self.error: Exception | None = None
        self.gate: asyncio.Event | None = None

    async def fetch_prices(self, coin_ids: list[str]) -> dict[str, CoinQuote]:
        self.price_calls.append(list(coin_ids))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        quotes = {}
        for coin_id in coin_ids:
            if coin_id in self.prices:
                price, change = self.prices[coin_id]
                quotes[coin_id] = CoinQuote(
                    coin_id=coin_id,
                    price=Decimal(price),
                    change_pct_24h=Decimal(change) if change is not None else None,
                )
        return quotes

    async def search_coins(self, query: str) -> list[SearchResult]:
        self.search_calls.append(query)
        if self.error is not None:
            raise self.error
        if len(query) < 2:
            return []
        return [SearchResult(coin_id="bitcoin", symbol="BTC", name="Bitcoin")]


class FakeClock:
    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def memory_cache(monkeypatch):
    """每個測試使用乾淨的記憶體快取，不連 Redis"""
    monkeypatch.setattr(redis_client.settings, "redis_url", None)
    redis_client.clear_memory_cache()
    yield
    redis_client.clear_memory_cache()


@pytest.fixture(autouse=True)
def clock(monkeypatch) -> FakeClock:
    fake = FakeClock()
    monkeypatch.setattr(redis_client, "_now", fake)
    return fake


@pytest.fixture()
def provider() -> FakeProvider:
    return FakeProvider({
        "bitcoin": ("150", "10"),
        "ethereum": ("2000", "-5"),
        "solana": ("100", None),
    })


@pytest.fixture()
def manager(provider) -> PriceManager:
    return PriceManager(provider=provider, ttl=30)


@pytest.fixture()
def storage() -> MemoryStateStorage:
    return MemoryStateStorage()


@pytest.fixture()
def store(manager, storage) -> PortfolioStore:
    return PortfolioStore(manager, storage)


def make_draft(coin_id="bitcoin", symbol="BTC", name="Bitcoin", quantity="2", buy_price="100"):
    return AssetCreate(
        coin_id=coin_id,
        symbol=symbol,
        name=name,
        quantity=Decimal(quantity),
        buy_price=Decimal(buy_price),
    )

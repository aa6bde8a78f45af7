import asyncio

import pytest

from cryptofolio.price.base import RateLimitError
from cryptofolio.price.cache import make_key


def test_cache_key_is_order_independent():
    assert make_key(["ethereum", "bitcoin", "bitcoin"]) == make_key(["bitcoin", "ethereum"])
    assert make_key(["bitcoin"]) != make_key(["bitcoin", "ethereum"])


async def test_same_set_within_ttl_hits_cache(manager, provider, clock):
    first = await manager.fetch_prices(["bitcoin", "ethereum"])
    clock.advance(29)
    second = await manager.fetch_prices(["ethereum", "bitcoin"])

    assert len(provider.price_calls) == 1
    assert second.keys() == first.keys()
    assert second["bitcoin"].price == first["bitcoin"].price


async def test_request_after_ttl_calls_again(manager, provider, clock):
    await manager.fetch_prices(["bitcoin"])
    clock.advance(30)
    await manager.fetch_prices(["bitcoin"])

    assert len(provider.price_calls) == 2


async def test_different_set_calls_again(manager, provider, clock):
    await manager.fetch_prices(["bitcoin"])
    await manager.fetch_prices(["bitcoin", "ethereum"])

    assert len(provider.price_calls) == 2


async def test_ids_are_deduplicated_and_sorted(manager, provider, clock):
    await manager.fetch_prices(["solana", "bitcoin", "solana"])

    assert provider.price_calls == [["bitcoin", "solana"]]


async def test_empty_set_short_circuits(manager, provider):
    assert await manager.fetch_prices([]) == {}
    assert provider.price_calls == []


async def test_errors_are_not_cached(manager, provider, clock):
    provider.error = RateLimitError("slow down")
    with pytest.raises(RateLimitError):
        await manager.fetch_prices(["bitcoin"])

    provider.error = None
    quotes = await manager.fetch_prices(["bitcoin"])

    assert len(provider.price_calls) == 2
    assert "bitcoin" in quotes


async def test_concurrent_identical_requests_share_one_call(manager, provider, clock):
    provider.gate = asyncio.Event()

    first = asyncio.create_task(manager.fetch_prices(["bitcoin"]))
    second = asyncio.create_task(manager.fetch_prices(["bitcoin"]))
    await asyncio.sleep(0)
    provider.gate.set()
    results = await asyncio.gather(first, second)

    assert len(provider.price_calls) == 1
    assert results[0]["bitcoin"].price == results[1]["bitcoin"].price


async def test_search_is_not_cached(manager, provider):
    await manager.search_coins("bitcoin")
    await manager.search_coins("bitcoin")

    assert provider.search_calls == ["bitcoin", "bitcoin"]

from decimal import Decimal

import httpx
import pytest

from cryptofolio.price.base import ProviderError, RateLimitError, FetchFailedError
from cryptofolio.price.coingecko import CoinGeckoProvider


def _provider(handler) -> CoinGeckoProvider:
    return CoinGeckoProvider(
        base_url="https://api.example.test/api/v3",
        transport=httpx.MockTransport(handler),
    )


async def test_fetch_prices_parses_quotes():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={
            "bitcoin": {"usd": 64000.5, "usd_24h_change": 2.5},
            "ethereum": {"usd": 3000},
        })

    provider = _provider(handler)
    quotes = await provider.fetch_prices(["bitcoin", "ethereum"])
    await provider.close()

    assert quotes["bitcoin"].price == Decimal("64000.5")
    assert quotes["bitcoin"].change_pct_24h == Decimal("2.5")
    assert quotes["ethereum"].price == Decimal("3000")
    assert quotes["ethereum"].change_pct_24h is None

    params = seen[0].url.params
    assert seen[0].url.path.endswith("/simple/price")
    assert params["ids"] == "bitcoin,ethereum"
    assert params["vs_currencies"] == "usd"
    assert params["include_24hr_change"] == "true"


async def test_fetch_prices_skips_coins_without_usd():
    provider = _provider(lambda request: httpx.Response(200, json={"bitcoin": {}}))
    quotes = await provider.fetch_prices(["bitcoin"])
    await provider.close()

    assert quotes == {}


async def test_fetch_prices_empty_does_not_call_api():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={})

    provider = _provider(handler)
    assert await provider.fetch_prices([]) == {}
    await provider.close()
    assert calls == []


async def test_rate_limit_is_classified():
    provider = _provider(lambda request: httpx.Response(429))

    with pytest.raises(RateLimitError) as exc_info:
        await provider.fetch_prices(["bitcoin"])
    await provider.close()

    assert exc_info.value.kind == "rate_limited"
    assert "速率限制" in str(exc_info.value)


async def test_other_status_is_fetch_failed():
    provider = _provider(lambda request: httpx.Response(503))

    with pytest.raises(FetchFailedError) as exc_info:
        await provider.fetch_prices(["bitcoin"])
    await provider.close()

    assert not isinstance(exc_info.value, RateLimitError)
    assert exc_info.value.status_code == 503
    assert exc_info.value.kind == "fetch_failed"


async def test_transport_failure_is_provider_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    provider = _provider(handler)

    with pytest.raises(ProviderError) as exc_info:
        await provider.fetch_prices(["bitcoin"])
    await provider.close()

    assert not isinstance(exc_info.value, RateLimitError)
    assert exc_info.value.kind == "fetch_failed"


async def test_invalid_json_is_provider_error():
    provider = _provider(lambda request: httpx.Response(200, content=b"not json"))

    with pytest.raises(ProviderError):
        await provider.fetch_prices(["bitcoin"])
    await provider.close()


@pytest.mark.parametrize("body", [
    [],
    "bitcoin",
    {"bitcoin": {"usd": "n/a"}},
    {"bitcoin": {"usd": 100, "usd_24h_change": [1]}},
])
async def test_malformed_price_payload_is_provider_error(body):
    provider = _provider(lambda request: httpx.Response(200, json=body))

    with pytest.raises(ProviderError) as exc_info:
        await provider.fetch_prices(["bitcoin"])
    await provider.close()

    assert str(exc_info.value).startswith("取得報價失敗")


@pytest.mark.parametrize("body", [[], {"coins": {"id": "bitcoin"}}, {"coins": ["bitcoin"]}])
async def test_malformed_search_payload_is_provider_error(body):
    provider = _provider(lambda request: httpx.Response(200, json=body))

    with pytest.raises(ProviderError):
        await provider.search_coins("bitcoin")
    await provider.close()


async def test_search_short_query_does_not_call_api():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={"coins": []})

    provider = _provider(handler)
    assert await provider.search_coins("b") == []
    assert await provider.search_coins("") == []
    await provider.close()
    assert calls == []


async def test_search_returns_top_ten():
    coins = [
        {"id": f"coin-{i}", "symbol": f"c{i}", "name": f"Coin {i}", "thumb": f"https://img/{i}.png"}
        for i in range(15)
    ]

    def handler(request):
        assert request.url.params["query"] == "coin"
        return httpx.Response(200, json={"coins": coins})

    provider = _provider(handler)
    results = await provider.search_coins("coin")
    await provider.close()

    assert len(results) == 10
    assert results[0].coin_id == "coin-0"
    assert results[0].symbol == "C0"
    assert results[0].thumb == "https://img/0.png"


async def test_search_rate_limit():
    provider = _provider(lambda request: httpx.Response(429))

    with pytest.raises(RateLimitError):
        await provider.search_coins("bitcoin")
    await provider.close()


async def test_api_key_header():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={})

    provider = CoinGeckoProvider(
        api_key="demo-key",
        base_url="https://api.example.test/api/v3",
        transport=httpx.MockTransport(handler),
    )
    await provider.fetch_prices(["bitcoin"])
    await provider.close()

    assert seen[0].headers["x-cg-demo-api-key"] == "demo-key"


async def test_fetch_coin_details_requests_sparkline():
    def handler(request):
        assert request.url.path.endswith("/coins/bitcoin")
        assert request.url.params["sparkline"] == "true"
        return httpx.Response(200, json={"id": "bitcoin", "market_data": {}})

    provider = _provider(handler)
    data = await provider.fetch_coin_details("bitcoin")
    await provider.close()

    assert data["id"] == "bitcoin"

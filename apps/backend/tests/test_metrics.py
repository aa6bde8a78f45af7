from datetime import datetime
from decimal import Decimal

from cryptofolio.schemas.portfolio import Asset, PriceData
from cryptofolio.services.metrics import (
    calculate_asset_metrics,
    calculate_portfolio_summary,
    calculate_allocations,
    assets_with_prices,
    format_currency,
    format_percent,
    format_compact,
)


def _asset(asset_id="a1", coin_id="bitcoin", quantity="2", buy_price="100"):
    return Asset(
        id=asset_id,
        coin_id=coin_id,
        symbol=coin_id[:3].upper(),
        name=coin_id.title(),
        quantity=Decimal(quantity),
        buy_price=Decimal(buy_price),
        date_added=datetime(2024, 1, 1),
    )


def _price(current, change_pct="0"):
    return PriceData(
        current=Decimal(current),
        change_percent_24h=Decimal(change_pct),
        last_updated=datetime(2024, 1, 2),
    )


def test_asset_metrics_concrete_scenario():
    result = calculate_asset_metrics(_asset(), _price("150", "10"))

    assert result.cost_basis == 200
    assert result.current_price == 150
    assert result.current_value == 300
    assert result.profit_loss == 100
    assert result.profit_loss_percent == 50
    assert result.change_24h == 30
    assert result.change_percent_24h == 10


def test_asset_metrics_without_price_is_full_loss():
    result = calculate_asset_metrics(_asset(quantity="3", buy_price="10"), None)

    assert result.current_price == 0
    assert result.current_value == 0
    assert result.profit_loss == -30
    assert result.profit_loss_percent == -100
    assert result.change_24h == 0
    assert result.change_percent_24h == 0


def test_zero_cost_basis_gives_zero_percent():
    result = calculate_asset_metrics(_asset(quantity="0"), _price("150", "10"))

    assert result.cost_basis == 0
    assert result.profit_loss_percent == 0
    assert result.profit_loss_percent.is_finite()


def test_current_value_is_quantity_times_price():
    result = calculate_asset_metrics(_asset(quantity="0.5"), _price("64000.25"))
    assert result.current_value == Decimal("0.5") * Decimal("64000.25")


def test_asset_identity_fields_carried_over():
    asset = _asset(asset_id="xyz")
    result = calculate_asset_metrics(asset, None)
    assert result.id == "xyz"
    assert result.coin_id == asset.coin_id
    assert result.date_added == asset.date_added


def test_empty_portfolio_summary():
    summary = calculate_portfolio_summary([])

    assert summary.total_value == 0
    assert summary.total_cost_basis == 0
    assert summary.total_profit_loss == 0
    assert summary.total_profit_loss_percent == 0
    assert summary.total_24h_change == 0
    assert summary.total_24h_change_percent == 0
    assert summary.best_performer is None
    assert summary.worst_performer is None


def test_single_asset_best_and_worst_are_same():
    item = calculate_asset_metrics(_asset(), _price("150", "10"))
    summary = calculate_portfolio_summary([item])

    assert summary.best_performer.id == "a1"
    assert summary.worst_performer.id == "a1"


def test_summary_totals_and_performers():
    items = assets_with_prices(
        [
            _asset("a1", "bitcoin", "2", "100"),   # +50%
            _asset("a2", "ethereum", "1", "2500"),  # -20%
            _asset("a3", "solana", "10", "50"),    # +100%
        ],
        {
            "bitcoin": _price("150", "10"),
            "ethereum": _price("2000", "-5"),
            "solana": _price("100"),
        },
    )
    summary = calculate_portfolio_summary(items)

    assert summary.total_value == 300 + 2000 + 1000
    assert summary.total_cost_basis == 200 + 2500 + 500
    assert summary.total_profit_loss == 100
    assert summary.total_24h_change == 30 - 100
    assert summary.best_performer.id == "a3"
    assert summary.worst_performer.id == "a2"


def test_performer_ties_keep_input_order():
    items = assets_with_prices(
        [_asset("first", "bitcoin"), _asset("second", "ethereum")],
        {"bitcoin": _price("150"), "ethereum": _price("150")},
    )
    summary = calculate_portfolio_summary(items)

    assert summary.best_performer.id == "first"
    assert summary.worst_performer.id == "second"


def test_total_24h_percent_uses_value_before_change():
    item = calculate_asset_metrics(_asset(), _price("150", "10"))
    summary = calculate_portfolio_summary([item])

    # 30 / (300 - 30) * 100
    assert round(summary.total_24h_change_percent, 4) == Decimal("11.1111")


def test_total_percentages_zero_when_nothing_priced():
    items = assets_with_prices([_asset()], {})
    summary = calculate_portfolio_summary(items)

    assert summary.total_value == 0
    assert summary.total_profit_loss == -200
    assert summary.total_profit_loss_percent == -100
    assert summary.total_24h_change_percent == 0


def test_allocations_sorted_and_sum_to_hundred():
    items = assets_with_prices(
        [_asset("a1", "bitcoin", "1"), _asset("a2", "ethereum", "3")],
        {"bitcoin": _price("100"), "ethereum": _price("100")},
    )
    allocations = calculate_allocations(items)

    assert [a.coin_id for a in allocations] == ["ethereum", "bitcoin"]
    assert allocations[0].percentage == 75
    assert allocations[1].percentage == 25
    assert sum(a.percentage for a in allocations) == 100
    assert allocations[0].color != allocations[1].color


def test_allocations_zero_total():
    allocations = calculate_allocations(assets_with_prices([_asset()], {}))
    assert allocations[0].percentage == 0


def test_format_helpers():
    assert format_currency(Decimal("1234.5")) == "$1,234.50"
    assert format_currency(Decimal("-12")) == "-$12.00"
    assert format_percent(Decimal("12.5")) == "+12.50%"
    assert format_percent(Decimal("-3.456")) == "-3.46%"
    assert format_percent(Decimal("0")) == "+0.00%"
    assert format_compact(Decimal("1500000")) == "$1.50M"
    assert format_compact(Decimal("2500")) == "$2.50K"
    assert format_compact(Decimal("3200000000")) == "$3.20B"
    assert format_compact(Decimal("999")) == "$999.00"

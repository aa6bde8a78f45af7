"""
投資組合指標計算

純函式：由持倉與報價計算現值、成本、損益、24 小時變動，
並彙總為投資組合摘要與資產配置。每次呈現時重新計算，不保存。
"""

from decimal import Decimal

from cryptofolio.schemas.portfolio import (
    Asset, PriceData, AssetWithPrice, PortfolioSummary, AllocationItem,
)

ZERO = Decimal("0")
HUNDRED = Decimal("100")

# 圓餅圖配色，依持倉順序循環使用
ALLOCATION_COLORS: list[str] = [
    "#3b82f6",  # 藍色
    "#8b5cf6",  # 紫羅蘭
    "#06b6d4",  # 青色
    "#f59e0b",  # 琥珀色
    "#ec4899",  # 粉紅
    "#10b981",  # 翠綠
    "#f97316",  # 橘色
    "#6366f1",  # 靛藍
]


def calculate_asset_metrics(asset: Asset, price_data: PriceData | None) -> AssetWithPrice:
    """
    計算單一持倉的衍生指標

    沒有報價時現價視為 0，損益即為整筆成本的未實現虧損。
    24 小時變動以「目前現值 × 24h 漲跌幅」估算，而非前一日實際價格。
    """
    current_price = price_data.current if price_data else ZERO
    current_value = asset.quantity * current_price
    cost_basis = asset.quantity * asset.buy_price
    profit_loss = current_value - cost_basis
    profit_loss_percent = profit_loss / cost_basis * HUNDRED if cost_basis > 0 else ZERO

    change_percent_24h = price_data.change_percent_24h if price_data else ZERO
    change_24h = current_value * change_percent_24h / HUNDRED if price_data else ZERO

    return AssetWithPrice(
        **asset.model_dump(),
        current_price=current_price,
        current_value=current_value,
        cost_basis=cost_basis,
        profit_loss=profit_loss,
        profit_loss_percent=profit_loss_percent,
        change_24h=change_24h,
        change_percent_24h=change_percent_24h,
    )


def assets_with_prices(
    assets: list[Asset], prices: dict[str, PriceData]
) -> list[AssetWithPrice]:
    """將所有持倉與對應報價合併"""
    return [calculate_asset_metrics(a, prices.get(a.coin_id)) for a in assets]


def calculate_portfolio_summary(items: list[AssetWithPrice]) -> PortfolioSummary:
    """
    彙總投資組合摘要

    最佳/最差表現依損益百分比由高到低排序（同值維持原順序），
    取第一筆與最後一筆；只有一筆持倉時兩者為同一筆，是否重複顯示由前端決定。
    """
    if not items:
        return PortfolioSummary(
            total_value=ZERO,
            total_cost_basis=ZERO,
            total_profit_loss=ZERO,
            total_profit_loss_percent=ZERO,
            total_24h_change=ZERO,
            total_24h_change_percent=ZERO,
            best_performer=None,
            worst_performer=None,
        )

    total_value = sum((a.current_value for a in items), ZERO)
    total_cost_basis = sum((a.cost_basis for a in items), ZERO)
    total_profit_loss = total_value - total_cost_basis
    total_profit_loss_percent = (
        total_profit_loss / total_cost_basis * HUNDRED if total_cost_basis > 0 else ZERO
    )

    total_24h_change = sum((a.change_24h for a in items), ZERO)
    # 以變動前的價值為分母
    value_before = total_value - total_24h_change
    total_24h_change_percent = (
        total_24h_change / value_before * HUNDRED
        if total_value > 0 and value_before != 0
        else ZERO
    )

    ranked = sorted(items, key=lambda a: a.profit_loss_percent, reverse=True)

    return PortfolioSummary(
        total_value=total_value,
        total_cost_basis=total_cost_basis,
        total_profit_loss=total_profit_loss,
        total_profit_loss_percent=total_profit_loss_percent,
        total_24h_change=total_24h_change,
        total_24h_change_percent=total_24h_change_percent,
        best_performer=ranked[0],
        worst_performer=ranked[-1],
    )


def calculate_allocations(items: list[AssetWithPrice]) -> list[AllocationItem]:
    """計算各持倉佔總現值的比例，依現值由大到小排列"""
    total_value = sum((a.current_value for a in items), ZERO)

    allocations = [
        AllocationItem(
            coin_id=a.coin_id,
            symbol=a.symbol,
            name=a.name,
            value=a.current_value,
            percentage=a.current_value / total_value * HUNDRED if total_value > 0 else ZERO,
            color=ALLOCATION_COLORS[index % len(ALLOCATION_COLORS)],
        )
        for index, a in enumerate(items)
    ]
    return sorted(allocations, key=lambda item: item.value, reverse=True)


def format_currency(value: Decimal | float, decimals: int = 2) -> str:
    """格式化為美元金額，如 $1,234.56"""
    sign = "-" if value < 0 else ""
    return f"{sign}${abs(value):,.{decimals}f}"


def format_percent(value: Decimal | float, decimals: int = 2) -> str:
    """格式化為帶正負號的百分比，如 +12.34%"""
    sign = "+" if value >= 0 else ""
    return f"{sign}{value:.{decimals}f}%"


def format_compact(value: Decimal | float) -> str:
    """大數字縮寫，如 $1.23M"""
    if value >= 1_000_000_000:
        return f"${value / 1_000_000_000:.2f}B"
    if value >= 1_000_000:
        return f"${value / 1_000_000:.2f}M"
    if value >= 1_000:
        return f"${value / 1_000:.2f}K"
    return format_currency(value)

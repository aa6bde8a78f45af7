"""
投資組合相關 Schema

定義持倉、報價、衍生指標、設定與持久化狀態的資料模型。
"""

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field

RefreshInterval = Literal[30, 60, 120, 300]
REFRESH_INTERVALS: tuple[int, ...] = (30, 60, 120, 300)


class AssetCreate(BaseModel):
    """新增持倉（輸入端驗證：數量與買入價必須為正數）"""
    coin_id: str = Field(min_length=1, max_length=100)
    symbol: str = Field(min_length=1, max_length=20)
    name: str = Field(min_length=1, max_length=100)
    quantity: Decimal = Field(gt=0)
    buy_price: Decimal = Field(gt=0)


class AssetUpdate(BaseModel):
    """更新持倉（僅允許數量與平均買入價）"""
    quantity: Decimal | None = Field(default=None, gt=0)
    buy_price: Decimal | None = Field(default=None, gt=0)


class Asset(BaseModel):
    """持倉資料"""
    id: str
    coin_id: str
    symbol: str
    name: str
    quantity: Decimal
    buy_price: Decimal
    date_added: datetime

    model_config = {"frozen": True}


class PriceData(BaseModel):
    """單一幣種的報價資料"""
    current: Decimal
    change_24h: Decimal = Decimal("0")  # 寫入時補 0，由下游重新計算
    change_percent_24h: Decimal = Decimal("0")
    sparkline_7d: list[Decimal] | None = None
    last_updated: datetime

    model_config = {"frozen": True}


class AssetWithPrice(Asset):
    """持倉與報價合併後的衍生資料（不保存）"""
    current_price: Decimal
    current_value: Decimal
    cost_basis: Decimal
    profit_loss: Decimal
    profit_loss_percent: Decimal
    change_24h: Decimal
    change_percent_24h: Decimal


class PortfolioSummary(BaseModel):
    """投資組合摘要（不保存）"""
    total_value: Decimal
    total_cost_basis: Decimal
    total_profit_loss: Decimal
    total_profit_loss_percent: Decimal
    total_24h_change: Decimal
    total_24h_change_percent: Decimal
    best_performer: AssetWithPrice | None = None
    worst_performer: AssetWithPrice | None = None


class AllocationItem(BaseModel):
    """資產配置項目（圓餅圖用）"""
    coin_id: str
    symbol: str
    name: str
    value: Decimal
    percentage: Decimal
    color: str


class PortfolioState(BaseModel):
    """Store 的完整狀態快照"""
    assets: list[Asset] = []
    prices: dict[str, PriceData] = {}
    is_loading: bool = False
    error: str | None = None
    last_updated: datetime | None = None
    auto_refresh: bool = True
    refresh_interval: RefreshInterval = 60

    model_config = {"frozen": True}


class PersistedState(BaseModel):
    """跨重啟保存的狀態子集"""
    version: int = 0
    assets: list[Asset] = []
    auto_refresh: bool = True
    refresh_interval: RefreshInterval = 60


class SettingsUpdate(BaseModel):
    """更新自動刷新設定"""
    auto_refresh: bool | None = None
    refresh_interval: RefreshInterval | None = None


class VisibilityChange(BaseModel):
    """前端頁面可見度變化"""
    visible: bool


class RefreshStatus(BaseModel):
    """報價更新狀態"""
    is_loading: bool
    error: str | None
    last_updated: datetime | None
    auto_refresh: bool
    refresh_interval: int
    scheduler_state: str
    countdown: int


class RefreshResult(BaseModel):
    """手動更新結果"""
    triggered: bool
    status: RefreshStatus


class CoinSearchItem(BaseModel):
    """幣種搜尋結果"""
    id: str
    symbol: str
    name: str
    thumb: str | None = None

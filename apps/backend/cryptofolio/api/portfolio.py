"""
投資組合 API 路由

持倉 CRUD、摘要、資產配置、報價更新與自動更新設定。
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from cryptofolio.api.deps import get_store, get_refresh_scheduler
from cryptofolio.schemas.common import ApiResponse
from cryptofolio.schemas.portfolio import (
    Asset, AssetCreate, AssetUpdate, AssetWithPrice,
    PortfolioSummary, AllocationItem, PriceData,
    SettingsUpdate, VisibilityChange, RefreshStatus, RefreshResult,
)
from cryptofolio.services.metrics import (
    assets_with_prices, calculate_portfolio_summary, calculate_allocations,
)
from cryptofolio.services.portfolio_store import PortfolioStore
from cryptofolio.worker import RefreshScheduler

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/portfolio", tags=["投資組合"])


def _status(store: PortfolioStore, scheduler: RefreshScheduler) -> RefreshStatus:
    return RefreshStatus(
        is_loading=store.is_loading,
        error=store.error,
        last_updated=store.last_updated,
        auto_refresh=store.auto_refresh,
        refresh_interval=store.refresh_interval,
        scheduler_state=scheduler.state,
        countdown=scheduler.countdown,
    )


@router.get("/assets", response_model=ApiResponse[list[AssetWithPrice]])
async def list_assets(store: PortfolioStore = Depends(get_store)):
    """取得所有持倉（含即時現值與損益）"""
    return ApiResponse(data=assets_with_prices(store.assets, store.prices))


@router.post("/assets", response_model=ApiResponse[Asset])
async def add_asset(
    data: AssetCreate,
    store: PortfolioStore = Depends(get_store),
):
    """新增持倉，並在背景更新報價"""
    store.add_asset(data)
    return ApiResponse(data=store.assets[-1], message="持倉已新增")


@router.patch("/assets/{asset_id}", response_model=ApiResponse[Asset])
async def update_asset(
    asset_id: str,
    data: AssetUpdate,
    store: PortfolioStore = Depends(get_store),
):
    """更新持倉數量或平均買入價"""
    if not store.update_asset(asset_id, data):
        raise HTTPException(status_code=404, detail="持倉不存在")
    asset = next(a for a in store.assets if a.id == asset_id)
    return ApiResponse(data=asset)


@router.delete("/assets/{asset_id}")
async def remove_asset(
    asset_id: str,
    store: PortfolioStore = Depends(get_store),
):
    """刪除持倉"""
    if not store.remove_asset(asset_id):
        raise HTTPException(status_code=404, detail="持倉不存在")
    return ApiResponse(message="持倉已刪除")


@router.get("/prices", response_model=ApiResponse[dict[str, PriceData]])
async def get_prices(store: PortfolioStore = Depends(get_store)):
    """取得目前報價表"""
    return ApiResponse(data=store.prices)


@router.get("/summary", response_model=ApiResponse[PortfolioSummary])
async def get_summary(store: PortfolioStore = Depends(get_store)):
    """計算投資組合摘要"""
    items = assets_with_prices(store.assets, store.prices)
    return ApiResponse(data=calculate_portfolio_summary(items))


@router.get("/allocations", response_model=ApiResponse[list[AllocationItem]])
async def get_allocations(store: PortfolioStore = Depends(get_store)):
    """
    取得資產配置比例（圓餅圖用）

    計算各持倉佔總現值的百分比。
    """
    items = assets_with_prices(store.assets, store.prices)
    return ApiResponse(data=calculate_allocations(items))


@router.get("/status", response_model=ApiResponse[RefreshStatus])
async def get_status(
    store: PortfolioStore = Depends(get_store),
    scheduler: RefreshScheduler = Depends(get_refresh_scheduler),
):
    """取得報價更新狀態與倒數"""
    return ApiResponse(data=_status(store, scheduler))


@router.post("/refresh", response_model=ApiResponse[RefreshResult])
async def refresh_prices(
    store: PortfolioStore = Depends(get_store),
    scheduler: RefreshScheduler = Depends(get_refresh_scheduler),
):
    """手動更新報價（已有更新進行中時不重複發出）"""
    triggered = scheduler.refresh_now()
    return ApiResponse(data=RefreshResult(triggered=triggered, status=_status(store, scheduler)))


@router.post("/visibility", response_model=ApiResponse[RefreshResult])
async def visibility_change(
    data: VisibilityChange,
    store: PortfolioStore = Depends(get_store),
    scheduler: RefreshScheduler = Depends(get_refresh_scheduler),
):
    """前端頁面回到前景時通知，開啟自動更新時會立即更新"""
    triggered = scheduler.on_visibility_change(data.visible)
    return ApiResponse(data=RefreshResult(triggered=triggered, status=_status(store, scheduler)))


@router.put("/settings", response_model=ApiResponse[RefreshStatus])
async def update_settings(
    data: SettingsUpdate,
    store: PortfolioStore = Depends(get_store),
    scheduler: RefreshScheduler = Depends(get_refresh_scheduler),
):
    """更新自動更新開關與更新間隔"""
    if data.refresh_interval is not None:
        store.set_refresh_interval(data.refresh_interval)
    if data.auto_refresh is not None:
        store.set_auto_refresh(data.auto_refresh)
    return ApiResponse(data=_status(store, scheduler))


@router.delete("/error")
async def clear_error(store: PortfolioStore = Depends(get_store)):
    """清除錯誤訊息"""
    store.clear_error()
    return ApiResponse(message="錯誤訊息已清除")

"""
投資組合狀態 Store

唯一的資料來源：保存持倉、最新報價、更新狀態與使用者設定。
所有變更都必須透過這裡宣告的操作進行；報價更新為非同步，其餘操作皆為同步。
"""

import asyncio
import logging
import uuid
from collections.abc import Callable
from datetime import datetime

from cryptofolio.price.base import FETCH_FAILED_MESSAGE, ProviderError
from cryptofolio.price.manager import PriceManager
from cryptofolio.schemas.portfolio import (
    Asset, AssetCreate, AssetUpdate, PriceData, PortfolioState, REFRESH_INTERVALS,
)
from cryptofolio.services.persistence import (
    StateStorage, MemoryStateStorage, hydrate, load_persisted, save_persisted,
)

logger = logging.getLogger(__name__)

Listener = Callable[[PortfolioState, PortfolioState], None]

# 變更時需要寫入儲存的欄位
PERSISTED_FIELDS = ("assets", "auto_refresh", "refresh_interval")


class PortfolioStore:
    """
    投資組合 Store

    使用方式：
        store = await PortfolioStore.create(PriceManager(), storage)
        store.add_asset(AssetCreate(...))
        await store.fetch_all_prices()
    """

    def __init__(
        self,
        price_manager: PriceManager,
        storage: StateStorage | None = None,
        storage_name: str = "portfolio-storage",
        initial_state: PortfolioState | None = None,
    ):
        self._price_manager = price_manager
        self._storage = storage or MemoryStateStorage()
        self._storage_name = storage_name
        self._state = initial_state or PortfolioState()
        self._listeners: list[Listener] = []
        self._background: set[asyncio.Task] = set()
        self._save_task: asyncio.Task | None = None
        self._save_pending = False

    @classmethod
    async def create(
        cls,
        price_manager: PriceManager,
        storage: StateStorage | None = None,
        storage_name: str = "portfolio-storage",
        defaults: PortfolioState | None = None,
    ) -> "PortfolioStore":
        """建立 Store，並從儲存後端還原持倉與設定"""
        storage = storage or MemoryStateStorage()
        persisted = await load_persisted(storage, storage_name)
        state = hydrate(persisted, defaults)
        if persisted is not None:
            logger.info("已還原 %d 筆持倉", len(state.assets))
        return cls(price_manager, storage, storage_name, initial_state=state)

    # === 讀取 ===

    @property
    def state(self) -> PortfolioState:
        return self._state

    @property
    def assets(self) -> list[Asset]:
        return list(self._state.assets)

    @property
    def prices(self) -> dict[str, PriceData]:
        return dict(self._state.prices)

    @property
    def is_loading(self) -> bool:
        return self._state.is_loading

    @property
    def error(self) -> str | None:
        return self._state.error

    @property
    def last_updated(self) -> datetime | None:
        return self._state.last_updated

    @property
    def auto_refresh(self) -> bool:
        return self._state.auto_refresh

    @property
    def refresh_interval(self) -> int:
        return self._state.refresh_interval

    @property
    def price_manager(self) -> PriceManager:
        return self._price_manager

    # === 訂閱 ===

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """註冊狀態變更監聽器，回傳取消訂閱函式"""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set(self, **changes) -> None:
        previous = self._state
        self._state = previous.model_copy(update=changes)

        if any(field in changes for field in PERSISTED_FIELDS):
            self._schedule_save()

        for listener in list(self._listeners):
            listener(self._state, previous)

    # === 持倉操作 ===

    def add_asset(self, draft: AssetCreate) -> asyncio.Task | None:
        """
        新增持倉並立即觸發報價更新

        數量與買入價的正數檢查由輸入端（AssetCreate / API）負責，這裡不再驗證。
        回傳背景更新的 Task；沒有執行中的事件迴圈時回傳 None。
        """
        asset = Asset(
            **draft.model_dump(),
            id=str(uuid.uuid4()),
            date_added=datetime.now(),
        )
        self._set(assets=[*self._state.assets, asset])
        logger.info("新增持倉: %s (%s)", asset.symbol, asset.coin_id)

        return self._schedule_refresh()

    def update_asset(self, asset_id: str, updates: AssetUpdate) -> bool:
        """更新持倉數量或平均買入價；找不到時不做任何事"""
        changes = updates.model_dump(exclude_none=True)
        found = False
        assets = []
        for asset in self._state.assets:
            if asset.id == asset_id:
                asset = asset.model_copy(update=changes)
                found = True
            assets.append(asset)

        if found:
            self._set(assets=assets)
        return found

    def remove_asset(self, asset_id: str) -> bool:
        """移除持倉（不清除對應的報價資料）"""
        assets = [a for a in self._state.assets if a.id != asset_id]
        removed = len(assets) != len(self._state.assets)
        if removed:
            self._set(assets=assets)
        return removed

    # === 報價更新 ===

    async def fetch_all_prices(self) -> None:
        """
        取得所有持倉的最新報價

        成功時整份替換報價表並更新時間；失敗時保留舊報價，只記錄錯誤訊息。
        """
        assets = self._state.assets
        if not assets:
            self._set(is_loading=False, error=None)
            return

        self._set(is_loading=True, error=None)

        coin_ids = list(dict.fromkeys(a.coin_id for a in assets))
        try:
            quotes = await self._price_manager.fetch_prices(coin_ids)
        except ProviderError as e:
            logger.warning("更新報價失敗: %s", e)
            self._set(is_loading=False, error=str(e) or FETCH_FAILED_MESSAGE)
            return
        except Exception:
            logger.exception("更新報價發生未預期錯誤")
            self._set(is_loading=False, error=FETCH_FAILED_MESSAGE)
            return

        now = datetime.now()
        prices: dict[str, PriceData] = {}
        for coin_id in coin_ids:
            quote = quotes.get(coin_id)
            if quote is None:
                continue
            prices[coin_id] = PriceData(
                current=quote.price,
                change_percent_24h=quote.change_pct_24h or 0,
                last_updated=now,
            )

        self._set(prices=prices, is_loading=False, last_updated=now)
        logger.info("報價更新完成 (%d/%d 個幣種)", len(prices), len(coin_ids))

    def _schedule_refresh(self) -> asyncio.Task | None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("沒有執行中的事件迴圈，略過新增持倉後的報價更新")
            return None

        return self._track(loop.create_task(self.fetch_all_prices()))

    # === 持久化 ===

    def _schedule_save(self) -> None:
        """標記需要保存；同一時間只有一個寫入 task，寫入的永遠是最新狀態"""
        self._save_pending = True
        if self._save_task is not None and not self._save_task.done():
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("沒有執行中的事件迴圈，略過狀態保存")
            return

        self._save_task = self._track(loop.create_task(self._flush_saves()))

    async def _flush_saves(self) -> None:
        while self._save_pending:
            self._save_pending = False
            try:
                await save_persisted(self._storage, self._storage_name, self._state)
            except Exception:
                logger.exception("保存狀態失敗: %s", self._storage_name)

    def _track(self, task: asyncio.Task) -> asyncio.Task:
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def drain(self) -> None:
        """等待背景的報價更新與狀態保存完成"""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # === 設定 ===

    def set_auto_refresh(self, enabled: bool) -> None:
        self._set(auto_refresh=enabled)

    def set_refresh_interval(self, interval: int) -> None:
        if interval not in REFRESH_INTERVALS:
            raise ValueError(f"不支援的更新間隔: {interval}")
        self._set(refresh_interval=interval)

    def clear_error(self) -> None:
        self._set(error=None)

"""
報價自動更新排程器 (Refresh Scheduler)

使用 APScheduler 每秒倒數一次，倒數歸零時呼叫 Store 更新報價。
另外處理首次啟動、手動更新與頁面重新可見時的立即更新。
同一時間最多只有一個更新請求在進行，重疊的呼叫會被直接丟棄（不排隊、不重試）。
"""

import asyncio
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from cryptofolio.schemas.portfolio import PortfolioState
from cryptofolio.services.portfolio_store import PortfolioStore

logger = logging.getLogger(__name__)

TICK_JOB_ID = "refresh_countdown_job"

STATE_IDLE = "idle"
STATE_COUNTING_DOWN = "counting-down"
STATE_FETCHING = "fetching"


class RefreshScheduler:
    """驅動 PortfolioStore.fetch_all_prices 的倒數計時狀態機"""

    def __init__(self, store: PortfolioStore, tick_seconds: int = 1):
        self._store = store
        self._tick_seconds = tick_seconds
        self._scheduler = AsyncIOScheduler()
        self._countdown = store.refresh_interval
        self._has_mounted = False
        self._is_fetching = False
        self._tasks: set[asyncio.Task] = set()
        self._unsubscribe = None

    # === 狀態 ===

    @property
    def countdown(self) -> int:
        return self._countdown

    @property
    def is_fetching(self) -> bool:
        return self._is_fetching

    @property
    def state(self) -> str:
        if self._is_fetching:
            return STATE_FETCHING
        if self._store.auto_refresh and self._scheduler.running:
            return STATE_COUNTING_DOWN
        return STATE_IDLE

    # === 生命週期 ===

    def start(self) -> None:
        """啟動排程器：首次啟動時立即更新一次，並開始倒數"""
        if self._scheduler.running:
            return

        self._unsubscribe = self._store.subscribe(self._on_store_change)
        self._countdown = self._store.refresh_interval

        self._scheduler.add_job(
            self.tick,
            "interval",
            seconds=self._tick_seconds,
            id=TICK_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self._scheduler.start(paused=False)
        if not self._store.auto_refresh:
            self._scheduler.pause_job(TICK_JOB_ID)

        if not self._has_mounted:
            self._has_mounted = True
            self._trigger()

        logger.info(
            "✅ 報價自動更新排程器已啟動 (auto_refresh=%s, interval=%ss)",
            self._store.auto_refresh,
            self._store.refresh_interval,
        )

    async def shutdown(self) -> None:
        """停止計時器並等待進行中的更新完成（不取消）"""
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("報價自動更新排程器已關閉")

        await self.drain()

    async def drain(self) -> None:
        """等待所有已觸發的更新結束"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # === 觸發 ===

    async def tick(self) -> None:
        """每秒倒數一次；倒數歸零時觸發更新並重新計時"""
        if not self._store.auto_refresh:
            return

        if self._countdown <= 1:
            self._trigger()
            self._countdown = self._store.refresh_interval
        else:
            self._countdown -= 1

    def refresh_now(self) -> bool:
        """手動更新：立即觸發並重新計時，回傳是否真的發出請求"""
        triggered = self._trigger()
        self._countdown = self._store.refresh_interval
        return triggered

    def on_visibility_change(self, visible: bool) -> bool:
        """頁面重新可見且開啟自動更新時，立即更新並重新計時"""
        if not visible or not self._store.auto_refresh or not self._has_mounted:
            return False
        triggered = self._trigger()
        self._countdown = self._store.refresh_interval
        return triggered

    async def _run_fetch(self) -> None:
        try:
            await self._store.fetch_all_prices()
        finally:
            self._is_fetching = False

    def _trigger(self) -> bool:
        """單一請求保護：已有更新進行中時直接丟棄這次觸發，不排隊也不重試"""
        if self._is_fetching:
            logger.debug("已有報價更新進行中，略過本次觸發")
            return False

        # 在 task 開始執行前就先鎖住，同一輪事件迴圈內的重複觸發會被丟棄
        self._is_fetching = True
        task = asyncio.get_running_loop().create_task(self._run_fetch())
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return True

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("報價更新發生未預期錯誤: %s", task.exception())

    # === 設定變更 ===

    def _on_store_change(self, state: PortfolioState, previous: PortfolioState) -> None:
        if state.refresh_interval != previous.refresh_interval:
            self._countdown = state.refresh_interval

        if state.auto_refresh == previous.auto_refresh:
            return

        self._countdown = state.refresh_interval
        if not self._scheduler.running:
            return
        if state.auto_refresh:
            self._scheduler.resume_job(TICK_JOB_ID)
            logger.info("自動更新已開啟 (interval=%ss)", state.refresh_interval)
        else:
            self._scheduler.pause_job(TICK_JOB_ID)
            logger.info("自動更新已關閉")

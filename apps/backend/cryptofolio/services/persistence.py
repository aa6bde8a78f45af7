"""
狀態持久化

只保存 Store 狀態的子集（持倉、自動更新開關、更新間隔）；
報價、載入中、錯誤訊息與最後更新時間每次啟動都重設為預設值。
"""

import logging
from typing import Any, Protocol

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cryptofolio.models.state_record import StateRecord
from cryptofolio.schemas.portfolio import PersistedState, PortfolioState

logger = logging.getLogger(__name__)

STATE_VERSION = 0


class StateStorage(Protocol):
    """狀態儲存後端介面"""

    async def get_item(self, name: str) -> dict[str, Any] | None: ...

    async def set_item(self, name: str, value: dict[str, Any]) -> None: ...


class MemoryStateStorage:
    """記憶體儲存（測試或不需跨重啟保存時使用）"""

    def __init__(self):
        self._items: dict[str, dict[str, Any]] = {}

    async def get_item(self, name: str) -> dict[str, Any] | None:
        return self._items.get(name)

    async def set_item(self, name: str, value: dict[str, Any]) -> None:
        self._items[name] = value


class SqlStateStorage:
    """以 state_records 表保存狀態"""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get_item(self, name: str) -> dict[str, Any] | None:
        async with self._session_factory() as session:
            record = await session.get(StateRecord, name)
            return dict(record.payload) if record else None

    async def set_item(self, name: str, value: dict[str, Any]) -> None:
        async with self._session_factory() as session:
            try:
                record = await session.get(StateRecord, name)
                if record:
                    record.payload = value
                else:
                    session.add(StateRecord(name=name, payload=value))
                await session.commit()
            except Exception:
                await session.rollback()
                raise


def partialize(state: PortfolioState) -> PersistedState:
    """從完整狀態投影出需要保存的欄位"""
    return PersistedState(
        version=STATE_VERSION,
        assets=state.assets,
        auto_refresh=state.auto_refresh,
        refresh_interval=state.refresh_interval,
    )


def hydrate(
    persisted: PersistedState | None, defaults: PortfolioState | None = None
) -> PortfolioState:
    """將保存的子集套用到預設狀態上，其餘欄位維持預設值"""
    defaults = defaults or PortfolioState()
    if persisted is None:
        return defaults
    return defaults.model_copy(update={
        "assets": list(persisted.assets),
        "auto_refresh": persisted.auto_refresh,
        "refresh_interval": persisted.refresh_interval,
    })


async def load_persisted(storage: StateStorage, name: str) -> PersistedState | None:
    """讀取保存的狀態，格式錯誤時記錄警告並視為沒有資料"""
    raw = await storage.get_item(name)
    if raw is None:
        return None
    try:
        return PersistedState.model_validate(raw)
    except ValidationError as e:
        logger.warning("保存的狀態 %s 格式錯誤，改用預設值: %s", name, e)
        return None


async def save_persisted(storage: StateStorage, name: str, state: PortfolioState) -> None:
    """寫入狀態子集"""
    await storage.set_item(name, partialize(state).model_dump(mode="json"))
    logger.debug("狀態已保存: %s", name)

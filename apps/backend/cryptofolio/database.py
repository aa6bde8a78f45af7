"""
CryptoFolio 資料庫連線模組

支援 SQLAlchemy 2.0 async engine，只用來保存 Store 的持久化狀態。
開發模式使用 SQLite，生產環境使用 PostgreSQL。
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from cryptofolio.config import get_settings


class Base(DeclarativeBase):
    """所有 ORM Model 的基礎類別"""
    pass


def _async_url(url: str) -> str:
    """自動轉換資料庫 URL 為非同步驅動程式"""
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("sqlite://"):
        return url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return url


def build_engine(database_url: str | None = None) -> AsyncEngine:
    """依資料庫類型建立 async engine"""
    settings = get_settings()
    url = _async_url(database_url or settings.database_url)

    engine_kwargs: dict = {"echo": False}
    if "sqlite" in url:
        # SQLite 需要特殊的 connect_args，允許跨執行緒存取
        engine_kwargs["connect_args"] = {"check_same_thread": False}
    else:
        # PostgreSQL 連線池設定
        engine_kwargs.update({
            "pool_size": 5,
            "max_overflow": 5,
            "pool_pre_ping": True,
        })

    return create_async_engine(url, **engine_kwargs)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    """初始化資料庫（自動建立所有表）"""
    # 確保 Model 已註冊到 metadata
    import cryptofolio.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

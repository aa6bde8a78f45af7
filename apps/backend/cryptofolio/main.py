"""
CryptoFolio FastAPI 應用程式入口

包含 CORS 設定、全域錯誤處理中介軟體、
啟動事件（還原持久化狀態、啟動報價自動更新排程器）。
"""

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from cryptofolio.api.router import api_router
from cryptofolio.config import get_settings
from cryptofolio.database import build_engine, build_session_factory, init_db
from cryptofolio.price.manager import PriceManager
from cryptofolio.redis_client import close_redis
from cryptofolio.schemas.common import ErrorResponse
from cryptofolio.schemas.portfolio import PortfolioState
from cryptofolio.services.persistence import SqlStateStorage, StateStorage
from cryptofolio.services.portfolio_store import PortfolioStore
from cryptofolio.worker import RefreshScheduler

# 設定日誌
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

settings = get_settings()


def create_app(
    price_manager: PriceManager | None = None,
    storage: StateStorage | None = None,
) -> FastAPI:
    """建立 FastAPI 應用；測試時可注入報價管理器與儲存後端"""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """應用程式生命週期管理"""
        # === 啟動時 ===
        logger.info("🚀 CryptoFolio API 啟動中...")
        logger.info("環境: %s", settings.app_env)

        engine = None
        state_storage = storage
        if state_storage is None:
            engine = build_engine()
            await init_db(engine)
            state_storage = SqlStateStorage(build_session_factory(engine))
            logger.info("✅ 資料庫初始化完成")

        manager = price_manager or PriceManager()
        store = await PortfolioStore.create(
            manager,
            state_storage,
            storage_name=settings.state_record_name,
            defaults=PortfolioState(
                auto_refresh=settings.default_auto_refresh,
                refresh_interval=settings.default_refresh_interval,
            ),
        )
        refresh_scheduler = RefreshScheduler(store, tick_seconds=settings.tick_seconds)

        app.state.store = store
        app.state.refresh_scheduler = refresh_scheduler

        # 啟動報價自動更新排程器（首次啟動會立即更新一次）
        refresh_scheduler.start()

        yield

        # === 關閉時 ===
        logger.info("CryptoFolio API 關閉中...")
        await refresh_scheduler.shutdown()
        await store.drain()
        await manager.close()
        await close_redis()
        if engine is not None:
            await engine.dispose()
        logger.info("👋 CryptoFolio API 已關閉")

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="加密貨幣投資組合追蹤與損益 API",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # === CORS 中介軟體 ===
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # === 全域錯誤處理 ===

    @app.middleware("http")
    async def error_handling_middleware(request: Request, call_next):
        """
        全域錯誤處理與請求日誌中介軟體

        - 記錄每個請求的處理時間
        - 捕獲未預期的例外並回傳統一格式
        """
        start_time = time.time()

        try:
            response = await call_next(request)

            process_time = time.time() - start_time
            logger.info(
                "%s %s - %d (%.3fs)",
                request.method,
                request.url.path,
                response.status_code,
                process_time,
            )

            response.headers["X-Process-Time"] = f"{process_time:.3f}"
            return response

        except Exception as e:
            process_time = time.time() - start_time
            logger.error(
                "%s %s - 500 (%.3fs) Error: %s",
                request.method,
                request.url.path,
                process_time,
                str(e),
            )
            return JSONResponse(
                status_code=500,
                content=ErrorResponse(
                    error="Internal Server Error",
                    detail=str(e) if settings.is_development else None,
                ).model_dump(),
            )

    # === 註冊路由 ===
    app.include_router(api_router)

    # === 健康檢查 ===

    @app.get("/health", tags=["系統"])
    async def health_check():
        """API 健康檢查"""
        return {
            "status": "healthy",
            "version": settings.app_version,
            "environment": settings.app_env,
        }

    return app


app = create_app()

"""
API 依賴注入

Store 與排程器在應用程式啟動時建立並掛在 app.state 上，路由透過這裡取得。
"""

from fastapi import Request

from cryptofolio.price.manager import PriceManager
from cryptofolio.services.portfolio_store import PortfolioStore
from cryptofolio.worker import RefreshScheduler


def get_store(request: Request) -> PortfolioStore:
    return request.app.state.store


def get_refresh_scheduler(request: Request) -> RefreshScheduler:
    return request.app.state.refresh_scheduler


def get_price_manager(request: Request) -> PriceManager:
    return request.app.state.store.price_manager

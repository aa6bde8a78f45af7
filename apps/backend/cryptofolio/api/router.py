"""
API 路由集中註冊
"""

from fastapi import APIRouter

from cryptofolio.api.coins import router as coins_router
from cryptofolio.api.portfolio import router as portfolio_router

api_router = APIRouter(prefix="/api")
api_router.include_router(portfolio_router)
api_router.include_router(coins_router)

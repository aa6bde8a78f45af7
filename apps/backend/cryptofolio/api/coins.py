"""
幣種搜尋 API 路由
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from cryptofolio.api.deps import get_price_manager
from cryptofolio.price.base import ProviderError, RateLimitError
from cryptofolio.price.coingecko import POPULAR_COINS
from cryptofolio.price.manager import PriceManager
from cryptofolio.schemas.common import ApiResponse
from cryptofolio.schemas.portfolio import CoinSearchItem

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/coins", tags=["幣種"])


@router.get("/search", response_model=ApiResponse[list[CoinSearchItem]])
async def search_coins(
    query: str,
    manager: PriceManager = Depends(get_price_manager),
):
    """
    搜尋幣種代碼與名稱

    關鍵字少於 2 個字元時直接回傳空列表，最多回傳 10 筆。
    """
    try:
        results = await manager.search_coins(query)
    except RateLimitError as e:
        raise HTTPException(status_code=429, detail=str(e))
    except ProviderError as e:
        logger.error("搜尋幣種失敗: %s", e)
        raise HTTPException(status_code=502, detail=str(e))

    return ApiResponse(data=[
        CoinSearchItem(id=r.coin_id, symbol=r.symbol, name=r.name, thumb=r.thumb)
        for r in results
    ])


@router.get("/popular", response_model=ApiResponse[list[CoinSearchItem]])
async def popular_coins():
    """常用幣種（快速新增）"""
    return ApiResponse(data=[CoinSearchItem(**coin) for coin in POPULAR_COINS])

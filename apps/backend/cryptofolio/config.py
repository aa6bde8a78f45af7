"""
CryptoFolio 後端設定模組

使用 Pydantic Settings 管理環境變數，自動驗證型別與預設值。
"""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """應用程式設定，透過環境變數或 .env 載入"""

    # === 應用程式 ===
    app_env: Literal["development", "production", "testing"] = "development"
    app_name: str = "CryptoFolio API"
    app_version: str = "0.1.0"
    debug: bool = True

    # === 資料庫（僅保存持久化狀態） ===
    database_url: str = "sqlite+aiosqlite:///./cryptofolio.db"
    state_record_name: str = "portfolio-storage"

    # === Redis ===
    redis_url: str | None = None  # None 時自動使用記憶體快取

    # === 報價 API ===
    coingecko_base_url: str = "https://api.coingecko.com/api/v3"
    coingecko_api_key: str = ""
    http_timeout: float = 10.0
    price_cache_ttl: int = 30  # 30 秒
    search_limit: int = 10
    search_min_length: int = 2

    # === 自動更新 ===
    default_auto_refresh: bool = True
    default_refresh_interval: Literal[30, 60, 120, 300] = 60
    tick_seconds: int = 1

    # === CORS ===
    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://localhost:8081",
    ]

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
    }

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"


@lru_cache
def get_settings() -> Settings:
    """取得快取的設定實例"""
    return Settings()

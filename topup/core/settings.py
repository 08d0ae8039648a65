from __future__ import annotations

from pathlib import Path
from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

# 1. 强制加载 .env
ENV_PATH = Path(__file__).resolve().parent.parent.parent / ".env"
if ENV_PATH.exists():
    load_dotenv(ENV_PATH)


class Settings(BaseSettings):
    # --- App ---
    APP_NAME: str = "Diamond TopUp"
    LOG_LEVEL: str = "INFO"
    CORS_ALLOW_ORIGINS: list[str] = ["*"]

    # --- Auth ---
    JWT_SECRET: str = "change-me"
    JWT_ALG: str = "HS256"
    JWT_EXPIRE_DAYS: int = 14
    COOKIE_NAME: str = "topup_token"

    # --- Database ---
    DATABASE_URL: str = "sqlite+aiosqlite:///./topup.db"
    # sqlite 等写锁的最长秒数
    SQLITE_BUSY_TIMEOUT: float = 15.0

    # --- 销售周：周四 21:30 (Asia/Colombo) 到下周四 21:30 ---
    APP_TIMEZONE: str = "Asia/Colombo"
    WEEK_ANCHOR_WEEKDAY: int = 3  # Monday=0 ... Thursday=3
    WEEK_ANCHOR_HOUR: int = 21
    WEEK_ANCHOR_MINUTE: int = 30

    # --- Orders ---
    DIAMOND_PACKAGES: list[int] = [10, 50, 100, 200, 500, 1000, 2000, 5000, 10000]
    ORDER_MAX_QUANTITY: int = 100
    ORDER_MAX_POINTS: int = 1_000_000

    # --- Points ---
    POINT_REQUEST_MAX: int = 100_000
    ADMIN_GRANT_MAX: int = 1_000_000

    # --- Admin bootstrap ---
    DEFAULT_ADMIN_USERNAME: str = "admin"
    DEFAULT_ADMIN_PASSWORD: str = "000000"

    model_config = SettingsConfigDict(
        env_file=ENV_PATH,
        env_file_encoding="utf-8",
        extra="ignore"
    )

settings = Settings()

"""Application configuration"""

from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DEALS_FEED_URL = (
    "https://cbk3yym2o7ktq2x44qnfo5xnhe0hpwxt.lambda-url.us-east-1.on.aws/api/v1/deals"
)


class Settings(BaseSettings):
    PROJECT_NAME: str = "Relay Station"
    VERSION: str = "0.1.0"
    DEBUG: bool = False

    # database
    DATABASE_URL: str

    # 外部フィード
    DEALS_FEED_URL: str = DEFAULT_DEALS_FEED_URL
    FEED_TIMEOUT_SECONDS: float = 15.0

    # 認証
    SYNC_DEALS_SECRET: Optional[str] = None
    JWT_SECRET: Optional[str] = None

    # 画像検証
    IMAGE_HEAD_TIMEOUT_SECONDS: float = 5.0
    PAGE_SCRAPE_TIMEOUT_SECONDS: float = 8.0
    IMAGE_MAX_RETRIES: int = 5
    IMAGE_BATCH_SIZE: int = 10

    # 画像プロキシ
    PROXY_FETCH_TIMEOUT_SECONDS: float = 10.0
    IMAGE_PROXY_RATE_LIMIT: str = "120/minute"

    # 保持ポリシー
    RETENTION_MIN_KEEP: int = 50
    RETENTION_MAX_AGE_DAYS: int = 4
    STALE_AFTER_HOURS: float = 5.0

    # スケジューラー
    SCHEDULER_ENABLED: bool = False
    SYNC_INTERVAL_MINUTES: int = 60
    VERIFY_INTERVAL_MINUTES: int = 15

    # Frontend
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
    ]

    model_config = SettingsConfigDict(
        env_file=".env", case_sensitive=True, extra="ignore"
    )


settings = Settings()

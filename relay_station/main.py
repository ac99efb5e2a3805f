"""
FastAPI メインアプリケーション
Relay Station - ディール取り込み・画像検証パイプライン
"""

from fastapi import FastAPI, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from sqlalchemy import text
from contextlib import asynccontextmanager
import logging
from datetime import datetime
from dotenv import load_dotenv

load_dotenv()

from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from relay_station.config import settings
from relay_station.database import get_db, engine
from relay_station.auth import TriggerAuthError
from relay_station.rate_limiter import limiter
from relay_station.routers.functions import router as functions_router
from relay_station.routers.deals import router as deals_router
from relay_station.routers.admin import router as admin_router
from relay_station.services.cache_service import image_url_cache
from relay_station.services.scheduler_service import (
    start_scheduler,
    stop_scheduler,
    get_scheduler_status,
)

# ログ設定
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


# ============================================
# ライフサイクル管理
# ============================================
@asynccontextmanager
async def lifespan(app: FastAPI):
    """アプリケーションの起動・終了処理"""
    logger.info("🚀 Relay Station starting...")
    logger.info(f"Database engine: {engine.url.render_as_string(hide_password=True)}")

    # DB接続テスト
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
            logger.info("✅ Database connection test successful")
    except Exception as e:
        logger.error(f"❌ Database connection test failed: {e}")

    if settings.SCHEDULER_ENABLED:
        start_scheduler()

    yield

    stop_scheduler()
    logger.info("👋 Relay Station shutting down...")
    engine.dispose()


# ============================================
# FastAPI アプリケーション
# ============================================
app = FastAPI(
    title="Relay Station API",
    description="ディール取り込み・画像検証・画像プロキシ",
    version=settings.VERSION,
    lifespan=lifespan,
)

# レート制限
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# CORS設定
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
    max_age=3600,
)


@app.exception_handler(TriggerAuthError)
async def trigger_auth_error_handler(request: Request, exc: TriggerAuthError):
    """同期トリガーの認証エラーを {success: false, error} で返す"""
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.error},
    )


# ルータ登録
app.include_router(functions_router)
app.include_router(deals_router)
app.include_router(admin_router)


# ============================================
# 基本エンドポイント
# ============================================
@app.get("/")
async def root():
    """ルートエンドポイント"""
    return {
        "message": "Relay Station API",
        "version": settings.VERSION,
        "status": "running",
        "docs": "/docs",
        "endpoints": {
            "health": "/api/health",
            "db_health": "/api/db/health",
            "sync_deals": "/functions/sync-deals",
            "verify_deal_images": "/functions/verify-deal-images",
            "image_proxy": "/functions/image-proxy",
            "deals": "/api/deals",
        },
    }


@app.get("/api/health")
async def health_check():
    """ヘルスチェックエンドポイント"""
    return {
        "status": "ok",
        "service": settings.PROJECT_NAME,
        "timestamp": datetime.now().isoformat(),
    }


@app.get("/api/db/health")
def db_health_check(db: Session = Depends(get_db)):
    """データベース接続確認エンドポイント"""
    try:
        db.execute(text("SELECT 1"))
        return {
            "status": "connected",
            "dialect": db.get_bind().dialect.name,
        }
    except Exception as e:
        logger.error(f"Database connection failed: {e}")
        return {"status": "error", "message": "Database connection failed"}


# ============================================
# 運用状況
# ============================================
@app.get("/api/scheduler/status")
async def scheduler_status():
    """スケジューラーの状態"""
    return get_scheduler_status()


@app.get("/api/cache/stats")
async def cache_stats():
    """画像URLキャッシュの統計"""
    return {"status": "ok", "cache": image_url_cache.get_stats()}

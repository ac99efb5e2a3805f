"""
管理API エンドポイント（adminロールが必要）
"""

import logging
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from relay_station.auth import get_current_admin
from relay_station.config import settings
from relay_station.database import get_db
from relay_station.models.cron_job_health import CronJobHealth
from relay_station.schemas.admin import (
    ImageStatusResponse,
    ResetResponse,
    CronJobHealthResponse,
)
from relay_station.services.image_verifier import get_image_status, reset_exhausted_deals

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["Admin"])


@router.get("/images/status", response_model=ImageStatusResponse)
def image_status(
    max_retries: Optional[int] = Query(None, ge=1, le=50, description="リトライ上限"),
    db: Session = Depends(get_db),
    admin_id: str = Depends(get_current_admin),
):
    """画像検証の状況を取得"""
    return get_image_status(db, max_retries or settings.IMAGE_MAX_RETRIES)


@router.post("/images/reset", response_model=ResetResponse)
def reset_images(
    max_retries: Optional[int] = Query(None, ge=1, le=50, description="リトライ上限"),
    db: Session = Depends(get_db),
    admin_id: str = Depends(get_current_admin),
):
    """
    リトライ上限に達したディールを再検証の対象に戻す
    """
    try:
        count = reset_exhausted_deals(db, max_retries or settings.IMAGE_MAX_RETRIES)
    except Exception as e:
        logger.error(f"リトライ回数のリセットに失敗: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="リセットに失敗しました",
        )

    logger.info(f"リトライ回数をリセット: {count}件 (admin={admin_id})")
    return ResetResponse(success=True, reset=count)


@router.get("/cron-health", response_model=List[CronJobHealthResponse])
def cron_health(
    db: Session = Depends(get_db),
    admin_id: str = Depends(get_current_admin),
):
    """定期ジョブの稼働状況を取得"""
    return db.query(CronJobHealth).order_by(CronJobHealth.job_name).all()

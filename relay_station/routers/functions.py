"""
パイプライン起動API エンドポイント

- POST /functions/sync-deals          ディール同期（cron・管理者）
- POST /functions/verify-deal-images  ディール画像検証
- GET  /functions/image-proxy         商品画像プロキシ
"""

import logging
from typing import Optional

import requests
from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse, PlainTextResponse, StreamingResponse
from sqlalchemy.orm import Session

from relay_station.auth import require_sync_trigger
from relay_station.config import settings
from relay_station.database import get_db
from relay_station.dependencies import get_image_proxy_service, get_sync_processor
from relay_station.rate_limiter import limiter
from relay_station.schemas.functions import (
    ErrorResponse,
    SyncDealsResponse,
    VerifyImagesRequest,
    VerifyImagesResponse,
)
from relay_station.services.deal_sync import DealSyncProcessor
from relay_station.services.deals_feed import FeedError
from relay_station.services.http_client import get_http_session
from relay_station.services.image_proxy import ImageProxyService
from relay_station.services.image_verifier import build_image_verifier
from relay_station.services.job_health import SYNC_JOB_NAME, record_job_run
from relay_station.services.url_guard import TargetRejected

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/functions", tags=["Functions"])


def _error_response(status_code: int, error: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error).model_dump(),
    )


def _record_cron_run(db: Session, success: bool, error: Optional[str] = None) -> None:
    """cronからの実行を稼働状況に記録（記録の失敗は無視してログのみ）"""
    try:
        record_job_run(db, SYNC_JOB_NAME, success, error)
    except Exception as e:
        logger.error(f"ジョブ稼働状況の記録に失敗: {str(e)}")


# ============================================
# ディール同期
# ============================================
@router.post(
    "/sync-deals",
    response_model=SyncDealsResponse,
    responses={
        401: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
def sync_deals(
    auth_method: str = Depends(require_sync_trigger),
    processor: DealSyncProcessor = Depends(get_sync_processor),
):
    """
    フィードからディールを同期

    x-sync-secret ヘッダー、または admin ロールの Bearer トークンが必要
    """
    logger.info(f"ディール同期リクエスト: auth={auth_method}")
    is_cron = auth_method == "secret"

    try:
        result = processor.run()
    except FeedError as e:
        logger.error(f"フィード取得エラー: {str(e)}")
        if is_cron:
            _record_cron_run(processor.db, False, str(e))
        return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, str(e))
    except Exception as e:
        logger.error(f"ディール同期エラー: {str(e)}")
        processor.db.rollback()
        if is_cron:
            _record_cron_run(processor.db, False, str(e))
        return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to sync deals")

    if is_cron:
        _record_cron_run(processor.db, True)

    return SyncDealsResponse(
        success=True,
        message=f"Successfully synced {result['count']} deals",
        count=result["count"],
    )


# ============================================
# 画像検証
# ============================================
@router.post(
    "/verify-deal-images",
    response_model=VerifyImagesResponse,
    response_model_exclude_none=True,
    responses={500: {"model": ErrorResponse}},
)
def verify_deal_images(
    request: Optional[VerifyImagesRequest] = None,
    db: Session = Depends(get_db),
    session: requests.Session = Depends(get_http_session),
):
    """
    画像が未検証のディールを検証

    Body（すべて任意）: batchSize, maxRetries, dealId
    """
    request = request or VerifyImagesRequest()
    batch_size = request.batch_size or settings.IMAGE_BATCH_SIZE

    try:
        verifier = build_image_verifier(db, session, max_retries=request.max_retries)
        return verifier.run(batch_size=batch_size, deal_id=request.deal_id)
    except Exception as e:
        logger.error(f"画像検証エラー: {str(e)}")
        return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to verify images")


# ============================================
# 画像プロキシ
# ============================================
@router.get("/image-proxy")
@limiter.limit(settings.IMAGE_PROXY_RATE_LIMIT)
def image_proxy(
    request: Request,
    url: Optional[str] = Query(None, description="商品ページURL"),
    service: ImageProxyService = Depends(get_image_proxy_service),
):
    """
    商品ページURLから商品画像を取得して返す

    URLが不正な場合は 400、許可されない取得先は 403（プレーンテキスト）。
    取得に失敗した場合はプレースホルダーSVGを 200 で返す
    """
    try:
        image = service.proxy(url)
    except TargetRejected as e:
        logger.warning(f"画像プロキシ: 拒否 ({e.status_code}) {e.message}")
        return PlainTextResponse(e.message, status_code=e.status_code)
    except Exception as e:
        logger.error(f"画像プロキシエラー: {str(e)}")
        return PlainTextResponse("Internal server error", status_code=500)

    return StreamingResponse(
        image.iter_bytes(),
        media_type=image.content_type,
        headers={
            "Cache-Control": image.cache_control,
            "X-Image-Source": image.source,
        },
    )

"""依存注入モジュール"""
import requests
from fastapi import Depends
from sqlalchemy.orm import Session

from relay_station.config import settings
from relay_station.database import get_db
from relay_station.services.cache_service import image_url_cache
from relay_station.services.deals_feed import DealFeedClient
from relay_station.services.deal_sync import DealSyncProcessor
from relay_station.services.http_client import get_http_session
from relay_station.services.image_proxy import ImageProxyService


def get_feed_client() -> DealFeedClient:
    """
    フィードクライアントを取得
    テストでは app.dependency_overrides でフェイクに差し替える
    """
    return DealFeedClient(settings.DEALS_FEED_URL, timeout=settings.FEED_TIMEOUT_SECONDS)


def get_sync_processor(
    db: Session = Depends(get_db),
    feed_client: DealFeedClient = Depends(get_feed_client),
) -> DealSyncProcessor:
    """ディール同期処理を取得"""
    return DealSyncProcessor(
        db,
        feed_client,
        min_keep=settings.RETENTION_MIN_KEEP,
        max_age_days=settings.RETENTION_MAX_AGE_DAYS,
    )


def get_image_proxy_service(
    session: requests.Session = Depends(get_http_session),
) -> ImageProxyService:
    """画像プロキシサービスを取得"""
    return ImageProxyService(
        session,
        timeout=settings.PROXY_FETCH_TIMEOUT_SECONDS,
        cache=image_url_cache,
    )

"""
Deals API エンドポイント（読み取り専用）
"""

import logging
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func
from sqlalchemy.orm import Session

from relay_station.config import settings
from relay_station.database import get_db, utcnow
from relay_station.models.deal import Deal
from relay_station.models.deal_price_history import DealPriceHistory
from relay_station.schemas.deal import (
    DealResponse,
    DealListResponse,
    PriceHistoryItem,
    PriceHistoryResponse,
    FreshnessResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/deals", tags=["Deals"])


@router.get("", response_model=DealListResponse)
def list_deals(
    category: Optional[str] = Query(None, description="カテゴリ"),
    image_ready: Optional[bool] = Query(None, description="画像検証済みのみ"),
    page: int = Query(1, ge=1, description="ページ番号"),
    limit: int = Query(20, ge=1, le=100, description="1ページあたりの取得件数"),
    db: Session = Depends(get_db),
):
    """
    ディール一覧を取得（新しい順）
    """
    query = db.query(Deal)
    if category:
        query = query.filter(Deal.category == category)
    if image_ready is not None:
        query = query.filter(Deal.image_ready.is_(image_ready))

    total = query.count()
    deals = (
        query.order_by(Deal.fetched_at.desc(), Deal.id)
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    return DealListResponse(
        total=total,
        page=page,
        limit=limit,
        deals=[DealResponse.model_validate(deal) for deal in deals],
    )


@router.get("/freshness", response_model=FreshnessResponse)
def get_freshness(db: Session = Depends(get_db)):
    """
    最終同期からの経過時間を取得

    STALE_AFTER_HOURS を超えていれば is_stale=true
    """
    latest = db.query(func.max(Deal.fetched_at)).scalar()
    if latest is None:
        return FreshnessResponse(stale_after_hours=settings.STALE_AFTER_HOURS, is_stale=True)

    hours = (utcnow() - latest).total_seconds() / 3600
    is_stale = hours > settings.STALE_AFTER_HOURS
    if is_stale:
        logger.warning(f"ディールが古くなっています: 最終同期から{hours:.1f}時間")

    return FreshnessResponse(
        latest_fetched_at=latest,
        hours_since_update=round(hours, 2),
        stale_after_hours=settings.STALE_AFTER_HOURS,
        is_stale=is_stale,
    )


@router.get("/{deal_id}", response_model=DealResponse)
def get_deal(deal_id: str, db: Session = Depends(get_db)):
    """ディール詳細を取得"""
    deal = db.get(Deal, deal_id)
    if deal is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="ディールが見つかりません"
        )
    return DealResponse.model_validate(deal)


@router.get("/{deal_id}/price-history", response_model=PriceHistoryResponse)
def get_price_history(deal_id: str, db: Session = Depends(get_db)):
    """
    価格履歴を取得（古い順）
    """
    deal = db.get(Deal, deal_id)
    if deal is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="ディールが見つかりません"
        )

    histories = (
        db.query(DealPriceHistory)
        .filter(DealPriceHistory.deal_id == deal_id)
        .order_by(DealPriceHistory.recorded_at.asc())
        .all()
    )

    return PriceHistoryResponse(
        deal_id=deal_id,
        history=[PriceHistoryItem.model_validate(h) for h in histories],
    )

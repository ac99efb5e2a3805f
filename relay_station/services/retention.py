"""
ディール保持ポリシー

- fetched_at の新しい順に上位 min_keep 件は期間に関係なく常に保持
- それ以外のうち fetched_at が max_age_days より古いものを削除

フィードが止まってもテーブルが空にならず、長期的な肥大化も防げる
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

from relay_station.database import utcnow
from relay_station.models.deal import Deal
from relay_station.models.deal_price_history import DealPriceHistory

logger = logging.getLogger(__name__)

DEFAULT_MIN_KEEP = 50
DEFAULT_MAX_AGE_DAYS = 4


@dataclass
class PruneResult:
    """削除結果"""
    cutoff: datetime
    examined: int = 0
    deleted_ids: List[str] = field(default_factory=list)

    @property
    def deleted(self) -> int:
        return len(self.deleted_ids)


def select_prunable_ids(
    db: Session,
    min_keep: int = DEFAULT_MIN_KEEP,
    max_age_days: int = DEFAULT_MAX_AGE_DAYS,
    now: Optional[datetime] = None,
) -> PruneResult:
    """削除対象のディールIDを選定（削除はしない）"""
    now = now or utcnow()
    cutoff = now - timedelta(days=max_age_days)

    rows = (
        db.query(Deal.id, Deal.fetched_at)
        .order_by(Deal.fetched_at.desc(), Deal.id.asc())
        .all()
    )

    result = PruneResult(cutoff=cutoff, examined=len(rows))
    for row in rows[min_keep:]:
        if row.fetched_at is None or row.fetched_at < cutoff:
            result.deleted_ids.append(row.id)
    return result


def prune_deals(
    db: Session,
    min_keep: int = DEFAULT_MIN_KEEP,
    max_age_days: int = DEFAULT_MAX_AGE_DAYS,
    now: Optional[datetime] = None,
) -> PruneResult:
    """
    保持ポリシーに従って古いディールを削除しコミットする

    Parameters:
        db: DBセッション
        min_keep: 常に保持する最新件数
        max_age_days: 保持期間（日）
        now: 基準時刻（省略時は現在時刻）

    Returns:
        PruneResult
    """
    result = select_prunable_ids(db, min_keep=min_keep, max_age_days=max_age_days, now=now)

    if not result.deleted_ids:
        logger.info(f"削除対象のディールはありません（{result.examined}件中）")
        return result

    try:
        # 外部キー制約が無効なDB（SQLite等）でも履歴が残らないよう先に削除
        db.query(DealPriceHistory).filter(
            DealPriceHistory.deal_id.in_(result.deleted_ids)
        ).delete(synchronize_session=False)
        db.query(Deal).filter(Deal.id.in_(result.deleted_ids)).delete(
            synchronize_session=False
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(
        f"古いディールを削除: {result.deleted}件 "
        f"（最新{min_keep}件は保持、{max_age_days}日より前を削除）"
    )
    return result

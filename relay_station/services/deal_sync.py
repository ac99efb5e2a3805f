"""
ディール同期バッチ処理
フィード取得 → 正規化 → 重複排除 → 一括アップサート → 価格履歴記録 → 古いディールの削除
"""
import uuid
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Dict, Any, Optional, Sequence

from sqlalchemy.orm import Session

from relay_station.config import settings
from relay_station.database import SessionLocal, utcnow
from relay_station.models.deal import Deal
from relay_station.models.deal_price_history import DealPriceHistory
from relay_station.schemas.feed import NormalizedDeal
from relay_station.services.deals_feed import DealFeedClient
from relay_station.services.deal_normalizer import normalize_deals, deduplicate_deals
from relay_station.services.retention import prune_deals, PruneResult

logger = logging.getLogger(__name__)

# 同期処理が更新する列（画像検証の列は含めない）
UPSERT_COLUMNS = [
    "title",
    "description",
    "price",
    "original_price",
    "discount",
    "image_url",
    "product_url",
    "category",
    "brand",
    "rating",
    "review_count",
    "in_stock",
    "coupon_code",
    "posted_at",
    "fetched_at",
]

UPSERT_CHUNK_SIZE = 200


@dataclass
class PriceHistoryOutcome:
    """価格履歴記録の結果（失敗しても同期全体は失敗にしない）"""
    recorded: List[str] = field(default_factory=list)
    unchanged: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)


def _prices_equal(a: Optional[float], b: Optional[float]) -> bool:
    if a is None or b is None:
        return a is None and b is None
    return round(a, 2) == round(b, 2)


def _insert_statement(db: Session, rows: List[Dict[str, Any]]):
    """DB方言ごとのアップサート文を生成"""
    dialect = db.get_bind().dialect.name

    if dialect == "mysql":
        from sqlalchemy.dialects.mysql import insert

        stmt = insert(Deal).values(rows)
        update_set = {column: stmt.inserted[column] for column in UPSERT_COLUMNS}
        update_set["updated_at"] = utcnow()
        return stmt.on_duplicate_key_update(update_set)

    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        return None

    stmt = insert(Deal).values(rows)
    update_set = {column: stmt.excluded[column] for column in UPSERT_COLUMNS}
    update_set["updated_at"] = utcnow()
    return stmt.on_conflict_do_update(index_elements=[Deal.id], set_=update_set)


def upsert_deals(db: Session, deals: Sequence[NormalizedDeal]) -> int:
    """
    ディールを id をキーに一括アップサートしコミットする

    既存行は同期対象の列のみ上書きし、バッチに含まれない行には触れない
    """
    if not deals:
        return 0

    rows = []
    for deal in deals:
        row = deal.model_dump()
        row["image_ready"] = False
        row["image_retry_count"] = 0
        rows.append(row)

    try:
        for start in range(0, len(rows), UPSERT_CHUNK_SIZE):
            chunk = rows[start:start + UPSERT_CHUNK_SIZE]
            stmt = _insert_statement(db, chunk)
            if stmt is not None:
                db.execute(stmt)
                continue

            # ネイティブのアップサートがない方言
            for row in chunk:
                existing = db.get(Deal, row["id"])
                if existing is None:
                    db.add(Deal(**row))
                else:
                    for column in UPSERT_COLUMNS:
                        setattr(existing, column, row[column])
        db.commit()
    except Exception as e:
        logger.error(f"アップサートエラー: {str(e)}")
        db.rollback()
        raise

    return len(rows)


class DealSyncProcessor:
    """ディール同期バッチ処理クラス"""

    def __init__(
        self,
        db: Session,
        feed_client: DealFeedClient,
        min_keep: int = 50,
        max_age_days: int = 4,
    ):
        self.db = db
        self.feed_client = feed_client
        self.min_keep = min_keep
        self.max_age_days = max_age_days

    def latest_price(self, deal_id: str) -> Optional[DealPriceHistory]:
        """直近の価格履歴を取得"""
        return (
            self.db.query(DealPriceHistory)
            .filter(DealPriceHistory.deal_id == deal_id)
            .order_by(DealPriceHistory.recorded_at.desc(), DealPriceHistory.created_at.desc())
            .first()
        )

    def record_price_history(
        self, deals: Sequence[NormalizedDeal], recorded_at: Optional[datetime] = None
    ) -> PriceHistoryOutcome:
        """
        価格が変わったディールのみ価格履歴を記録

        1件ごとにコミットし、失敗したディールはログに残してスキップする
        """
        recorded_at = recorded_at or utcnow()
        outcome = PriceHistoryOutcome()

        for deal in deals:
            try:
                previous = self.latest_price(deal.id)
                if (
                    previous is not None
                    and _prices_equal(previous.price, deal.price)
                    and _prices_equal(previous.original_price, deal.original_price)
                ):
                    outcome.unchanged.append(deal.id)
                    continue

                self.db.add(
                    DealPriceHistory(
                        id=str(uuid.uuid4()),
                        deal_id=deal.id,
                        price=deal.price,
                        original_price=deal.original_price,
                        discount=deal.discount,
                        recorded_at=recorded_at,
                    )
                )
                self.db.commit()
                outcome.recorded.append(deal.id)
                logger.debug(f"価格履歴を記録: {deal.id} - ${deal.price:,.2f}")

            except Exception as e:
                self.db.rollback()
                outcome.failed.append(deal.id)
                logger.error(f"価格履歴の記録に失敗: {deal.id} - {str(e)}")

        return outcome

    def prune(self) -> Optional[PruneResult]:
        """古いディールを削除（失敗しても同期は成功扱い）"""
        try:
            return prune_deals(
                self.db, min_keep=self.min_keep, max_age_days=self.max_age_days
            )
        except Exception as e:
            logger.error(f"古いディールの削除に失敗: {str(e)}")
            return None

    def run(self) -> Dict[str, Any]:
        """バッチ処理を実行"""
        logger.info("=" * 50)
        logger.info("ディール同期処理を開始")
        logger.info("=" * 50)

        start_time = datetime.now()

        # フィード取得（失敗時は FeedError で中断）
        feed = self.feed_client.fetch_feed()

        # 正規化・重複排除（書き込み前にすべて行う）
        fetched_at = utcnow()
        normalized = normalize_deals(feed.products, fetched_at=fetched_at)
        deals = deduplicate_deals(normalized)

        # 一括アップサート
        count = upsert_deals(self.db, deals)
        logger.info(f"アップサート完了: {count}件")

        # 価格履歴（副次的な処理）
        history = self.record_price_history(deals, recorded_at=fetched_at)

        # 保持ポリシー
        pruned = self.prune()

        end_time = datetime.now()
        duration = (end_time - start_time).total_seconds()

        result = {
            "status": "completed",
            "start_time": start_time.isoformat(),
            "end_time": end_time.isoformat(),
            "duration_seconds": duration,
            "fetched": len(feed.products),
            "skipped": len(feed.products) - len(normalized),
            "duplicates": len(normalized) - len(deals),
            "count": count,
            "price_changes": len(history.recorded),
            "history_errors": len(history.failed),
            "pruned": pruned.deleted if pruned else 0,
        }

        logger.info("=" * 50)
        logger.info("ディール同期処理完了")
        logger.info(f"  取得件数: {result['fetched']}")
        logger.info(f"  スキップ: {result['skipped']}")
        logger.info(f"  重複: {result['duplicates']}")
        logger.info(f"  アップサート: {result['count']}")
        logger.info(f"  価格変動: {result['price_changes']}件")
        logger.info(f"  削除: {result['pruned']}件")
        logger.info(f"  処理時間: {duration:.2f}秒")
        logger.info("=" * 50)

        return result


def build_sync_processor(db: Session) -> DealSyncProcessor:
    """設定値からバッチ処理を組み立てる"""
    feed_client = DealFeedClient(
        settings.DEALS_FEED_URL, timeout=settings.FEED_TIMEOUT_SECONDS
    )
    return DealSyncProcessor(
        db,
        feed_client,
        min_keep=settings.RETENTION_MIN_KEEP,
        max_age_days=settings.RETENTION_MAX_AGE_DAYS,
    )


def run_deal_sync() -> Dict[str, Any]:
    """バッチ処理を実行するエントリーポイント"""
    db = SessionLocal()
    try:
        processor = build_sync_processor(db)
        return processor.run()
    finally:
        db.close()

"""
ディール画像検証バッチ処理

image_ready=false のディールについて画像URLの候補を順に確認し、
表示できる画像が見つかれば verified、見つからなければリトライ回数を加算する。

状態:
- unverified: image_ready=false, image_retry_count < max_retries
- verified:   image_ready=true
- exhausted:  image_ready=false, image_retry_count >= max_retries（自動リトライ対象外）

候補の確認順:
1. 現在の image_url（プレースホルダー以外）
2. ASINから推測した画像CDNのURL
3. 商品ページのHTMLから抽出した画像URL
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Dict, Any, Optional

import requests
from sqlalchemy.orm import Session

from relay_station.config import settings
from relay_station.database import SessionLocal, utcnow
from relay_station.models.deal import Deal
from relay_station.services.http_client import (
    HTML_HEADERS,
    CHECK_USER_AGENT,
    create_session,
)
from relay_station.services.image_extraction import (
    amazon_cdn_image_urls,
    extract_asin,
    extract_image_candidate,
    is_placeholder_url,
)
from relay_station.services.url_guard import is_public_http_url

logger = logging.getLogger(__name__)

MIN_IMAGE_BYTES = 1000

STATUS_VERIFIED = "verified"
STATUS_RETRY = "retry"
STATUS_ERROR = "error"


@dataclass
class VerificationResult:
    """1件の検証結果"""
    id: str
    status: str
    image_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"id": self.id, "status": self.status}
        if self.image_url:
            data["imageUrl"] = self.image_url
        return data


class ImageChecker:
    """画像URL・商品ページへのHTTPアクセス（すべてタイムアウト付き）"""

    def __init__(
        self,
        session: requests.Session,
        head_timeout: float = 5.0,
        page_timeout: float = 8.0,
    ):
        self.session = session
        self.head_timeout = head_timeout
        self.page_timeout = page_timeout

    def is_valid_image(self, url: str) -> bool:
        """
        HEADリクエストで画像として使えるか確認

        2xx かつ content-type が image/ で始まり、content-length が1000バイト超なら True。
        タイムアウトや接続エラーは False として扱う
        """
        if not is_public_http_url(url):
            return False
        try:
            response = self.session.head(
                url,
                timeout=self.head_timeout,
                allow_redirects=True,
                headers={"User-Agent": CHECK_USER_AGENT},
            )
        except requests.exceptions.RequestException as e:
            logger.debug(f"HEADリクエスト失敗: {url} - {str(e)}")
            return False

        try:
            if not 200 <= response.status_code < 300:
                return False
            content_type = response.headers.get("content-type", "")
            try:
                content_length = int(response.headers.get("content-length", "0"))
            except ValueError:
                content_length = 0
            return content_type.startswith("image/") and content_length > MIN_IMAGE_BYTES
        finally:
            response.close()

    def fetch_page(self, url: str) -> Optional[str]:
        """商品ページのHTMLを取得（失敗時は None）"""
        if not is_public_http_url(url):
            return None
        try:
            response = self.session.get(url, timeout=self.page_timeout, headers=HTML_HEADERS)
        except requests.exceptions.RequestException as e:
            logger.debug(f"商品ページ取得失敗: {url} - {str(e)}")
            return None

        try:
            if not 200 <= response.status_code < 300:
                return None
            return response.text
        finally:
            response.close()


def select_pending_deals(db: Session, max_retries: int, batch_size: int) -> List[Deal]:
    """
    検証対象のディールを取得

    未確認（image_last_checked が NULL）のディールを優先し、確認が古い順に並べる
    """
    return (
        db.query(Deal)
        .filter(
            Deal.image_ready.is_(False),
            Deal.image_retry_count < max_retries,
        )
        .order_by(
            Deal.image_last_checked.is_(None).desc(),
            Deal.image_last_checked.asc(),
            Deal.fetched_at.desc(),
        )
        .limit(batch_size)
        .all()
    )


class ImageVerifier:
    """ディール画像検証クラス"""

    def __init__(self, db: Session, checker: ImageChecker, max_retries: int = 5):
        self.db = db
        self.checker = checker
        self.max_retries = max_retries
        self.verified_count = 0
        self.retry_count = 0
        self.error_count = 0

    def select_pending(self, batch_size: int) -> List[Deal]:
        return select_pending_deals(self.db, self.max_retries, batch_size)

    def find_image_url(self, deal: Deal) -> Optional[str]:
        """表示できる画像URLを探す（見つからなければ None）"""
        # 1. 現在の画像URL
        if deal.image_url and not is_placeholder_url(deal.image_url) and deal.image_url.startswith("http"):
            if self.checker.is_valid_image(deal.image_url):
                logger.info(f"[{deal.id}] ✓ 既存の画像URLが有効")
                return deal.image_url
            logger.info(f"[{deal.id}] ✗ 既存の画像URLが無効")

        # 2. ASINから画像CDNのURLを推測
        asin = extract_asin(deal.product_url)
        if asin:
            logger.info(f"[{deal.id}] ASINで確認: {asin}")
            for cdn_url in amazon_cdn_image_urls(asin):
                if self.checker.is_valid_image(cdn_url):
                    logger.info(f"[{deal.id}] ✓ 画像CDNのURLが有効")
                    return cdn_url

        # 3. 商品ページから抽出
        if deal.product_url and deal.product_url.startswith("http"):
            logger.info(f"[{deal.id}] 商品ページから画像を抽出")
            html = self.checker.fetch_page(deal.product_url)
            candidate = extract_image_candidate(html) if html else None
            if candidate and self.checker.is_valid_image(candidate):
                logger.info(f"[{deal.id}] ✓ 抽出した画像URLが有効")
                return candidate

        logger.info(f"[{deal.id}] ✗ 有効な画像が見つかりません")
        return None

    def mark_verified(self, deal: Deal, image_url: str, checked_at: datetime) -> None:
        deal.image_ready = True
        deal.verified_image_url = image_url
        deal.image_url = image_url
        deal.image_last_checked = checked_at

    def mark_retry(self, deal: Deal, checked_at: datetime) -> None:
        current = deal.image_retry_count or 0
        # 上限を超えて加算しない（上限超過済みの値はそのまま）
        deal.image_retry_count = max(current, min(current + 1, self.max_retries))
        deal.image_last_checked = checked_at

    def process_deal(self, deal: Deal) -> VerificationResult:
        """1件の画像検証と状態更新"""
        try:
            image_url = self.find_image_url(deal)
            checked_at = utcnow()

            if image_url:
                self.mark_verified(deal, image_url, checked_at)
            else:
                self.mark_retry(deal, checked_at)
            self.db.commit()

        except Exception as e:
            logger.error(f"[{deal.id}] 画像検証の更新エラー: {str(e)}")
            self.db.rollback()
            self.error_count += 1
            return VerificationResult(id=deal.id, status=STATUS_ERROR)

        if image_url:
            self.verified_count += 1
            return VerificationResult(id=deal.id, status=STATUS_VERIFIED, image_url=image_url)

        self.retry_count += 1
        logger.info(f"✗ {deal.id} は再試行が必要 ({deal.image_retry_count}/{self.max_retries})")
        return VerificationResult(id=deal.id, status=STATUS_RETRY)

    def run(self, batch_size: int = 10, deal_id: Optional[str] = None) -> Dict[str, Any]:
        """
        バッチ処理を実行

        Parameters:
            batch_size: 1回に処理する件数
            deal_id: 指定時はそのディールのみ処理（状態に関係なく）

        Returns:
            {message, processed, verified, needRetry, results}
        """
        logger.info(
            f"画像検証を開始: batch={batch_size}, max_retries={self.max_retries}, deal_id={deal_id}"
        )

        if deal_id:
            deal = self.db.get(Deal, deal_id)
            deals = [deal] if deal else []
        else:
            deals = self.select_pending(batch_size)

        if not deals:
            logger.info("画像検証が必要なディールはありません")
            return {
                "message": "No deals need verification",
                "processed": 0,
                "verified": 0,
                "needRetry": 0,
                "results": [],
            }

        results = []
        for i, deal in enumerate(deals, 1):
            logger.info(f"[{i}/{len(deals)}] {deal.title[:40]}...")
            results.append(self.process_deal(deal))

        logger.info(
            f"画像検証完了: 検証済み={self.verified_count}, "
            f"再試行={self.retry_count}, エラー={self.error_count}"
        )

        return {
            "message": "Image verification complete",
            "processed": len(deals),
            "verified": self.verified_count,
            "needRetry": self.retry_count,
            "results": [result.to_dict() for result in results],
        }


def build_image_verifier(
    db: Session, session: requests.Session, max_retries: Optional[int] = None
) -> ImageVerifier:
    """設定値から画像検証処理を組み立てる"""
    checker = ImageChecker(
        session,
        head_timeout=settings.IMAGE_HEAD_TIMEOUT_SECONDS,
        page_timeout=settings.PAGE_SCRAPE_TIMEOUT_SECONDS,
    )
    return ImageVerifier(
        db, checker, max_retries=max_retries or settings.IMAGE_MAX_RETRIES
    )


def run_image_verification(batch_size: Optional[int] = None) -> Dict[str, Any]:
    """バッチ処理を実行するエントリーポイント"""
    db = SessionLocal()
    session = create_session()
    try:
        verifier = build_image_verifier(db, session)
        return verifier.run(batch_size=batch_size or settings.IMAGE_BATCH_SIZE)
    finally:
        session.close()
        db.close()


# ============================================
# 管理用の集計・リセット
# ============================================
def get_image_status(db: Session, max_retries: int, pending_limit: int = 10) -> Dict[str, Any]:
    """画像検証の状況（準備完了・待機中・上限到達）を集計"""
    total = db.query(Deal).count()
    ready = db.query(Deal).filter(Deal.image_ready.is_(True)).count()
    pending = (
        db.query(Deal)
        .filter(Deal.image_ready.is_(False), Deal.image_retry_count < max_retries)
        .count()
    )
    exhausted = (
        db.query(Deal)
        .filter(Deal.image_ready.is_(False), Deal.image_retry_count >= max_retries)
        .count()
    )
    next_deals = select_pending_deals(db, max_retries, pending_limit)

    return {
        "total": total,
        "ready": ready,
        "pending": pending,
        "exhausted": exhausted,
        "max_retries": max_retries,
        "next": [
            {
                "id": deal.id,
                "title": deal.title,
                "image_url": deal.image_url,
                "image_retry_count": deal.image_retry_count,
                "image_last_checked": deal.image_last_checked,
            }
            for deal in next_deals
        ],
    }


def reset_exhausted_deals(db: Session, max_retries: int) -> int:
    """上限に達したディールのリトライ回数を0に戻す（手動リセット）"""
    try:
        count = (
            db.query(Deal)
            .filter(Deal.image_ready.is_(False), Deal.image_retry_count >= max_retries)
            .update(
                {Deal.image_retry_count: 0, Deal.image_ready: False},
                synchronize_session=False,
            )
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info(f"画像検証のリトライ回数をリセット: {count}件")
    return count

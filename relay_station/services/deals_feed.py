"""
ディールフィード連携サービス

外部のディールフィード（JSON）を取得する。
レスポンスは {count, products[]} 形式で、products の中身は正規化前の生データ。
"""

import logging
from typing import Optional

import requests
from pydantic import ValidationError

from relay_station.schemas.feed import FeedResponse
from relay_station.services.http_client import create_session_with_retry

logger = logging.getLogger(__name__)


# ============================================
# カスタム例外
# ============================================
class FeedError(Exception):
    """フィード取得・解析のエラー（同期処理全体を中断する）"""

    pass


# ============================================
# フィードクライアント
# ============================================
class DealFeedClient:
    """ディールフィードクライアント"""

    def __init__(
        self,
        feed_url: str,
        timeout: float = 15.0,
        session: Optional[requests.Session] = None,
    ):
        """
        Args:
            feed_url: フィードのエンドポイントURL
            timeout: リクエストのタイムアウト（秒）
            session: 使用するHTTPセッション（省略時はリトライ付きセッションを生成）
        """
        self.feed_url = feed_url
        self.timeout = timeout
        self._session = session

    def fetch_feed(self) -> FeedResponse:
        """
        フィードを取得する

        Returns:
            FeedResponse（products は生データのリスト）

        Raises:
            FeedError: 非2xx応答、タイムアウト、不正なJSON、products が配列でない場合
        """
        session = self._session or create_session_with_retry()

        try:
            logger.info(f"フィード取得開始: {self.feed_url}")
            response = session.get(self.feed_url, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()

        except requests.exceptions.Timeout:
            logger.error("タイムアウトエラー: フィード取得がタイムアウトしました")
            raise FeedError("Feed request timed out")
        except requests.exceptions.HTTPError as e:
            status_code = e.response.status_code if e.response is not None else "unknown"
            logger.error(f"HTTPエラー: フィード取得に失敗しました ({status_code})")
            raise FeedError(f"Failed to fetch deals: HTTP {status_code}")
        except requests.exceptions.RequestException as e:
            logger.error(f"リクエストエラー: {str(e)}")
            raise FeedError(f"Failed to fetch deals: {str(e)}")
        except ValueError as e:
            logger.error(f"JSONパースエラー: {str(e)}")
            raise FeedError("Invalid API response format - body is not JSON")
        finally:
            if self._session is None:
                session.close()

        if not isinstance(data, dict) or not isinstance(data.get("products"), list):
            logger.error("不正なレスポンス: products 配列がありません")
            raise FeedError("Invalid API response format - expected products array")

        try:
            feed = FeedResponse(**data)
        except ValidationError as e:
            logger.error(f"フィードの検証に失敗: {str(e)}")
            raise FeedError("Invalid API response format")

        logger.info(f"フィード取得成功: count={feed.count}, products={len(feed.products)}件")
        return feed

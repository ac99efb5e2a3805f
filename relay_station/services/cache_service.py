"""
画像URLキャッシュサービス
TTL付きメモリキャッシュで商品ページから抽出した画像URLを保存
"""

import threading
from typing import Optional, Dict, Any
from cachetools import TTLCache


class ImageUrlCacheService:
    """商品URL → 画像URL のメモリキャッシュ"""

    # デフォルトTTL: 1日
    DEFAULT_TTL = 24 * 60 * 60
    # 最大キャッシュ数: 5000商品
    DEFAULT_MAX_SIZE = 5000

    def __init__(self, ttl: int = DEFAULT_TTL, max_size: int = DEFAULT_MAX_SIZE):
        """
        Args:
            ttl: キャッシュ有効期限（秒）
            max_size: 最大キャッシュ数
        """
        self._cache: TTLCache = TTLCache(maxsize=max_size, ttl=ttl)
        self._lock = threading.Lock()
        self._stats = {
            "hits": 0,
            "misses": 0,
            "sets": 0,
        }

    def _normalize_key(self, product_url: str) -> str:
        """URLを正規化（トリム、フラグメント除去）"""
        return product_url.strip().split("#", 1)[0]

    def get(self, product_url: str) -> Optional[str]:
        """
        キャッシュから画像URLを取得

        Args:
            product_url: 商品ページURL

        Returns:
            画像URL or None（キャッシュミス）
        """
        key = self._normalize_key(product_url)
        with self._lock:
            result = self._cache.get(key)
            if result is not None:
                self._stats["hits"] += 1
                return result
            self._stats["misses"] += 1
            return None

    def set(self, product_url: str, image_url: str) -> None:
        """画像URLをキャッシュに保存"""
        key = self._normalize_key(product_url)
        with self._lock:
            self._cache[key] = image_url
            self._stats["sets"] += 1

    def clear(self) -> int:
        """
        全キャッシュをクリア

        Returns:
            クリアしたキャッシュ数
        """
        with self._lock:
            count = len(self._cache)
            self._cache.clear()
            return count

    def get_stats(self) -> Dict[str, Any]:
        """キャッシュ統計を取得"""
        with self._lock:
            total_requests = self._stats["hits"] + self._stats["misses"]
            hit_rate = (
                self._stats["hits"] / total_requests * 100
                if total_requests > 0 else 0
            )
            return {
                "hits": self._stats["hits"],
                "misses": self._stats["misses"],
                "sets": self._stats["sets"],
                "hit_rate": round(hit_rate, 2),
                "current_size": len(self._cache),
                "max_size": self._cache.maxsize,
                "ttl_seconds": self._cache.ttl,
            }


# シングルトンインスタンス
image_url_cache = ImageUrlCacheService()

"""
画像プロキシサービス

商品ページURLを受け取り、ページから商品画像を抽出して画像そのものを中継する。
取得に失敗した場合でも <img> が必ず何かを表示できるよう、プレースホルダーSVGを返す。
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Iterator, Optional
from urllib.parse import urljoin

import requests

from relay_station.services.cache_service import ImageUrlCacheService
from relay_station.services.http_client import HTML_HEADERS, IMAGE_HEADERS
from relay_station.services.image_extraction import extract_product_image_url
from relay_station.services.url_guard import (
    ALLOWED_IMAGE_DOMAINS,
    ALLOWED_PRODUCT_DOMAINS,
    TargetRejected,
    check_target,
)

logger = logging.getLogger(__name__)

MAX_REDIRECTS = 3
REDIRECT_STATUS_CODES = {301, 302, 303, 307, 308}
CHUNK_SIZE = 64 * 1024

IMAGE_CACHE_CONTROL = "public, max-age=86400"  # 1日
PLACEHOLDER_CACHE_CONTROL = "public, max-age=300"  # 5分

PLACEHOLDER_SVG = """<svg width="400" height="400" xmlns="http://www.w3.org/2000/svg">
  <rect width="400" height="400" fill="#f0f0f0"/>
  <text x="200" y="200" text-anchor="middle" font-family="Arial" font-size="18" fill="#666">
    Image unavailable
  </text>
</svg>
"""


@dataclass
class ProxiedImage:
    """プロキシのレスポンス内容"""
    content_type: str
    cache_control: str
    source: str
    body: Optional[bytes] = None
    upstream: Optional[requests.Response] = None

    def iter_bytes(self) -> Iterator[bytes]:
        """画像データを順に返す（終了時に上流レスポンスを閉じる）"""
        if self.upstream is None:
            if self.body:
                yield self.body
            return
        try:
            for chunk in self.upstream.iter_content(chunk_size=CHUNK_SIZE):
                if chunk:
                    yield chunk
        finally:
            self.upstream.close()


def placeholder_image() -> ProxiedImage:
    return ProxiedImage(
        content_type="image/svg+xml",
        cache_control=PLACEHOLDER_CACHE_CONTROL,
        source="placeholder",
        body=PLACEHOLDER_SVG.encode("utf-8"),
    )


class ImageProxyService:
    """画像プロキシ"""

    def __init__(
        self,
        session: requests.Session,
        timeout: float = 10.0,
        cache: Optional[ImageUrlCacheService] = None,
    ):
        self.session = session
        self.timeout = timeout
        self.cache = cache

    def _guarded_get(
        self,
        url: str,
        allowed_domains: Iterable[str],
        headers: dict,
        stream: bool = False,
    ) -> Optional[requests.Response]:
        """リダイレクトごとに取得先を検証しながらGETする"""
        allowed_domains = list(allowed_domains)
        for _ in range(MAX_REDIRECTS + 1):
            check_target(url, allowed_domains)
            response = self.session.get(
                url,
                headers=headers,
                timeout=self.timeout,
                allow_redirects=False,
                stream=stream,
            )
            location = response.headers.get("location")
            if response.status_code in REDIRECT_STATUS_CODES and location:
                response.close()
                url = urljoin(url, location)
                continue
            return response

        logger.warning(f"リダイレクト回数の上限を超えました: {url}")
        return None

    def resolve_image_url(self, product_url: str) -> Optional[str]:
        """商品ページから画像URLを抽出（キャッシュ優先）"""
        if self.cache is not None:
            cached = self.cache.get(product_url)
            if cached:
                logger.info(f"キャッシュヒット: {product_url}")
                return cached

        response = self._guarded_get(product_url, ALLOWED_PRODUCT_DOMAINS, HTML_HEADERS)
        if response is None:
            return None
        try:
            if not 200 <= response.status_code < 300:
                logger.warning(f"商品ページの取得に失敗: status={response.status_code}")
                return None
            html = response.text
        finally:
            response.close()

        image_url = extract_product_image_url(html)
        if image_url is None:
            logger.warning("商品ページから画像URLを抽出できませんでした")
            return None

        if self.cache is not None:
            self.cache.set(product_url, image_url)
        return image_url

    def fetch_image(self, image_url: str) -> Optional[ProxiedImage]:
        """画像を取得（画像CDNのドメインのみ許可）"""
        response = self._guarded_get(image_url, ALLOWED_IMAGE_DOMAINS, IMAGE_HEADERS, stream=True)
        if response is None:
            return None

        content_type = response.headers.get("content-type", "")
        if not 200 <= response.status_code < 300 or not content_type.startswith("image/"):
            logger.warning(
                f"画像の取得に失敗: status={response.status_code}, content-type={content_type}"
            )
            response.close()
            return None

        return ProxiedImage(
            content_type=content_type,
            cache_control=IMAGE_CACHE_CONTROL,
            source="scraped",
            upstream=response,
        )

    def proxy(self, url: Optional[str]) -> ProxiedImage:
        """
        商品ページURLから画像を取得して返す

        Raises:
            TargetRejected: URLが不正（400）または許可されない取得先（403）

        Returns:
            ProxiedImage（取得・抽出に失敗した場合はプレースホルダー）
        """
        check_target(url, ALLOWED_PRODUCT_DOMAINS)

        try:
            image_url = self.resolve_image_url(url)
            if image_url:
                image = self.fetch_image(image_url)
                if image is not None:
                    return image
        except (requests.exceptions.RequestException, TargetRejected) as e:
            logger.error(f"画像プロキシの取得エラー: {str(e)}")

        logger.warning(f"画像を取得できないためプレースホルダーを返します: {url}")
        return placeholder_image()

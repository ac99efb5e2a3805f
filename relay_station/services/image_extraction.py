"""
商品画像URLの抽出ユーティリティ

Amazonの商品ページHTMLは頻繁に変わるため、抽出パターンはデータとして定義し、
呼び出し側は extract_image_candidate / extract_product_image_url だけを使う。
"""

import json
import re
from typing import List, Optional, Pattern, Tuple

from bs4 import BeautifulSoup

# ============================================
# プレースホルダー判定
# ============================================
PLACEHOLDER_PATTERNS = [
    "placeholder.svg",
    "via.placeholder.com",
    "no+image",
    "no%20image",
]


def is_placeholder_url(url: Optional[str]) -> bool:
    """未設定またはプレースホルダー画像のURLなら True"""
    if not url:
        return True
    lower = url.lower()
    return any(pattern in lower for pattern in PLACEHOLDER_PATTERNS)


# ============================================
# ASIN
# ============================================
ASIN_PATTERNS = [
    re.compile(r"/dp/([A-Z0-9]{10})", re.IGNORECASE),
    re.compile(r"/gp/product/([A-Z0-9]{10})", re.IGNORECASE),
    re.compile(r"/product/([A-Z0-9]{10})", re.IGNORECASE),
    re.compile(r"/ASIN/([A-Z0-9]{10})", re.IGNORECASE),
    re.compile(r"[?&]asin=([A-Z0-9]{10})", re.IGNORECASE),
]


def extract_asin(url: Optional[str]) -> Optional[str]:
    """商品URLからASIN（10桁の英数字）を取り出す"""
    if not url:
        return None
    for pattern in ASIN_PATTERNS:
        match = pattern.search(url)
        if match:
            return match.group(1).upper()
    return None


def amazon_cdn_image_urls(asin: str) -> List[str]:
    """ASINから推測した画像CDNのURL（優先順）"""
    return [
        f"https://m.media-amazon.com/images/I/{asin}._AC_SL1500_.jpg",
        f"https://m.media-amazon.com/images/I/{asin}._AC_SL1000_.jpg",
        f"https://m.media-amazon.com/images/I/{asin}._AC_SL500_.jpg",
        f"https://images-na.ssl-images-amazon.com/images/I/{asin}._AC_SL1500_.jpg",
    ]


# ============================================
# HTMLからの抽出
# ============================================
# 画像検証で使う要素と属性（og:image を最優先）
VERIFIER_IMAGE_SELECTORS: List[Tuple[str, str]] = [
    ('meta[property="og:image"]', "content"),
    ("img#landingImage", "src"),
    ('img[class*="product-image"]', "src"),
    ("[data-old-hires]", "data-old-hires"),
]
DYNAMIC_IMAGE_ATTRIBUTE = "data-a-dynamic-image"

# 画像プロキシで使うパターン（高解像度の候補を優先）
# スクリプト内のJSONも対象にするため正規表現で探す
PROXY_IMAGE_PATTERNS: List[Pattern] = [
    re.compile(r'"largeImage"\s*:\s*"(https?:[^"]+)"'),
    re.compile(r'"hiRes"\s*:\s*"(https?:[^"]+)"'),
    re.compile(r'data-old-hires="(https?:[^"]+)"'),
    re.compile(r'data-a-dynamic-image="\{&quot;(https?:[^&]+)&quot;'),
    re.compile(r'<img[^>]*id="landingImage"[^>]*src="(https?:[^"]+)"'),
    re.compile(r'"mainUrl"\s*:\s*"(https?:[^"]+)"'),
    re.compile(r'"mainImageUrl"\s*:\s*"(https?:[^"]+)"'),
    re.compile(r'<img[^>]+src="(https://m\.media-amazon\.com/images/I/[^"]+)"'),
    re.compile(r'(https://m\.media-amazon\.com/images/I/[A-Za-z0-9%+\-_.,]+\.(?:jpg|jpeg|png|webp))'),
]

UNICODE_ESCAPE_PATTERN = re.compile(r"\\u([0-9a-fA-F]{4})")
RESOLUTION_SUFFIX_PATTERN = re.compile(r"\._[^/]+?_\.(jpg|jpeg|png|webp|gif)$", re.IGNORECASE)
HIGH_RESOLUTION_SUFFIX = "_AC_SL1500_"


def unescape_url(url: str) -> str:
    """HTML/JSONエスケープを戻す（&amp; / \\uXXXX / 残りのバックスラッシュ）"""
    url = url.replace("&amp;", "&")
    url = UNICODE_ESCAPE_PATTERN.sub(lambda m: chr(int(m.group(1), 16)), url)
    return url.replace("\\", "")


def upgrade_resolution(url: str) -> str:
    """画像URLのサイズ指定を _AC_SL1500_ に置き換える"""
    return RESOLUTION_SUFFIX_PATTERN.sub(rf".{HIGH_RESOLUTION_SUFFIX}.\1", url)


def _usable_candidate(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    candidate = unescape_url(value.strip())
    if candidate.startswith("http") and not is_placeholder_url(candidate):
        return candidate
    return None


def _dynamic_image_url(soup: BeautifulSoup) -> Optional[str]:
    """data-a-dynamic-image（{"URL": [幅, 高さ], ...}）の先頭のURL"""
    element = soup.select_one(f"[{DYNAMIC_IMAGE_ATTRIBUTE}]")
    if element is None:
        return None
    try:
        images = json.loads(element[DYNAMIC_IMAGE_ATTRIBUTE])
    except ValueError:
        return None
    if isinstance(images, dict):
        for url in images:
            return url
    return None


def extract_image_candidate(html: str) -> Optional[str]:
    """
    画像検証用: HTMLから画像URLの候補を抽出

    Parameters:
        html: 商品ページのHTML

    Returns:
        http で始まりプレースホルダーでない最初の候補、なければ None
    """
    if not html:
        return None

    soup = BeautifulSoup(html, "html.parser")
    for selector, attribute in VERIFIER_IMAGE_SELECTORS:
        element = soup.select_one(selector)
        if element is None:
            continue
        candidate = _usable_candidate(element.get(attribute))
        if candidate:
            return candidate

    return _usable_candidate(_dynamic_image_url(soup))


def extract_product_image_url(html: str) -> Optional[str]:
    """画像プロキシ用: 商品画像URLを抽出し高解像度版に変換"""
    if not html:
        return None
    for pattern in PROXY_IMAGE_PATTERNS:
        match = pattern.search(html)
        if not match:
            continue
        candidate = _usable_candidate(match.group(1))
        if candidate:
            return upgrade_resolution(candidate)
    return None

"""
ディール正規化処理

フィードの生データを dealsテーブルの行（NormalizedDeal）に変換する

機能:
- 安定IDの生成（ASIN → Slickdeals スレッドID → タイトル+価格 → 連番）
- 価格のパース・入れ替え補正・検証
- 割引率の算出
- タイトルからのカテゴリ推定
- 画像URLの選択
- 投稿日時のパース
- 同一バッチ内の重複排除
"""

import logging
import math
import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError

from relay_station.database import utcnow
from relay_station.schemas.feed import FeedItem, NormalizedDeal

logger = logging.getLogger(__name__)

# ============================================
# 定数
# ============================================
MAX_PRICE = 100000
PLACEHOLDER_IMAGE = "/placeholder.svg"
DEFAULT_CATEGORY = "Other"
DEFAULT_TITLE = "Product"
MAX_ID_LENGTH = 50
TITLE_ID_LENGTH = 40

# dealsテーブルの列長
MAX_TITLE_LENGTH = 500
MAX_URL_LENGTH = 2048
MAX_BRAND_LENGTH = 255
MAX_COUPON_LENGTH = 100
MAX_REVIEW_COUNT = 2**31 - 1

ASIN_ID_PATTERN = re.compile(r"/(?:dp|gp/product)/([A-Z0-9]{10})", re.IGNORECASE)
SLICKDEALS_ID_PATTERN = re.compile(r"/f/(\d+)")

# カテゴリ推定用キーワード（上から順に判定し、最初に一致したカテゴリを採用）
CATEGORY_KEYWORDS: Dict[str, List[str]] = {
    "Electronics": [
        "laptop", "macbook", "computer", "monitor", "keyboard", "mouse",
        "headphone", "earbud", "earphone", "airpods", "speaker", "soundbar",
        "bluetooth", "usb", "charger", "cable", "hdmi", "tv", "television",
        "camera", "webcam", "doorbell", "smartphone", "phone", "iphone",
        "ipad", "tablet", "smartwatch", "apple watch", "ssd", "hard drive",
        "router", "wifi", "wi-fi", "gaming", "console", "playstation",
        "xbox", "nintendo", "echo dot", "kindle", "fire tv", "roku",
        "power bank", "projector", "drone", "microphone", "graphics card",
    ],
    "Home & Kitchen": [
        "kitchen", "cookware", "knife", "knives", "skillet", "frying pan",
        "blender", "mixer", "air fryer", "coffee", "espresso", "kettle",
        "toaster", "microwave", "instant pot", "pressure cooker", "vacuum",
        "mattress", "pillow", "bedding", "sheet set", "towel", "furniture",
        "bookshelf", "lamp", "curtain", "rug", "storage", "organizer",
        "dinnerware", "cutlery", "humidifier", "air purifier", "mop",
        "trash can", "cleaning",
    ],
    "Beauty & Personal Care": [
        "shampoo", "conditioner", "skincare", "skin care", "moisturizer",
        "serum", "lotion", "sunscreen", "makeup", "lipstick", "mascara",
        "perfume", "cologne", "fragrance", "razor", "shaver", "trimmer",
        "hair dryer", "straightener", "curling", "toothbrush", "toothpaste",
        "deodorant", "body wash", "nail polish",
    ],
    "Fashion": [
        "shirt", "t-shirt", "dress", "jeans", "pants", "shorts", "jacket",
        "coat", "hoodie", "sweater", "sock", "shoe", "sneaker", "boot",
        "sandal", "handbag", "purse", "wallet", "backpack", "sunglasses",
        "jewelry", "necklace", "bracelet", "earring", "ring", "watch",
        "belt", "hat", "scarf",
    ],
    "Toys & Games": [
        "toy", "lego", "puzzle", "board game", "card game", "doll",
        "action figure", "plush", "stuffed animal", "nerf", "hot wheels",
        "barbie", "play-doh", "building set", "remote control car", "kids",
    ],
    "Books & Media": [
        "book", "novel", "paperback", "hardcover", "audiobook", "dvd",
        "blu-ray", "vinyl", "album", "magazine", "comic",
    ],
    "Sports & Outdoors": [
        "fitness", "yoga", "dumbbell", "kettlebell", "treadmill", "exercise",
        "workout", "bike", "bicycle", "cycling", "camping", "tent",
        "sleeping bag", "hiking", "fishing", "golf", "tennis", "basketball",
        "football", "soccer", "baseball", "water bottle", "cooler", "kayak",
        "running",
    ],
    "Pet Supplies": [
        "dog", "puppy", "cat food", "cat litter", "cat tree", "kitten",
        "pet", "leash", "aquarium", "litter", "bird feeder", "chew toy",
    ],
    "Office Supplies": [
        "office", "pen", "pencil", "notebook", "notepad", "printer", "ink",
        "toner", "stapler", "desk", "binder", "folder", "label maker",
        "marker", "highlighter", "calculator", "envelope", "whiteboard",
        "shredder", "sticky notes", "paper",
    ],
    "Health & Wellness": [
        "vitamin", "multivitamin", "supplement", "protein", "probiotic",
        "collagen", "omega", "melatonin", "first aid", "thermometer",
        "blood pressure", "massage", "massager", "heating pad",
        "pulse oximeter", "medicine", "pain relief", "allergy", "face mask",
        "sanitizer", "wellness", "health",
    ],
}

# キーワードは単語の先頭で一致させる（"tv" が "ktv" に一致しないように）
_CATEGORY_PATTERNS = [
    (category, re.compile(r"\b(?:" + "|".join(re.escape(k) for k in keywords) + r")", re.IGNORECASE))
    for category, keywords in CATEGORY_KEYWORDS.items()
]


# ============================================
# 個別の変換処理
# ============================================
def parse_price(value: Any) -> float:
    """価格文字列を数値に変換（"$1,299.99" → 1299.99、変換できなければ0）"""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        if isinstance(value, (int, float)):
            price = float(value)
        else:
            price = float(re.sub(r"[^0-9.]", "", str(value)))
    except (ValueError, OverflowError):
        return 0.0
    # NaN・無限大は不正な価格として扱う
    return price if math.isfinite(price) else 0.0


def derive_stable_id(item: FeedItem, index: int) -> str:
    """
    同期をまたいで安定するディールIDを生成

    優先順位:
        1. URL中のASIN → amazon-{ASIN}
        2. Slickdeals のスレッドID → slickdeals-{digits}
        3. タイトル（英数字のみ・小文字・40文字）+ 価格の数字 → deal-{title}-{price}
        4. deal-fallback-{index}（フィードの並び順に依存するため不安定）
    """
    if item.url:
        match = ASIN_ID_PATTERN.search(item.url)
        if match:
            return f"amazon-{match.group(1).upper()}"

    if item.slickdeals_url:
        match = SLICKDEALS_ID_PATTERN.search(item.slickdeals_url)
        if match:
            return f"slickdeals-{match.group(1)}"[:MAX_ID_LENGTH]

    title_key = re.sub(r"[^a-z0-9]", "", (item.title or "").lower())[:TITLE_ID_LENGTH]
    if title_key:
        price_key = re.sub(r"[^0-9]", "", "" if item.price is None else str(item.price)) or "0"
        return f"deal-{title_key}-{price_key}"[:MAX_ID_LENGTH]

    logger.warning(f"安定IDを生成できないため連番IDを使用: index={index}")
    return f"deal-fallback-{index}"


def infer_category(title: Optional[str]) -> str:
    """タイトルのキーワードからカテゴリを推定"""
    if not title:
        return DEFAULT_CATEGORY
    for category, pattern in _CATEGORY_PATTERNS:
        if pattern.search(title):
            return category
    return DEFAULT_CATEGORY


def select_image_url(item: FeedItem) -> str:
    """image_url → image の順に http で始まるURLを採用（列長を超えるURLは除外）"""
    for candidate in (item.image_url, item.image):
        if not candidate:
            continue
        candidate = candidate.strip()
        if candidate.startswith("http") and len(candidate) <= MAX_URL_LENGTH:
            return candidate
    return PLACEHOLDER_IMAGE


def parse_posted_at(value: Any) -> Optional[datetime]:
    """投稿日時をパース（ISO 8601 / RFC 2822 / UNIX時刻）。失敗時は None"""
    if value is None or value == "" or isinstance(value, bool):
        return None

    parsed: Optional[datetime] = None
    try:
        if isinstance(value, (int, float)):
            seconds = value / 1000 if value > 1e12 else value
            parsed = datetime.fromtimestamp(seconds, tz=timezone.utc)
        else:
            text = str(value).strip()
            try:
                parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
            except ValueError:
                parsed = parsedate_to_datetime(text)
    except (TypeError, ValueError, OverflowError, OSError):
        return None

    if parsed is None:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _parse_rating(value: Any) -> Optional[float]:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        rating = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    return rating if math.isfinite(rating) else None


def _clip(value: Optional[str], max_length: int) -> Optional[str]:
    """列長を超える文字列を切り詰める"""
    if value is None or len(value) <= max_length:
        return value
    return value[:max_length]


def _parse_review_count(item: FeedItem) -> Optional[int]:
    for value in (item.review_count, item.reviews):
        if value is None or value == "" or isinstance(value, bool):
            continue
        try:
            count = int(float(re.sub(r"[^0-9.]", "", str(value))))
        except (ValueError, OverflowError):
            continue
        # INTEGER列に収まらない値は不正とみなす
        return count if count <= MAX_REVIEW_COUNT else None
    return None


# ============================================
# 正規化
# ============================================
def normalize_deal(
    raw: Any, index: int, fetched_at: Optional[datetime] = None
) -> Optional[NormalizedDeal]:
    """
    フィードの生データ1件を正規化

    Parameters:
        raw: フィードの生データ（dict）
        index: フィード内の位置（連番IDに使用）
        fetched_at: 取得時刻（省略時は現在時刻）

    Returns:
        NormalizedDeal、価格が不正な場合は None
    """
    if not isinstance(raw, dict):
        logger.warning(f"[{index}] 不正なデータ形式のためスキップ: {type(raw).__name__}")
        return None

    try:
        item = FeedItem(**raw)
    except ValidationError as e:
        logger.warning(f"[{index}] データの検証に失敗したためスキップ: {str(e)}")
        return None

    deal_id = derive_stable_id(item, index)

    price = parse_price(item.price)
    original_price = parse_price(item.original_price)

    # フィードが販売価格と定価を取り違えている場合は入れ替える
    if original_price > 0 and price > original_price:
        price, original_price = original_price, price

    if price <= 0 or price > MAX_PRICE:
        logger.warning(f"[{deal_id}] 価格が不正なためスキップ: price={price}")
        return None

    if original_price <= price or original_price > MAX_PRICE:
        original_price = None

    discount = None
    if original_price:
        discount = round((original_price - price) / original_price * 100)

    in_stock = item.in_stock is not False

    # 切り詰めたURLは壊れるため、長すぎる商品URLは空にする
    product_url = item.url or ""
    if len(product_url) > MAX_URL_LENGTH:
        logger.warning(f"[{deal_id}] 商品URLが長すぎるため破棄: {len(product_url)}文字")
        product_url = ""

    return NormalizedDeal(
        id=deal_id,
        title=_clip((item.title or "").strip(), MAX_TITLE_LENGTH) or DEFAULT_TITLE,
        description=item.description or None,
        price=price,
        original_price=original_price,
        discount=discount,
        image_url=select_image_url(item),
        product_url=product_url,
        category=infer_category(item.title),
        brand=_clip(item.brand or item.store or None, MAX_BRAND_LENGTH),
        rating=_parse_rating(item.rating),
        review_count=_parse_review_count(item),
        in_stock=in_stock,
        coupon_code=_clip(item.coupon_code or item.coupon_code_alt or None, MAX_COUPON_LENGTH),
        posted_at=parse_posted_at(item.timestamp),
        fetched_at=fetched_at or utcnow(),
    )


def normalize_deals(
    raw_items: Iterable[Any], fetched_at: Optional[datetime] = None
) -> List[NormalizedDeal]:
    """フィード全体を正規化（不正なデータは除外）"""
    fetched_at = fetched_at or utcnow()
    deals: List[NormalizedDeal] = []
    skipped = 0
    for index, raw in enumerate(raw_items):
        deal = normalize_deal(raw, index, fetched_at=fetched_at)
        if deal is None:
            skipped += 1
            continue
        deals.append(deal)

    logger.info(f"正規化完了: {len(deals)}件（スキップ: {skipped}件）")
    return deals


def deduplicate_deals(deals: Iterable[NormalizedDeal]) -> List[NormalizedDeal]:
    """同一バッチ内で同じIDのディールは最初の1件のみ残す"""
    seen = set()
    unique: List[NormalizedDeal] = []
    for deal in deals:
        if deal.id in seen:
            logger.info(f"重複ディールをスキップ: {deal.id}")
            continue
        seen.add(deal.id)
        unique.append(deal)
    return unique

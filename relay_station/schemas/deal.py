"""
Deal API スキーマ定義
"""
from datetime import datetime
from typing import Optional, List

from pydantic import BaseModel, Field

from .base import BaseSchema


# ============================================
# レスポンススキーマ
# ============================================
class DealResponse(BaseSchema):
    """ディール"""
    id: str
    title: str
    description: Optional[str] = None
    price: float
    original_price: Optional[float] = None
    discount: Optional[int] = None
    image_url: str
    display_image_url: str = Field(..., description="表示用の画像URL（検証済みURLを優先）")
    image_ready: bool
    product_url: str
    category: str
    brand: Optional[str] = None
    rating: Optional[float] = None
    review_count: Optional[int] = None
    in_stock: bool
    coupon_code: Optional[str] = None
    posted_at: Optional[datetime] = None
    fetched_at: datetime


class DealListResponse(BaseModel):
    """ディール一覧"""
    total: int
    page: int
    limit: int
    deals: List[DealResponse]


class PriceHistoryItem(BaseSchema):
    """価格履歴の1件"""
    price: float
    original_price: Optional[float] = None
    discount: Optional[int] = None
    recorded_at: datetime


class PriceHistoryResponse(BaseModel):
    """価格履歴"""
    deal_id: str
    history: List[PriceHistoryItem]


class FreshnessResponse(BaseModel):
    """ディールの鮮度"""
    latest_fetched_at: Optional[datetime] = None
    hours_since_update: Optional[float] = None
    stale_after_hours: float
    is_stale: bool

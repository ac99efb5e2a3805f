"""
外部ディールフィードのスキーマ定義

フィードのフィールド名は一定しない（price/original_price は通貨記号付き文字列、
image_url/image、reviewCount/reviews、coupon_code/couponCode など）ため、
ここでは受け取れる形をすべて許容し、正規化は deal_normalizer で行う。
"""
from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class FeedItem(BaseModel):
    """フィードの生データ1件"""

    title: Optional[str] = None
    description: Optional[str] = None
    price: Any = None
    original_price: Any = None
    url: Optional[str] = None
    slickdeals_url: Optional[str] = None
    image_url: Optional[str] = None
    image: Optional[str] = None
    store: Optional[str] = None
    brand: Optional[str] = None
    category: Optional[str] = None
    rating: Any = None
    review_count: Any = Field(None, alias="reviewCount")
    reviews: Any = None
    in_stock: Any = Field(None, alias="inStock")
    coupon_code: Optional[str] = None
    coupon_code_alt: Optional[str] = Field(None, alias="couponCode")
    timestamp: Any = None

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    @field_validator(
        "title",
        "description",
        "url",
        "slickdeals_url",
        "image_url",
        "image",
        "store",
        "brand",
        "category",
        "coupon_code",
        "coupon_code_alt",
        mode="before",
    )
    def coerce_text(cls, v):
        """数値などのスカラー値は文字列として扱う"""
        if v is None or isinstance(v, str):
            return v
        if isinstance(v, (int, float)):
            return str(v)
        return None


class FeedResponse(BaseModel):
    """フィードのレスポンス"""

    count: int = 0
    products: List[Any]


class NormalizedDeal(BaseModel):
    """正規化済みのディール（dealsテーブルの1行に対応）"""

    id: str
    title: str
    description: Optional[str] = None
    price: float
    original_price: Optional[float] = None
    discount: Optional[int] = None
    image_url: str
    product_url: str
    category: str
    brand: Optional[str] = None
    rating: Optional[float] = None
    review_count: Optional[int] = None
    in_stock: bool = True
    coupon_code: Optional[str] = None
    posted_at: Optional[datetime] = None
    fetched_at: datetime

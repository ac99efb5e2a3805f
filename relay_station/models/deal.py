"""
Deal Model - ディールテーブル
"""
from datetime import datetime
from typing import Optional, TYPE_CHECKING
from sqlalchemy import String, Integer, Float, Boolean, DateTime, Text, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from .base import Base

if TYPE_CHECKING:
    from .deal_price_history import DealPriceHistory


class Deal(Base):
    """ディールテーブル

    fetched_at / price / original_price / discount / category は同期処理が、
    image_ready / verified_image_url / image_retry_count / image_last_checked は
    画像検証処理が更新する。
    """
    __tablename__ = "deals"
    __table_args__ = (
        Index("ix_deals_image_queue", "image_ready", "image_retry_count", "image_last_checked"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    price: Mapped[float] = mapped_column(Float, nullable=False)
    original_price: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    discount: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    image_url: Mapped[str] = mapped_column(String(2048), nullable=False)
    verified_image_url: Mapped[Optional[str]] = mapped_column(String(2048), nullable=True)
    image_ready: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    image_retry_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    image_last_checked: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    product_url: Mapped[str] = mapped_column(String(2048), nullable=False)
    category: Mapped[str] = mapped_column(String(100), default="Other", nullable=False, index=True)
    brand: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    rating: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    review_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    in_stock: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    coupon_code: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    posted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    fetched_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    # Relationships
    price_histories: Mapped[list["DealPriceHistory"]] = relationship(
        "DealPriceHistory",
        back_populates="deal",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def display_image_url(self) -> str:
        """表示用の画像URL（検証済みURLを優先）"""
        return self.verified_image_url or self.image_url

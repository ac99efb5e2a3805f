"""
Pydantic Schemas for Relay Station
Based on relay_station/models
"""

from .base import BaseSchema
from .feed import FeedItem, FeedResponse, NormalizedDeal
from .deal import (
    DealResponse,
    DealListResponse,
    PriceHistoryItem,
    PriceHistoryResponse,
    FreshnessResponse,
)
from .functions import (
    VerifyImagesRequest,
    SyncDealsResponse,
    ErrorResponse,
    VerificationResultItem,
    VerifyImagesResponse,
)
from .admin import PendingDeal, ImageStatusResponse, ResetResponse, CronJobHealthResponse

__all__ = [
    "BaseSchema",
    "FeedItem",
    "FeedResponse",
    "NormalizedDeal",
    "DealResponse",
    "DealListResponse",
    "PriceHistoryItem",
    "PriceHistoryResponse",
    "FreshnessResponse",
    "VerifyImagesRequest",
    "SyncDealsResponse",
    "ErrorResponse",
    "VerificationResultItem",
    "VerifyImagesResponse",
    "PendingDeal",
    "ImageStatusResponse",
    "ResetResponse",
    "CronJobHealthResponse",
]

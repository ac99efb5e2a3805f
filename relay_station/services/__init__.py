"""
ディール取り込み・画像検証サービス
"""

from .deals_feed import DealFeedClient, FeedError
from .deal_sync import DealSyncProcessor, PriceHistoryOutcome, run_deal_sync
from .image_verifier import ImageVerifier, ImageChecker, run_image_verification
from .image_proxy import ImageProxyService
from .url_guard import TargetRejected, check_target

__all__ = [
    "DealFeedClient",
    "FeedError",
    "DealSyncProcessor",
    "PriceHistoryOutcome",
    "run_deal_sync",
    "ImageVerifier",
    "ImageChecker",
    "run_image_verification",
    "ImageProxyService",
    "TargetRejected",
    "check_target",
]

"""
管理API スキーマ定義
"""
from datetime import datetime
from typing import Optional, List

from pydantic import BaseModel

from .base import BaseSchema


class PendingDeal(BaseModel):
    """次に検証されるディール"""
    id: str
    title: str
    image_url: str
    image_retry_count: int
    image_last_checked: Optional[datetime] = None


class ImageStatusResponse(BaseModel):
    """画像検証の状況"""
    total: int
    ready: int
    pending: int
    exhausted: int
    max_retries: int
    next: List[PendingDeal]


class ResetResponse(BaseModel):
    """リトライ回数リセットの結果"""
    success: bool
    reset: int


class CronJobHealthResponse(BaseSchema):
    """定期ジョブの稼働状況"""
    job_name: str
    status: str
    total_runs: int
    successful_runs: int
    failed_runs: int
    consecutive_failures: int
    uptime_percentage: float
    last_success_at: Optional[datetime] = None
    last_failure_at: Optional[datetime] = None
    last_error: Optional[str] = None

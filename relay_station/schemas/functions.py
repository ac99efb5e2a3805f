"""
パイプライン起動API スキーマ定義
"""
from typing import Optional, List, Literal
from pydantic import BaseModel, Field, ConfigDict


# ============================================
# リクエストスキーマ
# ============================================
class VerifyImagesRequest(BaseModel):
    """画像検証リクエスト"""
    batch_size: Optional[int] = Field(None, alias="batchSize", ge=1, le=100, description="処理件数")
    max_retries: Optional[int] = Field(None, alias="maxRetries", ge=1, le=50, description="リトライ上限")
    deal_id: Optional[str] = Field(None, alias="dealId", description="指定時はそのディールのみ処理")

    model_config = ConfigDict(populate_by_name=True)


# ============================================
# レスポンススキーマ
# ============================================
class SyncDealsResponse(BaseModel):
    """同期結果"""
    success: bool
    message: str
    count: int


class ErrorResponse(BaseModel):
    """パイプライン起動APIのエラー"""
    success: bool = False
    error: str


class VerificationResultItem(BaseModel):
    """1件の検証結果"""
    id: str
    status: Literal["verified", "retry", "error"]
    image_url: Optional[str] = Field(None, alias="imageUrl")

    model_config = ConfigDict(populate_by_name=True)


class VerifyImagesResponse(BaseModel):
    """画像検証結果"""
    message: str
    processed: int
    verified: int
    need_retry: int = Field(..., alias="needRetry")
    results: List[VerificationResultItem]

    model_config = ConfigDict(populate_by_name=True)

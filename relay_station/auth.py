"""
認証

- 同期トリガー: x-sync-secret ヘッダー（cron用の共有シークレット）または
  Authorization: Bearer <JWT>（adminロールが必要）
- 管理API: Bearer JWT（adminロールが必要）
"""
from datetime import datetime, timedelta
from typing import Optional
import secrets
import logging

import jwt
from fastapi import Depends, HTTPException, status, Header
from sqlalchemy.orm import Session

from relay_station.config import settings
from relay_station.database import get_db
from relay_station.models.user_role import UserRole, ADMIN_ROLE

logger = logging.getLogger(__name__)

# JWT設定
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = 60  # 1時間


class TriggerAuthError(Exception):
    """同期トリガーの認証エラー（{success: false, error} で返す）"""

    def __init__(self, status_code: int, error: str):
        super().__init__(error)
        self.status_code = status_code
        self.error = error


# JWTトークン生成
def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    """アクセストークン生成"""
    if not settings.JWT_SECRET:
        raise ValueError("JWT_SECRET is not configured")

    to_encode = data.copy()
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=ALGORITHM)


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def is_admin(db: Session, user_id: str) -> bool:
    """user_roles に admin ロールがあるか"""
    role = (
        db.query(UserRole)
        .filter(UserRole.user_id == user_id, UserRole.role == ADMIN_ROLE)
        .first()
    )
    return role is not None


def decode_admin_user_id(token: str, db: Session) -> Optional[str]:
    """
    トークンを検証し、adminユーザーのIDを返す

    Returns:
        ユーザーID（トークンが無効、またはadminでない場合は None）
    """
    if not settings.JWT_SECRET:
        logger.error("JWT_SECRET が設定されていません")
        return None
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[ALGORITHM])
    except jwt.InvalidTokenError as e:
        logger.warning(f"トークン検証失敗: {str(e)}")
        return None

    user_id = payload.get("sub")
    if not user_id:
        return None
    if not is_admin(db, user_id):
        logger.warning(f"adminロールがありません: user_id={user_id}")
        return None
    return user_id


def require_sync_trigger(
    x_sync_secret: Optional[str] = Header(None),
    authorization: Optional[str] = Header(None),
    db: Session = Depends(get_db),
) -> str:
    """
    同期トリガーの認証

    Returns:
        認証方法（"admin" または "secret"）

    Raises:
        TriggerAuthError: 401（認証失敗） / 500（共有シークレット未設定）
    """
    token = _bearer_token(authorization)
    if token:
        if decode_admin_user_id(token, db):
            return "admin"
        raise TriggerAuthError(status.HTTP_401_UNAUTHORIZED, "Unauthorized")

    expected = settings.SYNC_DEALS_SECRET
    if not expected:
        logger.error("SYNC_DEALS_SECRET が設定されていません")
        raise TriggerAuthError(status.HTTP_500_INTERNAL_SERVER_ERROR, "Server configuration error")

    if not x_sync_secret or not secrets.compare_digest(x_sync_secret, expected):
        logger.error("同期トリガーの認証に失敗しました")
        raise TriggerAuthError(status.HTTP_401_UNAUTHORIZED, "Unauthorized")

    return "secret"


def get_current_admin(
    authorization: Optional[str] = Header(None), db: Session = Depends(get_db)
) -> str:
    """トークンからadminユーザーIDを取得"""
    token = _bearer_token(authorization)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="認証トークンが必要です",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = decode_admin_user_id(token, db)
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="認証情報が無効です",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user_id

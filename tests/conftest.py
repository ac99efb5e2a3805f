"""
テスト用の共通設定・フィクスチャ
"""

import os
import uuid
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# テスト用の環境変数を設定（relay_station.mainをインポートする前に設定）
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SYNC_DEALS_SECRET", "test-sync-secret")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret-for-testing-only")

from relay_station.main import app
from relay_station.database import get_db, Base, utcnow
from relay_station.auth import create_access_token
from relay_station.models.deal import Deal
from relay_station.models.user_role import UserRole, ADMIN_ROLE
from relay_station.services.cache_service import image_url_cache
from relay_station.services.http_client import get_http_session

from tests.fakes import FakeSession


# テスト用のインメモリSQLiteデータベース
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    """テスト用のDBセッションを提供"""
    try:
        db = TestingSessionLocal()
        yield db
    finally:
        db.close()


# ============================================
# フィクスチャ
# ============================================
@pytest.fixture(scope="function")
def db_session():
    """各テスト用のDBセッション"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def fake_http():
    return FakeSession()


@pytest.fixture(scope="function")
def client(db_session, fake_http):
    """テスト用のAPIクライアント"""
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_http_session] = lambda: fake_http
    image_url_cache.clear()

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers(db_session):
    """adminロールのユーザーの認証ヘッダー"""
    user_id = str(uuid.uuid4())
    db_session.add(UserRole(id=str(uuid.uuid4()), user_id=user_id, role=ADMIN_ROLE))
    db_session.commit()
    token = create_access_token({"sub": user_id})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def user_headers():
    """ロールのないユーザーの認証ヘッダー"""
    token = create_access_token({"sub": str(uuid.uuid4())})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_deal(db_session):
    """ディールを1件作成するファクトリ"""

    def _make_deal(deal_id: str, **overrides) -> Deal:
        values = {
            "id": deal_id,
            "title": f"Deal {deal_id}",
            "price": 10.0,
            "original_price": 20.0,
            "discount": 50,
            "image_url": "/placeholder.svg",
            "product_url": f"https://www.amazon.com/dp/{deal_id[-10:].upper()}",
            "category": "Other",
            "fetched_at": utcnow(),
            "image_ready": False,
            "image_retry_count": 0,
        }
        values.update(overrides)
        deal = Deal(**values)
        db_session.add(deal)
        db_session.commit()
        return deal

    return _make_deal


@pytest.fixture
def hours_ago():
    """現在からn時間前のUTC時刻"""
    return lambda hours: utcnow() - timedelta(hours=hours)

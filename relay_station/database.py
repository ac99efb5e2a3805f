from datetime import datetime, timezone

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase
from sqlalchemy.pool import QueuePool, StaticPool
from dotenv import load_dotenv

load_dotenv()

from relay_station.config import settings

DATABASE_URL = settings.DATABASE_URL

if not DATABASE_URL:
    raise ValueError("DATABASE_URL environment variable is not set")

if DATABASE_URL.startswith("sqlite"):
    # ローカル開発・テスト用（SQLiteはコネクションプール不要）
    engine = create_engine(
        DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=settings.DEBUG,
    )
else:
    engine = create_engine(
        DATABASE_URL,
        poolclass=QueuePool,
        pool_size=5,
        max_overflow=10,
        pool_recycle=3600,
        pool_pre_ping=True,
        echo=settings.DEBUG,
    )

# セッションファクトリー
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


# Base Class for ORM models
class Base(DeclarativeBase):
    pass


def utcnow() -> datetime:
    """タイムゾーンなしのUTC現在時刻（DB保存用）"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# 依存性注入用のジェネレータ
def get_db():
    """
    FastAPIの依存性注入で使用するDBセッション

    使用例:
        from sqlalchemy.orm import Session
        from relay_station.database import get_db

        @router.get("/deals")
        def list_deals(db: Session = Depends(get_db)):
            return db.query(Deal).all()
    """

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

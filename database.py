import datetime as dt

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

from config import settings

SQLALCHEMY_DATABASE_URL = settings.DATABASE_URL


def _enable_foreign_keys(dbapi_connection, connection_record):
    # SQLite 預設不檢查外鍵，ON DELETE SET NULL 要靠這個才會生效
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def make_engine(url: str):
    """依連線字串建立 engine；SQLite 記憶體庫需共用同一條連線"""
    if not url.startswith("sqlite"):
        return create_engine(url, pool_pre_ping=True)
    # check_same_thread=False 讓多執行緒安全地共享連線（FastAPI threadpool）
    kwargs = {"connect_args": {"check_same_thread": False}}
    if url in ("sqlite://", "sqlite:///:memory:"):
        kwargs["poolclass"] = StaticPool
    engine = create_engine(url, **kwargs)
    event.listen(engine, "connect", _enable_foreign_keys)
    return engine


engine = make_engine(SQLALCHEMY_DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def utcnow() -> dt.datetime:
    """UTC 現在時間（naive），與資料庫欄位一致"""
    return dt.datetime.now(dt.timezone.utc).replace(tzinfo=None)


# FastAPI 依賴：每請求產生一個 DB session
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

import os

# 必須在 import config/database 之前設定
os.environ["MES_DATABASE_URL"] = "sqlite://"
os.environ.setdefault("MES_LOG_LEVEL", "WARNING")

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

import models  # noqa: F401  註冊資料表
from database import Base, make_engine
from store import TableStore


@pytest.fixture
def session_factory():
    engine = make_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def store(session_factory) -> TableStore:
    return TableStore(session_factory)


@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    from app import app
    from database import engine

    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    with TestClient(app) as c:
        yield c

# 测试共用：内存 SQLite + 按 Base.metadata 建表（不依赖 PostgreSQL / 迁移）

from __future__ import annotations
from typing import Iterator

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import storefront_pricing.db.model  # noqa: F401  确保模型注册到 Base.metadata
from storefront_pricing.db.base import Base


@pytest.fixture
def engine() -> Iterator[Engine]:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,      # TestClient 跑在别的线程，共用同一个内存库
        future=True,
    )

    @event.listens_for(engine, "connect")
    def _enable_fk(dbapi_conn, _record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
        future=True,
    )


@pytest.fixture
def db(session_factory: sessionmaker[Session]) -> Iterator[Session]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


# ---------- API：整个 app + 依赖覆盖（DB 指向内存库，鉴权用假管理员） ----------
class FakeAdmin:
    id = 1
    username = "pricing-admin"
    full_name = "Pricing Admin"
    is_active = True
    is_superuser = False


@pytest.fixture
def app(session_factory: sessionmaker[Session]):
    from storefront_pricing.db.session import get_db
    from storefront_pricing.main import app as fastapi_app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    fastapi_app.dependency_overrides[get_db] = override_get_db
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    from fastapi.testclient import TestClient

    return TestClient(app)


@pytest.fixture
def admin_client(app):
    from fastapi.testclient import TestClient
    from storefront_pricing.services.auth_service import get_current_user

    app.dependency_overrides[get_current_user] = lambda: FakeAdmin()
    return TestClient(app)

from collections.abc import Generator
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.pool import StaticPool

from gatehouse_api.core.config import get_settings
from gatehouse_api.core.security import PasswordHasher
from gatehouse_api.db.base import Base
from gatehouse_api.db.session import Database
from gatehouse_api.services.auth import AuthConfig, AuthService
from gatehouse_api.stores.audit import AuditStore
from gatehouse_api.stores.credentials import CredentialStore
from gatehouse_api.stores.sessions import SessionStore

# 测试中使用低迭代次数，避免哈希拖慢用例。
TEST_HASH_ITERATIONS = 1000


@compiles(JSONB, "sqlite")
def _compile_jsonb_sqlite(_type_, _compiler, **_kwargs):
    return "JSON"


class FakeClock:
    """可手动推进的 UTC 时钟。"""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def make_sqlite_database(url: str = "sqlite+pysqlite://") -> Database:
    """创建已建表的 SQLite Database；内存库共享单连接。"""
    if url == "sqlite+pysqlite://":
        engine_kwargs = {"connect_args": {"check_same_thread": False}, "poolclass": StaticPool}
    else:
        engine_kwargs = {"connect_args": {"check_same_thread": False, "timeout": 30}}
    database = Database.from_url(url, **engine_kwargs)
    Base.metadata.create_all(bind=database.engine)
    return database


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch) -> Generator[None, None, None]:
    monkeypatch.setenv("GATEHOUSE_DATABASE_URL", "sqlite+pysqlite://")
    monkeypatch.setenv("GATEHOUSE_PASSWORD_HASH_ITERATIONS", str(TEST_HASH_ITERATIONS))
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def database() -> Generator[Database, None, None]:
    db = make_sqlite_database()
    yield db
    Base.metadata.drop_all(bind=db.engine)
    db.engine.dispose()


@pytest.fixture
def file_database(tmp_path) -> Generator[Database, None, None]:
    """文件型 SQLite，多连接并发访问同一库。"""
    db = make_sqlite_database(f"sqlite+pysqlite:///{tmp_path / 'gatehouse.db'}")
    yield db
    db.engine.dispose()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def hasher() -> PasswordHasher:
    return PasswordHasher(iterations=TEST_HASH_ITERATIONS)


@pytest.fixture
def credentials(database: Database, hasher: PasswordHasher, clock: FakeClock) -> CredentialStore:
    return CredentialStore(database, hasher, clock=clock)


@pytest.fixture
def sessions(database: Database, clock: FakeClock) -> SessionStore:
    return SessionStore(database, clock=clock)


@pytest.fixture
def audit_store(database: Database, clock: FakeClock) -> AuditStore:
    return AuditStore(database, clock=clock)


@pytest.fixture
def auth_service(
    credentials: CredentialStore,
    sessions: SessionStore,
    audit_store: AuditStore,
    clock: FakeClock,
) -> AuthService:
    return AuthService(
        credentials,
        sessions,
        audit_store,
        AuthConfig(secret_key="unit-test-secret"),
        clock=clock,
    )

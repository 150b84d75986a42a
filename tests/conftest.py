# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import Generator, Iterator
from itertools import count

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("SECRET_KEY", "test-secret-key-for-sentence-stash")
os.environ.setdefault("ADMIN_PASSWORD", "admin-pass")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("STORAGE_BACKEND", "database")
os.environ.setdefault("DATABASE_URL", "sqlite://")

from sentence_stash.core.security import create_access_token, hash_password
from sentence_stash.db.session import Base
from sentence_stash.main import app as fastapi_app
from sentence_stash.models import User
from sentence_stash.schemas.community import CommunityCreate, CommunityWithStats
from sentence_stash.schemas.sentence import SentenceCreate, SentenceWithUser
from sentence_stash.storage import DatabaseStorage, MemoryStorage, Storage, get_storage

TEST_DB_URL = "sqlite://"
TEST_PASSWORD = "Password123"

_COMMUNITY_COUNTER = count(1)


@pytest.fixture(scope="session")
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite defers BEGIN; take over so SAVEPOINT nests inside the test transaction.
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, _record) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn) -> None:
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def db_session(engine: Engine) -> Iterator[Session]:
    """Session whose commits land in savepoints of an outer, rolled-back transaction."""
    connection = engine.connect()
    transaction = connection.begin()
    SessionLocal = sessionmaker(
        bind=connection,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        join_transaction_mode="create_savepoint",
    )
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        if transaction.is_active:
            transaction.rollback()
        connection.close()

        # Ensure each test sees a clean database even if commits escaped the savepoint.
        with engine.begin() as cleanup_conn:
            for table in reversed(Base.metadata.sorted_tables):
                cleanup_conn.execute(table.delete())


@pytest.fixture()
def storage(db_session: Session) -> DatabaseStorage:
    return DatabaseStorage(db_session)


@pytest.fixture(params=["memory", "database"])
def any_storage(request: pytest.FixtureRequest, db_session: Session) -> Storage:
    """Run a test against both backends."""
    if request.param == "memory":
        return MemoryStorage()
    return DatabaseStorage(db_session)


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture(autouse=True)
def override_storage_dependency(app: FastAPI, db_session: Session) -> Iterator[None]:
    def _get_storage_override() -> Generator[Storage, None, None]:
        yield DatabaseStorage(db_session)

    app.dependency_overrides[get_storage] = _get_storage_override
    try:
        yield
    finally:
        app.dependency_overrides.pop(get_storage, None)


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


def make_user(store: Storage, nickname: str, email: str | None = None) -> User:
    return store.create_user(
        email=email or f"{nickname.lower()}@example.com",
        password_hash=hash_password(TEST_PASSWORD),
        nickname=nickname,
    )


def auth_headers_for(user: User) -> dict[str, str]:
    token = create_access_token(user.id, user.email, user.nickname)
    return {"Authorization": f"Bearer {token}"}


def make_sentence(
    store: Storage,
    user: User,
    content: str = "A sentence worth keeping.",
    *,
    is_public: int = 1,
    **fields: object,
) -> SentenceWithUser:
    data = SentenceCreate(content=content, is_public=is_public, **fields)
    return store.create_sentence(user.id, data)


def make_community(
    store: Storage, owner: User, *, is_public: int = 1, name: str | None = None
) -> CommunityWithStats:
    data = CommunityCreate(
        name=name or f"Reading Circle {next(_COMMUNITY_COUNTER)}",
        description="People who read together",
        is_public=is_public,
    )
    return store.create_community(owner.id, data)


@pytest.fixture()
def test_user(storage: DatabaseStorage) -> User:
    """Create and return the primary test user."""
    return make_user(storage, "reader")


@pytest.fixture()
def other_user(storage: DatabaseStorage) -> User:
    """Create and return a second user."""
    return make_user(storage, "other_reader")


@pytest.fixture()
def auth_headers(test_user: User) -> dict[str, str]:
    """Authorization headers for the primary test user."""
    return auth_headers_for(test_user)


@pytest.fixture()
def other_auth_headers(other_user: User) -> dict[str, str]:
    """Authorization headers for the secondary test user."""
    return auth_headers_for(other_user)


@pytest.fixture()
def community(storage: DatabaseStorage, test_user: User) -> CommunityWithStats:
    """A public community owned by the primary test user."""
    return make_community(storage, test_user)

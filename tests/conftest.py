"""
Test infrastructure for the Conduit article engine.

Strategy
--------
- SQLite in-memory via aiosqlite keeps the suite self-contained.
- StaticPool makes every session share the single in-memory connection;
  a second connection would see an empty database.  Because of that a
  test uses either ``db_session`` or ``async_client``, never both.
- The SQLite transaction fix is installed on the test engine so that the
  SAVEPOINTs used by find-or-create and tag creation behave like they do
  on PostgreSQL.
- Tables are created before each test and dropped after.
- Redis is disabled (``cache._redis = None``); the cache degrades to
  misses and no-op writes.
"""
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from conduit.cache import cache
from conduit.database import Base, get_db, install_sqlite_transaction_fix
from conduit.main import app
from conduit.middleware import install_query_counter
from conduit.models import User
from conduit.schemas import ArticleCreate
from conduit.services import article_service, author_service

# ---------------------------------------------------------------------------
# Test database engine — SQLite in-memory with aiosqlite
# ---------------------------------------------------------------------------

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

engine_test = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

install_query_counter(engine_test)
install_sqlite_transaction_fix(engine_test)

async_session_test = async_sessionmaker(
    engine_test,
    class_=AsyncSession,
    expire_on_commit=False,
)


# ---------------------------------------------------------------------------
# Dependency override — replace production get_db with the test session factory
# ---------------------------------------------------------------------------

async def override_get_db():
    async with async_session_test() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


app.dependency_overrides[get_db] = override_get_db


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """Create all tables before each test, drop after to guarantee isolation."""
    cache._redis = None
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def db_session() -> AsyncSession:
    """A live session for service-level tests.  Never committed."""
    async with async_session_test() as session:
        yield session


@pytest_asyncio.fixture
async def async_client() -> AsyncClient:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


# ---------------------------------------------------------------------------
# Data helpers shared by the service-level tests
# ---------------------------------------------------------------------------

async def create_user(db: AsyncSession, username: str) -> User:
    user = User(username=username, email=f"{username}@example.com")
    db.add(user)
    await db.flush()
    return user


async def create_article(db: AsyncSession, user: User, title: str, tags: list[str] | None = None):
    author = await author_service.get_article_author(db, user.id)
    return await article_service.create_article(
        db,
        author,
        ArticleCreate(title=title, description=f"About {title}", body="Body", tag_list=tags or []),
    )


def auth(user_id: int) -> dict:
    """Headers identifying the viewer, as the upstream auth gateway would."""
    return {"X-User-Id": str(user_id)}


async def api_create_user(client: AsyncClient, username: str) -> int:
    resp = await client.post("/api/users", json={
        "user": {"username": username, "email": f"{username}@example.com"},
    })
    assert resp.status_code == 201
    return resp.json()["user"]["id"]


async def api_create_article(
    client: AsyncClient, user_id: int, title: str, tags: list[str] | None = None
) -> dict:
    resp = await client.post(
        "/api/articles",
        json={"article": {
            "title": title,
            "description": f"About {title}",
            "body": "Body",
            "tagList": tags or [],
        }},
        headers=auth(user_id),
    )
    assert resp.status_code == 201
    return resp.json()["article"]

from typing import Any, TypeVar

from sqlalchemy import event, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from conduit.config import settings
from conduit.middleware import install_query_counter

ModelT = TypeVar("ModelT", bound="Base")


def install_sqlite_transaction_fix(engine: AsyncEngine) -> None:
    """
    Make SQLite honour SAVEPOINT inside an outer transaction.

    The sqlite3 driver defers BEGIN until the first DML statement, so a
    SAVEPOINT issued after a plain SELECT becomes the outermost
    transaction and its RELEASE commits.  Turning the driver's own
    transaction handling off and emitting BEGIN ourselves keeps every
    savepoint nested in the session transaction.
    """
    sync_engine = engine.sync_engine

    @event.listens_for(sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")


# Module-level engine variable allows tests to override with a test engine.
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    pool_pre_ping=True,
)

# Register the per-request SQL query counter on the production engine.
install_query_counter(engine)
if engine.dialect.name == "sqlite":
    install_sqlite_transaction_fix(engine)

async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    pass


async def get_db():
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def create_tables() -> None:
    """Create any missing tables.  Schema migrations are out of scope."""
    import conduit.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_or_create(
    db: AsyncSession, model: type[ModelT], **criteria: Any
) -> tuple[ModelT, bool]:
    """
    Return ``(instance, created)`` for the row matching *criteria*.

    The insert runs inside a SAVEPOINT guarded by the table's unique
    constraint.  When a concurrent writer wins the race the savepoint is
    rolled back and the winner's row is re-read; if that re-read finds
    nothing the original ``IntegrityError`` is raised.
    """
    stmt = select(model).filter_by(**criteria)
    instance = (await db.execute(stmt)).scalars().first()
    if instance is not None:
        return instance, False

    try:
        async with db.begin_nested():
            instance = model(**criteria)
            db.add(instance)
    except IntegrityError:
        instance = (await db.execute(stmt)).scalars().first()
        if instance is None:
            raise
        return instance, False
    return instance, True


SNAPSHOT_ISOLATION_LEVEL = "REPEATABLE READ"


async def begin_snapshot(db: AsyncSession) -> None:
    """
    Pin *db*'s transaction to a single snapshot.

    Listing and feed calls count and page in separate statements; at
    PostgreSQL's default READ COMMITTED a concurrent commit could land
    between them.  The isolation level can only be chosen before the
    session's first statement, so this must run first; calling it again
    within the same transaction is a no-op.  SQLite transactions are already
    serializable and are left alone.
    """
    if db.get_bind().dialect.name != "postgresql":
        return
    current = db.sync_session.get_transaction()
    if current is not None and db.info.get("snapshot_transaction") is current:
        return
    if db.in_transaction():
        raise RuntimeError("begin_snapshot() must run before the session's first statement")
    await db.connection(execution_options={"isolation_level": SNAPSHOT_ISOLATION_LEVEL})
    db.info["snapshot_transaction"] = db.sync_session.get_transaction()

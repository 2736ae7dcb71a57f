from typing import AsyncGenerator
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncEngine, AsyncSession
from sqlalchemy.pool import StaticPool

from haggle.core.config import settings

def _hand_transactions_to_sqlalchemy(engine: AsyncEngine) -> None:
    """
    pysqlite/aiosqlite open transactions on their own, which breaks SAVEPOINT.
    Emitting BEGIN ourselves makes begin_nested() behave as on PostgreSQL.
    """
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

def create_engine_for(url: str) -> AsyncEngine:
    """
    PostgreSQL gets a checked, recycled connection pool. SQLite (local runs and
    the test suite) shares one connection so an in-memory database survives
    across sessions, and gets working savepoints.
    """
    if url.startswith("sqlite"):
        engine = create_async_engine(
            url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
        _hand_transactions_to_sqlalchemy(engine)
        return engine

    return create_async_engine(
        url,
        pool_pre_ping=True,
        pool_recycle=settings.DB_POOL_RECYCLE_SECONDS,
        pool_size=settings.DB_POOL_SIZE,
    )

engine = create_engine_for(settings.DATABASE_URL)

SessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    autoflush=False,
    expire_on_commit=False,
)

async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    One transaction per request: committed when the handler returns, rolled
    back on any exception. Per-user advisory locks taken by services are
    released when it ends.
    """
    async with SessionLocal() as session:
        async with session.begin():
            yield session

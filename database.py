import logging

from sqlmodel import SQLModel
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool

from config import DATABASE_URL, SQL_ECHO

logger = logging.getLogger(__name__)

IS_SQLITE = DATABASE_URL.startswith("sqlite")

# 1. Create the Async Engine
# aiosqlite connections are tied to the event loop that opened them, so
# SQLite gets a fresh connection per checkout instead of a pool.
engine = create_async_engine(
    DATABASE_URL,
    echo=SQL_ECHO,
    future=True,
    **({"poolclass": NullPool} if IS_SQLITE else {}),
)

if IS_SQLITE:
    # SQLite ignores SELECT ... FOR UPDATE. Taking the write lock when the
    # transaction starts makes check-then-insert sequences run one at a time.
    @event.listens_for(engine.sync_engine, "connect")
    def _disable_implicit_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


async_session = sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


async def init_db():
    async with engine.begin() as conn:
        # This creates the tables if they don't exist
        await conn.run_sync(SQLModel.metadata.create_all)
    logger.info("Database schema ready")


async def drop_db():
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.drop_all)


async def get_session() -> AsyncSession:
    async with async_session() as session:
        yield session

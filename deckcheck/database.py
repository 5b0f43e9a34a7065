"""
Async engine and session factory for deckcheck.

The scheduler runs the extractor and one critic per critique type concurrently;
each invocation holds one session (one pooled connection) for the length of its
run. The worker_server read endpoints borrow from the same pool through get_db.
"""
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from deckcheck.config import DATABASE_URL, DB_MAX_OVERFLOW, DB_POOL_SIZE

# Connect timeout (seconds): a stalled DB fails the job instead of hanging its tick
_connect_args = {"timeout": 15} if "asyncpg" in DATABASE_URL else {}
engine = create_async_engine(
    DATABASE_URL,
    echo=False,
    connect_args=_connect_args,
    pool_size=DB_POOL_SIZE,
    max_overflow=DB_MAX_OVERFLOW,
    pool_pre_ping=True,
    pool_recycle=300,
)
AsyncSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

Base = declarative_base()


async def get_db():
    async with AsyncSessionLocal() as session:
        yield session

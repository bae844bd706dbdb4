"""Database engine, session handling and schema bootstrap."""

from typing import AsyncGenerator, Any, Dict

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool
import structlog

from app.core.config import settings

logger = structlog.get_logger()


class Base(DeclarativeBase):
    """Declarative base for all service models."""


def _engine_options(url: str) -> Dict[str, Any]:
    if url.startswith("sqlite"):
        # In-memory SQLite must share a single connection across sessions
        return {
            "connect_args": {"check_same_thread": False},
            "poolclass": StaticPool,
        }
    return {
        "pool_size": settings.DATABASE_POOL_SIZE,
        "max_overflow": settings.DATABASE_MAX_OVERFLOW,
        "pool_pre_ping": True,
    }


def build_engine(url: str = None):
    """Create an async engine for the given URL (defaults to settings)."""
    url = url or settings.DATABASE_URL
    return create_async_engine(url, echo=settings.DATABASE_ECHO, **_engine_options(url))


def build_session_factory(bind) -> async_sessionmaker:
    return async_sessionmaker(bind=bind, class_=AsyncSession, expire_on_commit=False)


engine = build_engine()
AsyncSessionLocal = build_session_factory(engine)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding a session per request."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


def upsert_insert(session: AsyncSession, table):
    """Return a dialect-specific INSERT supporting ON CONFLICT clauses.

    PostgreSQL and SQLite expose the same ``on_conflict_do_update`` /
    ``on_conflict_do_nothing`` API on their own ``insert`` constructs.
    """
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(table)
    if dialect == "sqlite":
        return sqlite.insert(table)
    raise NotImplementedError(f"Upserts are not supported on dialect {dialect!r}")


async def create_schema(bind) -> None:
    # Import models so they register on Base.metadata
    import app.models  # noqa: F401

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def seed_achievements(session: AsyncSession) -> int:
    """Insert the default achievement catalog, skipping existing keys."""
    from app.models.gamification import Achievement, DEFAULT_ACHIEVEMENTS

    existing = set(
        (await session.execute(select(Achievement.key))).scalars().all()
    )
    created = 0
    for definition in DEFAULT_ACHIEVEMENTS:
        if definition["key"] in existing:
            continue
        session.add(Achievement(**definition))
        created += 1

    await session.commit()
    if created:
        logger.info("Seeded achievement catalog", created=created)
    return created


async def init_db() -> None:
    """Create tables and seed reference data."""
    await create_schema(engine)

    if settings.SEED_DEFAULT_ACHIEVEMENTS:
        async with AsyncSessionLocal() as session:
            await seed_achievements(session)

    logger.info("Database initialized", dialect=engine.dialect.name)

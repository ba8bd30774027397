"""
sqlpath/database.py
Async engine, session factory and startup seeding
"""
import os
import logging
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from dotenv import load_dotenv

# Import Base from orm.base to avoid circular imports
from sqlpath.orm.base import Base
import sqlpath.orm  # ensures all models are registered

load_dotenv()

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./sqlpath.db")

# SQLite has different pool needs than PostgreSQL
if "sqlite" in DATABASE_URL.lower():
    engine = create_async_engine(
        DATABASE_URL,
        echo=False,
        future=True,
        pool_pre_ping=True,
        connect_args={
            "timeout": 30.0,   # SQLite busy timeout in seconds
        }
    )
else:
    engine = create_async_engine(
        DATABASE_URL,
        echo=False,
        future=True,
        pool_pre_ping=True,
        pool_size=20,
        max_overflow=30,
        pool_timeout=30,
        pool_recycle=3600,
    )

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_db():
    """Dependency for getting async database session"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db():
    """Create all tables that do not exist yet."""
    logger.info("Initializing database...")

    try:
        logger.info(f"Database dialect: {engine.url.get_backend_name()}")

        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        logger.info("✓ Database initialization complete")

    except Exception as e:
        logger.error(f"Database initialization failed: {str(e)}")
        raise


async def close_db():
    """Close database connection"""
    await engine.dispose()
    logger.info("Database connection closed")


# ================= SEED DATA =================

DEFAULT_PLAN_PERMISSIONS = [
    {"tier": "free", "course_lesson_limit": 2, "allow_ai_tutor": False, "allow_live_instructor": False},
    {"tier": "basic", "course_lesson_limit": 5, "allow_ai_tutor": True, "allow_live_instructor": False},
    {"tier": "pro", "course_lesson_limit": -1, "allow_ai_tutor": True, "allow_live_instructor": True},
]


async def seed_plan_defaults(db: AsyncSession):
    """
    Seed one PlanPermission row per tier and the default price list if the
    tables are empty. Called during startup after DB initialization.
    """
    from sqlpath.constants import DEFAULT_PLAN_SETTINGS
    from sqlpath.orm.plan import PlanPermission, SubscriptionPrice

    try:
        result = await db.execute(select(func.count()).select_from(PlanPermission))
        count = result.scalar()

        if count == 0:
            logger.info("No plan permissions found - seeding defaults")
            for row in DEFAULT_PLAN_PERMISSIONS:
                db.add(PlanPermission(**row))
        else:
            logger.info("✓ Plan permissions already exist (%d tiers) - skipping seed", count)

        result = await db.execute(select(func.count()).select_from(SubscriptionPrice))
        if result.scalar() == 0:
            for tier, cycles in DEFAULT_PLAN_SETTINGS.items():
                for cycle, amount in cycles.items():
                    db.add(SubscriptionPrice(
                        id=f"{tier}_{cycle}",
                        tier=tier,
                        cycle=cycle,
                        amount=Decimal(str(amount)),
                        updated_at=datetime.utcnow(),
                    ))

        await db.commit()

    except Exception as e:
        logger.error(f"Failed to seed plan defaults: {str(e)}")
        await db.rollback()
        raise

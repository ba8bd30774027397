"""
Gamification and subscription tests

Coverage:
- Daily streak rules
- XP / completed counters only move on the first correct answer
- Achievement unlocking is idempotent
- Tier normalisation and the permission cache
- Payment references are applied once
- Price grid falls back to defaults
"""
import pytest
import pytest_asyncio
from datetime import datetime, timedelta
from typing import AsyncGenerator

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from sqlpath.constants import DEFAULT_PLAN_SETTINGS
from sqlpath.database import seed_plan_defaults
from sqlpath.exceptions import ResourceNotFoundError
from sqlpath.orm.base import Base
from sqlpath.orm.plan import SubscriptionPayment
from sqlpath.orm.reward import UserAchievement
from sqlpath.orm.user import User, SubscriptionTier, normalize_tier
from sqlpath.services import achievement_service, stats_service
from sqlpath.services.plan_service import PlanService, invalidate_permission_cache, plan_end_date

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    engine = create_async_engine(TEST_DATABASE_URL, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    invalidate_permission_cache()
    async with session_factory() as session:
        await seed_plan_defaults(session)
        yield session

    invalidate_permission_cache()
    await engine.dispose()


@pytest_asyncio.fixture
async def learner(db: AsyncSession) -> User:
    user = User(email="learner@example.com", username="learner", password_hash="x")
    db.add(user)
    await db.commit()
    return user


# =============================================================================
# Streaks and counters
# =============================================================================

class TestCalculateStreak:

    def test_first_activity(self):
        assert stats_service.calculate_streak(None, 0) == 1

    def test_same_day_unchanged(self):
        now = datetime(2026, 3, 10, 18, 0)
        assert stats_service.calculate_streak(datetime(2026, 3, 10, 8, 0), 4, now) == 4

    def test_next_day_increments(self):
        now = datetime(2026, 3, 11, 9, 0)
        assert stats_service.calculate_streak(datetime(2026, 3, 10, 20, 0), 4, now) == 5

    def test_across_midnight_increments(self):
        now = datetime(2026, 3, 11, 0, 30)
        assert stats_service.calculate_streak(datetime(2026, 3, 10, 23, 30), 2, now) == 3

    def test_gap_resets(self):
        now = datetime(2026, 3, 13, 9, 0)
        assert stats_service.calculate_streak(datetime(2026, 3, 10, 9, 0), 9, now) == 1

    def test_just_over_a_day_resets(self):
        now = datetime(2026, 3, 11, 21, 0)
        assert stats_service.calculate_streak(datetime(2026, 3, 10, 20, 0), 9, now) == 1


class TestRecordCorrectSubmission:

    @pytest.mark.asyncio
    async def test_first_time_awards_points(self, db, learner):
        now = datetime(2026, 3, 10, 12, 0)
        user = await stats_service.record_correct_submission(db, learner, 100, True, now=now)

        assert user.total_xp == 100
        assert user.total_completed == 1
        assert user.streak == 1
        assert user.last_active == now

    @pytest.mark.asyncio
    async def test_repeat_only_moves_streak(self, db, learner):
        day_one = datetime(2026, 3, 10, 12, 0)
        await stats_service.record_correct_submission(db, learner, 100, True, now=day_one)
        user = await stats_service.record_correct_submission(db, learner, 100, False, now=day_one + timedelta(days=1))

        assert user.total_xp == 100
        assert user.total_completed == 1
        assert user.streak == 2

    @pytest.mark.asyncio
    async def test_practice_position_saved(self, db, learner):
        position = stats_service.PracticePosition("Retail", "Beginner", None, next_index=3)
        user = await stats_service.record_correct_submission(db, learner, 50, True, practice_position=position)

        assert user.last_industry == "Retail"
        assert user.last_difficulty == "Beginner"
        assert user.last_index == 3

    @pytest.mark.asyncio
    async def test_has_solved(self, db, learner):
        await stats_service.log_challenge_attempt(db, learner.id, "saved:1", "SELECT 1", False, 0)
        assert await stats_service.has_solved(db, learner.id, "saved:1") is False

        await stats_service.log_challenge_attempt(db, learner.id, "saved:1", "SELECT 2", True, 100)
        assert await stats_service.has_solved(db, learner.id, "saved:1") is True

    @pytest.mark.asyncio
    async def test_leaderboard_orders_by_xp(self, db, learner):
        rival = User(email="rival@example.com", username="rival", password_hash="x", total_xp=900)
        learner.total_xp = 300
        db.add(rival)
        await db.commit()

        board = await stats_service.fetch_leaderboard(db, limit=5)
        assert [(row["rank"], row["username"]) for row in board] == [(1, "rival"), (2, "learner")]


# =============================================================================
# Achievements
# =============================================================================

class TestAchievements:

    @pytest.mark.asyncio
    async def test_unlocks_matching_milestones(self, db, learner):
        learner.total_completed = 5
        learner.total_xp = 1200
        await db.commit()

        unlocked = await achievement_service.check_achievements(db, learner)
        assert {a.key for a in unlocked} == {"fast-starter", "1k-club"}

    @pytest.mark.asyncio
    async def test_second_check_unlocks_nothing(self, db, learner):
        learner.streak = 7
        await db.commit()

        first = await achievement_service.check_achievements(db, learner)
        second = await achievement_service.check_achievements(db, learner)

        assert [a.key for a in first] == ["week-warrior"]
        assert second == []
        result = await db.execute(select(func.count(UserAchievement.id)))
        assert result.scalar() == 1


# =============================================================================
# Plans
# =============================================================================

class TestTierNormalisation:

    @pytest.mark.parametrize("plan,tier", [
        ("pro_annual", SubscriptionTier.pro),
        ("PRO_monthly", SubscriptionTier.pro),
        ("basic_monthly", SubscriptionTier.basic),
        ("free", SubscriptionTier.free),
        ("", SubscriptionTier.free),
        (None, SubscriptionTier.free),
        ("enterprise", SubscriptionTier.free),
    ])
    def test_normalize(self, plan, tier):
        assert normalize_tier(plan) == tier

    def test_plan_end_date(self):
        now = datetime(2026, 1, 1)
        assert plan_end_date("basic_monthly", now) == now + timedelta(days=30)
        assert plan_end_date("pro_annual", now) == now + timedelta(days=365)
        assert plan_end_date("free", now) is None


class TestPlanService:

    @pytest.mark.asyncio
    async def test_permissions_cached_until_update(self, db):
        service = PlanService(db)
        before = await service.fetch_plan_permissions("free")
        assert before.course_lesson_limit == 2

        await service.update_plan_permission("free", {"course_lesson_limit": 4, "allow_ai_tutor": None})
        after = await service.fetch_plan_permissions("free_trial")

        assert after.course_lesson_limit == 4
        assert after.allow_ai_tutor is False

    @pytest.mark.asyncio
    async def test_update_unknown_tier_falls_back_to_free(self, db):
        row = await PlanService(db).update_plan_permission("gold", {"allow_ai_tutor": True})
        assert row.tier == "free"

    @pytest.mark.asyncio
    async def test_upgrade_applied_once_per_reference(self, db, learner):
        service = PlanService(db)

        user = await service.upgrade_subscription(learner, "basic", "monthly", "pay_123", 50)
        first_end = user.subscription_end_date
        assert user.subscription_plan == "basic_monthly"
        assert first_end > datetime.utcnow() + timedelta(days=29)

        user = await service.upgrade_subscription(learner, "pro", "annual", "pay_123", 929)
        assert user.subscription_plan == "basic_monthly"
        assert user.subscription_end_date == first_end

        result = await db.execute(select(func.count(SubscriptionPayment.id)))
        assert result.scalar() == 1

    @pytest.mark.asyncio
    async def test_admin_plan_override(self, db, learner):
        user = await PlanService(db).update_learner_plan(learner.id, "pro_annual")
        assert user.tier == SubscriptionTier.pro
        assert user.subscription_end_date is not None

        with pytest.raises(ResourceNotFoundError):
            await PlanService(db).update_learner_plan(9999, "pro_annual")

    @pytest.mark.asyncio
    async def test_price_grid(self, db):
        service = PlanService(db)
        assert await service.fetch_plan_settings() == DEFAULT_PLAN_SETTINGS

        saved = await service.save_plan_settings({"basic": {"monthly": 65}})
        assert saved["basic"]["monthly"] == 65
        assert saved["pro"]["annual"] == DEFAULT_PLAN_SETTINGS["pro"]["annual"]

"""
Access Gate Tests

Coverage:
- Pure predicate: unlimited sentinel, started content, per-course limit
- Practice index locking
- Store-backed enforcement against PlanPermission rows
- Feature gating (AI tutor / live instructor)
- Missing permission row treated as locked
"""
import pytest
import pytest_asyncio
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from sqlpath.exceptions import LessonLimitReachedError, FeatureNotInPlanError
from sqlpath.orm.base import Base
from sqlpath.orm.course import Course, CourseModule, CourseStatus
from sqlpath.orm.plan import PlanPermission
from sqlpath.orm.progress import ModuleProgress, ModuleProgressStatus
from sqlpath.orm.user import User
from sqlpath.services.access_gate import (
    AccessGateService,
    check_module_access,
    is_practice_index_locked,
    FEATURE_AI_TUTOR,
    FEATURE_LIVE_INSTRUCTOR,
    REASON_UNLIMITED,
    REASON_ALREADY_STARTED,
    REASON_WITHIN_LIMIT,
    REASON_LIMIT_REACHED,
)
from sqlpath.services.plan_service import invalidate_permission_cache

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

MODULE_A, MODULE_B, MODULE_C = 1, 2, 3
COURSE_X = (MODULE_A, MODULE_B, MODULE_C)


# =============================================================================
# Fixtures
# =============================================================================

@pytest_asyncio.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    engine = create_async_engine(TEST_DATABASE_URL, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    invalidate_permission_cache()
    async with session_factory() as session:
        session.add_all([
            PlanPermission(tier="free", course_lesson_limit=2, allow_ai_tutor=False, allow_live_instructor=False),
            PlanPermission(tier="basic", course_lesson_limit=5, allow_ai_tutor=True, allow_live_instructor=False),
            PlanPermission(tier="pro", course_lesson_limit=-1, allow_ai_tutor=True, allow_live_instructor=True),
        ])
        await session.commit()
        yield session

    invalidate_permission_cache()
    await engine.dispose()


@pytest_asyncio.fixture
async def course(db: AsyncSession) -> Course:
    course = Course(title="SQL Basics", industry="Retail", status=CourseStatus.published)
    course.modules = [
        CourseModule(title=f"Lesson {i}", sequence_order=i, challenge_json={"type": "sql"})
        for i in (1, 2, 3)
    ]
    db.add(course)
    await db.commit()
    await db.refresh(course, ["modules"])
    return course


async def make_user(db: AsyncSession, plan: str) -> User:
    user = User(email=f"{plan}@example.com", username=plan, password_hash="x", subscription_plan=plan)
    db.add(user)
    await db.commit()
    return user


async def start_modules(db: AsyncSession, user: User, course: Course, count: int) -> None:
    for module in course.modules[:count]:
        db.add(ModuleProgress(
            user_id=user.id,
            course_id=course.id,
            module_id=module.id,
            status=ModuleProgressStatus.started,
        ))
    await db.commit()


# =============================================================================
# Pure predicate
# =============================================================================

class TestCheckModuleAccess:

    @pytest.mark.parametrize("started", [set(), {MODULE_A}, {MODULE_A, MODULE_B, MODULE_C}])
    @pytest.mark.parametrize("module_id", COURSE_X)
    def test_unlimited_sentinel_permits_everything(self, started, module_id):
        decision = check_module_access(module_id, COURSE_X, started, -1)
        assert decision.allowed is True
        assert decision.reason == REASON_UNLIMITED

    @pytest.mark.parametrize("limit", [0, 1, 2, 5])
    def test_started_module_always_permitted(self, limit):
        started = {MODULE_A, MODULE_B}
        for module_id in started:
            decision = check_module_access(module_id, COURSE_X, started, limit)
            assert decision.allowed is True

    def test_limit_enforcement_scenario(self):
        started = {MODULE_A, MODULE_B}

        denied = check_module_access(MODULE_C, COURSE_X, started, 2)
        assert denied.allowed is False
        assert denied.reason == REASON_LIMIT_REACHED
        assert denied.started_in_course == 2
        assert denied.limit == 2

        assert check_module_access(MODULE_A, COURSE_X, started, 2).reason == REASON_ALREADY_STARTED
        assert check_module_access(MODULE_B, COURSE_X, started, 2).allowed is True

    def test_within_limit(self):
        decision = check_module_access(MODULE_B, COURSE_X, {MODULE_A}, 2)
        assert decision.allowed is True
        assert decision.reason == REASON_WITHIN_LIMIT

    def test_limit_is_per_course(self):
        """Modules started in other courses do not count."""
        started = {101, 102, 103}
        decision = check_module_access(MODULE_A, COURSE_X, started, 2)
        assert decision.allowed is True
        assert decision.started_in_course == 0

    def test_zero_limit_denies_new_modules(self):
        assert check_module_access(MODULE_A, COURSE_X, set(), 0).allowed is False

    def test_to_dict(self):
        data = check_module_access(MODULE_C, COURSE_X, {MODULE_A, MODULE_B}, 2).to_dict()
        assert data["allowed"] is False
        assert data["started_in_course"] == 2


class TestPracticeLocking:

    def test_positions_beyond_limit_locked(self):
        assert is_practice_index_locked(0, 2) is False
        assert is_practice_index_locked(1, 2) is False
        assert is_practice_index_locked(2, 2) is True

    def test_unlimited_never_locked(self):
        assert is_practice_index_locked(19, -1) is False


# =============================================================================
# Store-backed gate
# =============================================================================

class TestAccessGateService:

    @pytest.mark.asyncio
    async def test_free_user_denied_third_module(self, db, course):
        user = await make_user(db, "free")
        await start_modules(db, user, course, 2)
        gate = AccessGateService(db)

        with pytest.raises(LessonLimitReachedError) as exc_info:
            await gate.enforce_module_access(user, course, course.modules[2].id)

        assert exc_info.value.started_in_course == 2
        assert exc_info.value.limit == 2
        assert exc_info.value.course_id == course.id

        decision = await gate.enforce_module_access(user, course, course.modules[0].id)
        assert decision.reason == REASON_ALREADY_STARTED

    @pytest.mark.asyncio
    async def test_plan_string_is_normalised(self, db, course):
        user = await make_user(db, "pro_annual")
        await start_modules(db, user, course, 3)
        decision = await AccessGateService(db).enforce_module_access(user, course, course.modules[2].id)
        assert decision.reason == REASON_UNLIMITED

    @pytest.mark.asyncio
    async def test_missing_permission_row_is_locked(self, db, course):
        await db.execute(PlanPermission.__table__.delete().where(PlanPermission.tier == "free"))
        await db.commit()
        invalidate_permission_cache()

        user = await make_user(db, "free")
        with pytest.raises(LessonLimitReachedError):
            await AccessGateService(db).enforce_module_access(user, course, course.modules[0].id)

    @pytest.mark.asyncio
    async def test_practice_access(self, db):
        user = await make_user(db, "basic_monthly")
        gate = AccessGateService(db)

        await gate.enforce_practice_access(user, 4)
        with pytest.raises(LessonLimitReachedError):
            await gate.enforce_practice_access(user, 5)

    @pytest.mark.asyncio
    async def test_feature_gating(self, db):
        free_user = await make_user(db, "free")
        basic_user = await make_user(db, "basic_annual")
        gate = AccessGateService(db)

        with pytest.raises(FeatureNotInPlanError):
            await gate.enforce_feature(free_user, FEATURE_AI_TUTOR)

        await gate.enforce_feature(basic_user, FEATURE_AI_TUTOR)
        with pytest.raises(FeatureNotInPlanError) as exc_info:
            await gate.enforce_feature(basic_user, FEATURE_LIVE_INSTRUCTOR)
        assert exc_info.value.tier == "basic"

    @pytest.mark.asyncio
    async def test_unknown_feature_denied(self, db):
        user = await make_user(db, "pro")
        with pytest.raises(FeatureNotInPlanError):
            await AccessGateService(db).enforce_feature(user, "time_travel")

"""
Course navigation and module submission tests

Grading is patched at gemini_service.validate_submission.

Coverage:
- Entering a course opens its resume point
- A denied navigation records nothing
- Lessons without content are refused before the start is recorded
- Advancing past the last module completes the enrollment
- Advancing requires the current module to have been entered
- Submissions require the module to have been entered
- XP is only awarded for the first correct answer
- Practice answers are only graded for catalogue industries
"""
import pytest
import pytest_asyncio
from typing import AsyncGenerator
from unittest.mock import AsyncMock, patch

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from sqlpath.database import seed_plan_defaults
from sqlpath.exceptions import (
    ContentNotReadyError,
    InvalidRequestError,
    LessonLimitReachedError,
    ModuleNotStartedError,
    ResourceNotFoundError,
)
from sqlpath.orm.base import Base
from sqlpath.orm.course import Course, CourseModule, CourseStatus
from sqlpath.orm.progress import EnrollmentStatus, ModuleProgressStatus
from sqlpath.orm.user import User
from sqlpath.schemas.challenge import ValidationVerdict
from sqlpath.services import challenge_service, enrollment_service, stats_service
from sqlpath.services.learning_service import LearningService, resume_index
from sqlpath.services.plan_service import invalidate_permission_cache

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

SQL_CHALLENGE = {
    "type": "sql",
    "title": "Daily revenue",
    "topic": "Aggregation",
    "task": "Sum order amounts per day",
    "schema": [{"tableName": "orders", "columns": ["day", "amount"], "data": [["Mon", "10"]]}],
}

CORRECT = ValidationVerdict(isCorrect=True, feedback="Nice", points=100)
WRONG = ValidationVerdict(isCorrect=False, feedback="Missing GROUP BY", points=0)


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
        await seed_plan_defaults(session)
        yield session

    invalidate_permission_cache()
    await engine.dispose()


async def make_course(db: AsyncSession, modules: int = 3, with_content: bool = True, status=CourseStatus.published) -> Course:
    course = Course(title="Sales Reporting", industry="Retail", skill_level="Beginner", status=status)
    course.modules = [
        CourseModule(
            title=f"Lesson {i}",
            sequence_order=i,
            challenge_json=dict(SQL_CHALLENGE) if with_content else None,
        )
        for i in range(1, modules + 1)
    ]
    db.add(course)
    await db.commit()
    await db.refresh(course, ["modules"])
    return course


async def make_user(db: AsyncSession, plan: str = "free") -> User:
    user = User(email=f"{plan}@example.com", username=plan, password_hash="x", subscription_plan=plan)
    db.add(user)
    await db.commit()
    return user


def grading(verdict):
    return patch("sqlpath.services.gemini_service.validate_submission", AsyncMock(return_value=verdict))


# =============================================================================
# Navigation
# =============================================================================

class TestNavigation:

    def test_resume_index(self):
        modules = [CourseModule(id=i, title=str(i)) for i in (1, 2, 3)]
        assert resume_index(modules, set()) == 0
        assert resume_index(modules, {1}) == 1
        assert resume_index(modules, {1, 3}) == 1
        assert resume_index(modules, {1, 2, 3}) == 0

    @pytest.mark.asyncio
    async def test_enter_course_opens_first_module(self, db):
        course = await make_course(db)
        user = await make_user(db)

        entry = await LearningService(db).enter_course(user, course.id)

        assert entry.index == 0
        assert entry.resumed is False
        progress = await enrollment_service.get_module_progress(db, user.id, course.modules[0].id)
        assert progress.status == ModuleProgressStatus.started
        assert await enrollment_service.get_enrollment(db, user.id, course.id) is not None

    @pytest.mark.asyncio
    async def test_free_learner_stops_at_limit(self, db):
        course = await make_course(db)
        user = await make_user(db, "free")
        service = LearningService(db)

        await service.enter_module(user, course.id, course.modules[0].id)
        await service.next_module(user, course.id, course.modules[0].id)

        with pytest.raises(LessonLimitReachedError):
            await service.next_module(user, course.id, course.modules[1].id)

        assert await enrollment_service.get_module_progress(db, user.id, course.modules[2].id) is None

        revisit = await service.enter_module(user, course.id, course.modules[0].id)
        assert revisit.module.id == course.modules[0].id

    @pytest.mark.asyncio
    async def test_missing_content_not_recorded(self, db):
        course = await make_course(db, with_content=False)
        user = await make_user(db, "pro_monthly")

        with pytest.raises(ContentNotReadyError):
            await LearningService(db).enter_course(user, course.id)

        assert await enrollment_service.get_module_progress(db, user.id, course.modules[0].id) is None

    @pytest.mark.asyncio
    async def test_unpublished_course_hidden(self, db):
        course = await make_course(db, status=CourseStatus.draft)
        user = await make_user(db, "pro")

        with pytest.raises(ResourceNotFoundError):
            await LearningService(db).enter_course(user, course.id)

    @pytest.mark.asyncio
    async def test_next_after_last_completes_enrollment(self, db):
        course = await make_course(db, modules=2)
        user = await make_user(db, "pro_annual")
        service = LearningService(db)

        await service.enter_course(user, course.id)
        second = await service.next_module(user, course.id, course.modules[0].id)
        assert second.index == 1

        done = await service.next_module(user, course.id, course.modules[1].id)
        assert done.course_completed is True
        assert done.module is None

        enrollment = await enrollment_service.get_enrollment(db, user.id, course.id)
        assert enrollment.status == EnrollmentStatus.completed

    @pytest.mark.asyncio
    async def test_next_requires_entered_module(self, db):
        course = await make_course(db)
        user = await make_user(db, "free")
        service = LearningService(db)

        with pytest.raises(ModuleNotStartedError):
            await service.next_module(user, course.id, course.modules[-1].id)

        with pytest.raises(ModuleNotStartedError):
            await service.next_module(user, course.id, course.modules[0].id)

        assert await enrollment_service.get_enrollment(db, user.id, course.id) is None
        assert await enrollment_service.completed_module_ids(db, user.id, course.id) == set()


# =============================================================================
# Submissions
# =============================================================================

class TestModuleSubmission:

    @pytest.mark.asyncio
    async def test_requires_started_module(self, db):
        course = await make_course(db)
        user = await make_user(db)

        with grading(CORRECT), pytest.raises(ModuleNotStartedError):
            await LearningService(db).submit_module_answer(user, course.id, course.modules[0].id, "SELECT 1")

    @pytest.mark.asyncio
    async def test_wrong_answer_keeps_module_open(self, db):
        course = await make_course(db)
        user = await make_user(db)
        service = LearningService(db)
        await service.enter_course(user, course.id)

        with grading(WRONG):
            outcome = await service.submit_module_answer(user, course.id, course.modules[0].id, "SELECT *")

        assert outcome.points_awarded == 0
        assert outcome.to_dict()["verdict"]["isCorrect"] is False
        progress = await enrollment_service.get_module_progress(db, user.id, course.modules[0].id)
        assert progress.status == ModuleProgressStatus.started

    @pytest.mark.asyncio
    async def test_xp_only_on_first_correct_answer(self, db):
        course = await make_course(db)
        user = await make_user(db)
        service = LearningService(db)
        module = course.modules[0]
        await service.enter_course(user, course.id)

        with grading(CORRECT):
            first = await service.submit_module_answer(user, course.id, module.id, "SELECT day, SUM(amount)")
            second = await service.submit_module_answer(user, course.id, module.id, "SELECT day, SUM(amount)")

        assert (first.first_time, first.points_awarded) == (True, 100)
        assert (second.first_time, second.points_awarded) == (False, 0)
        assert user.total_xp == 100
        assert user.total_completed == 1

        progress = await enrollment_service.get_module_progress(db, user.id, module.id)
        assert progress.status == ModuleProgressStatus.completed
        assert progress.xp_earned == 100

    @pytest.mark.asyncio
    async def test_resume_after_completion(self, db):
        course = await make_course(db)
        user = await make_user(db)
        service = LearningService(db)
        await service.enter_course(user, course.id)

        with grading(CORRECT):
            await service.submit_module_answer(user, course.id, course.modules[0].id, "SELECT 1")

        entry = await service.enter_course(user, course.id)
        assert entry.index == 1
        assert entry.resumed is True
        assert entry.completed_module_ids == {course.modules[0].id}


# =============================================================================
# Practice track
# =============================================================================

class TestPracticeSubmission:

    @pytest.mark.asyncio
    async def test_unknown_industry_refused(self, db):
        user = await make_user(db)

        with grading(CORRECT), pytest.raises(InvalidRequestError):
            await challenge_service.submit_practice_answer(
                db, user, dict(SQL_CHALLENGE), "SELECT 1", "Beginner", "Retail (again)", 0
            )

        assert await stats_service.fetch_challenge_attempts(db, user.id) == []
        assert user.total_xp == 0

    @pytest.mark.asyncio
    async def test_xp_once_per_topic_and_industry(self, db):
        user = await make_user(db)

        with grading(CORRECT):
            first = await challenge_service.submit_practice_answer(
                db, user, dict(SQL_CHALLENGE), "SELECT 1", "Beginner", "E-commerce", 0
            )
            again = await challenge_service.submit_practice_answer(
                db, user, dict(SQL_CHALLENGE), "SELECT 1", "Beginner", "E-commerce", 0
            )

        assert (first.first_time, first.points_awarded) == (True, 100)
        assert (again.first_time, again.points_awarded) == (False, 0)
        assert user.total_xp == 100

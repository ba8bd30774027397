"""
HTTP contract tests

Runs the FastAPI app in-process over httpx.ASGITransport with get_db
overridden by an in-memory database.

Coverage:
- Register / login / me
- 401 without a token
- Dashboard envelope
- 402 LESSON_LIMIT_REACHED body carries the counts the upgrade prompt needs
- 402 FEATURE_NOT_IN_PLAN for the AI tutor on the free tier
- Catalog detail carries the outline only; content comes from the gated entries
- Admin routes refuse learners
- 422 uniform validation body
"""
import pytest
import pytest_asyncio
from typing import AsyncGenerator

from httpx import AsyncClient, ASGITransport
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from sqlpath.database import get_db, seed_plan_defaults
from sqlpath.main import app
from sqlpath.orm.base import Base
from sqlpath.orm.course import Course, CourseModule, CourseStatus
from sqlpath.orm.user import User
from sqlpath.routes.auth import limiter
from sqlpath.services.plan_service import invalidate_permission_cache

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

SQL_CHALLENGE = {
    "type": "sql",
    "title": "Late deliveries",
    "topic": "Filtering",
    "task": "Find late shipments",
    "schema": [{"tableName": "shipments", "columns": ["id", "late"], "data": [["1", "true"]]}],
}


# =============================================================================
# Fixtures
# =============================================================================

@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine(TEST_DATABASE_URL, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    invalidate_permission_cache()
    async with factory() as session:
        await seed_plan_defaults(session)

    yield factory

    invalidate_permission_cache()
    await engine.dispose()


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    limiter.reset()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def register(client: AsyncClient, email: str = "learner@example.com") -> dict:
    response = await client.post("/api/auth/register", json={
        "email": email,
        "password": "correct-horse",
        "username": email.split("@")[0],
    })
    assert response.status_code == 201
    return response.json()


def auth(token: dict) -> dict:
    return {"Authorization": f"Bearer {token['access_token']}"}


@pytest_asyncio.fixture
async def published_course(session_factory) -> Course:
    async with session_factory() as session:
        course = Course(title="Logistics SQL", industry="Logistics", status=CourseStatus.published)
        course.modules = [
            CourseModule(title=f"Lesson {i}", sequence_order=i, challenge_json=dict(SQL_CHALLENGE))
            for i in (1, 2, 3)
        ]
        session.add(course)
        await session.commit()
        await session.refresh(course, ["modules"])
        return course


# =============================================================================
# Auth
# =============================================================================

class TestAuth:

    @pytest.mark.asyncio
    async def test_register_login_me(self, client):
        registered = await register(client)
        assert registered["token_type"] == "bearer"
        assert registered["is_admin"] is False

        login = await client.post("/api/auth/login", json={"email": "learner@example.com", "password": "correct-horse"})
        assert login.status_code == 200

        me = await client.get("/api/auth/me", headers=auth(login.json()))
        body = me.json()
        assert body["success"] is True
        assert body["data"]["user"]["subscription_tier"] == "free"

    @pytest.mark.asyncio
    async def test_duplicate_registration(self, client):
        await register(client)
        response = await client.post("/api/auth/register", json={
            "email": "learner@example.com", "password": "another-pass", "username": "again"
        })
        assert response.status_code == 400
        assert response.json()["details"]["field"] == "email"

    @pytest.mark.asyncio
    async def test_wrong_password(self, client):
        await register(client)
        response = await client.post("/api/auth/login", json={"email": "learner@example.com", "password": "wrong-pass"})
        assert response.status_code == 401
        assert response.json()["code"] == "AUTH_INVALID"

    @pytest.mark.asyncio
    async def test_missing_token(self, client):
        response = await client.get("/api/progress/dashboard")
        assert response.status_code == 401
        assert response.json()["success"] is False

    @pytest.mark.asyncio
    async def test_validation_body(self, client):
        response = await client.post("/api/auth/register", json={"email": "not-an-email", "password": "short"})
        assert response.status_code == 422
        assert response.json()["code"] == "VALIDATION_ERROR"


# =============================================================================
# Learner flows
# =============================================================================

class TestLearnerApi:

    @pytest.mark.asyncio
    async def test_empty_dashboard(self, client):
        token = await register(client)
        response = await client.get("/api/progress/dashboard", headers=auth(token))

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["in_progress"] == []
        assert data["completed"] == []
        assert data["last_active"] is None

    @pytest.mark.asyncio
    async def test_lesson_limit_body(self, client, published_course):
        token = await register(client)
        headers = auth(token)
        first, second, third = [m.id for m in published_course.modules]
        base = f"/api/learning/courses/{published_course.id}/modules"

        assert (await client.post(f"{base}/{first}/enter", headers=headers)).status_code == 200
        assert (await client.post(f"{base}/{first}/next", headers=headers)).status_code == 200

        denied = await client.post(f"{base}/{second}/next", headers=headers)
        assert denied.status_code == 402
        body = denied.json()
        assert body["code"] == "LESSON_LIMIT_REACHED"
        assert body["details"] == {
            "course_id": published_course.id,
            "module_id": third,
            "started_in_course": 2,
            "limit": 2,
            "tier": "free",
        }

        dashboard = (await client.get("/api/progress/dashboard", headers=headers)).json()["data"]
        assert dashboard["last_active"]["entity_id"] == published_course.id
        assert dashboard["last_active"]["completed_modules"] == 0

    @pytest.mark.asyncio
    async def test_catalog_hides_module_content(self, client, published_course):
        token = await register(client)
        headers = auth(token)
        base = f"/api/learning/courses/{published_course.id}/modules"
        first, second, third = [m.id for m in published_course.modules]

        await client.post(f"{base}/{first}/enter", headers=headers)
        await client.post(f"{base}/{first}/next", headers=headers)
        assert (await client.post(f"{base}/{second}/next", headers=headers)).status_code == 402

        response = await client.get(f"/api/catalog/courses/{published_course.id}", headers=headers)
        assert response.status_code == 200
        modules = response.json()["data"]["course"]["modules"]
        assert [m["id"] for m in modules] == [first, second, third]
        assert all("challenge_json" not in m for m in modules)
        assert all(m["has_content"] is True for m in modules)

        opened = await client.post(f"{base}/{first}/enter", headers=headers)
        assert opened.json()["data"]["module"]["challenge_json"]["title"] == "Late deliveries"

    @pytest.mark.asyncio
    async def test_submit_before_enter(self, client, published_course):
        token = await register(client)
        module_id = published_course.modules[0].id

        response = await client.post(
            f"/api/learning/courses/{published_course.id}/modules/{module_id}/submit",
            json={"answer": "SELECT * FROM shipments"},
            headers=auth(token),
        )
        assert response.status_code == 403
        assert response.json()["code"] == "MODULE_NOT_STARTED"

    @pytest.mark.asyncio
    async def test_tutor_not_in_free_plan(self, client):
        token = await register(client)
        response = await client.post(
            "/api/tutor/chat",
            json={"challenge": SQL_CHALLENGE, "message": "Where do I start?"},
            headers=auth(token),
        )
        assert response.status_code == 402
        assert response.json()["code"] == "FEATURE_NOT_IN_PLAN"

    @pytest.mark.asyncio
    async def test_unknown_course(self, client):
        token = await register(client)
        response = await client.post("/api/learning/courses/999/enter", headers=auth(token))
        assert response.status_code == 404


# =============================================================================
# Admin
# =============================================================================

class TestAdminApi:

    @pytest.mark.asyncio
    async def test_learner_refused(self, client):
        token = await register(client)
        response = await client.get("/api/admin/courses", headers=auth(token))
        assert response.status_code == 403
        assert response.json()["code"] == "ADMIN_REQUIRED"

    @pytest.mark.asyncio
    async def test_admin_creates_course(self, client, session_factory):
        await register(client, "admin@example.com")
        async with session_factory() as session:
            await session.execute(update(User).where(User.email == "admin@example.com").values(is_admin=True))
            await session.commit()

        login = await client.post("/api/auth/login", json={"email": "admin@example.com", "password": "correct-horse"})
        headers = auth(login.json())

        created = await client.post("/api/admin/courses", json={"title": "Marketing SQL"}, headers=headers)
        assert created.status_code == 201
        course = created.json()["data"]["course"]
        assert course["status"] == "draft"

        modules = await client.post(
            f"/api/admin/courses/{course['id']}/modules",
            json={"modules": [{"title": "Campaign clicks"}, {"title": "Conversion rate"}]},
            headers=headers,
        )
        assert [m["sequence_order"] for m in modules.json()["data"]["course"]["modules"]] == [1, 2]

        catalog = await client.get("/api/catalog/courses", headers=headers)
        assert catalog.json()["data"]["courses"] == []

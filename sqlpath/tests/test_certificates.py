"""
Certificate issuing tests

The renderer and the storage bucket are replaced by an httpx.MockTransport.
"""
import json
import pytest
import pytest_asyncio
from datetime import datetime
from typing import AsyncGenerator

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from sqlpath.exceptions import CertificateError, NotCompletedError, ResourceNotFoundError
from sqlpath.orm.base import Base
from sqlpath.orm.course import Course, CourseModule, CourseStatus
from sqlpath.orm.user import User
from sqlpath.services import enrollment_service
from sqlpath.services.certificate_service import CertificateService, render_certificate_html

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
STORAGE_URL = "https://storage.test/v1"


@pytest_asyncio.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    engine = create_async_engine(TEST_DATABASE_URL, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session

    await engine.dispose()


@pytest.fixture
def certificate_env(monkeypatch):
    monkeypatch.setenv("HCTI_USER_ID", "hcti-user")
    monkeypatch.setenv("HCTI_API_KEY", "hcti-key")
    monkeypatch.setenv("STORAGE_BASE_URL", STORAGE_URL + "/")
    monkeypatch.setenv("STORAGE_API_KEY", "storage-key")


class FakeServices:
    """Records every request and answers like the renderer and the bucket."""

    def __init__(self, fail_upload: bool = False, image_type: str = "image/png"):
        self.requests = []
        self.fail_upload = fail_upload
        self.image_type = image_type

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/v1/image/abc":
            return httpx.Response(200, content=b"\x89PNG", headers={"Content-Type": self.image_type})
        if request.url.host == "hcti.io":
            return httpx.Response(200, json={"url": "https://hcti.io/v1/image/abc"})
        if request.url.host == "storage.test":
            if self.fail_upload:
                return httpx.Response(500, json={"error": "bucket unavailable"})
            return httpx.Response(200, json={"Key": "certificates/x.png"})
        return httpx.Response(404)


@pytest_asyncio.fixture
async def finished_course(db: AsyncSession):
    user = User(email="grad@example.com", username="asha rao", password_hash="x")
    course = Course(title="Window Functions", industry="Finance", status=CourseStatus.published)
    course.modules = [CourseModule(title="Ranking", sequence_order=1, challenge_json={"type": "sql"})]
    db.add_all([user, course])
    await db.commit()
    await db.refresh(course, ["modules"])

    await enrollment_service.enroll_in_course(db, user.id, course.id)
    await enrollment_service.log_module_completion(db, user.id, course.id, course.modules[0].id, xp=100)
    return user, course


class TestRenderCertificate:

    def test_escapes_names(self):
        html = render_certificate_html("id-1", "<b>Asha</b>", "Joins & Unions", "Retail", datetime(2026, 5, 1))
        assert "&lt;b&gt;Asha&lt;/b&gt;" in html
        assert "Joins &amp; Unions" in html
        assert "May 01, 2026" in html


class TestCertificateService:

    @pytest.mark.asyncio
    async def test_claim_issues_once(self, db, finished_course, certificate_env):
        user, course = finished_course
        fake = FakeServices()

        async with httpx.AsyncClient(transport=httpx.MockTransport(fake)) as client:
            service = CertificateService(db, client=client)
            certificate = await service.claim_certificate(user, "course", course.id)
            again = await service.claim_certificate(user, "course", course.id)

        assert certificate.id == again.id
        assert certificate.course_title == "Window Functions"
        assert certificate.certificate_url.startswith(f"{STORAGE_URL}/object/public/certificates/{user.id}_")
        assert len(fake.requests) == 3

        render, download, upload = fake.requests
        assert certificate.id in json.loads(render.content)["html"]
        assert upload.headers["Authorization"] == "Bearer storage-key"
        assert upload.content == b"\x89PNG"

    @pytest.mark.asyncio
    async def test_unfinished_course_refused(self, db, certificate_env):
        user = User(email="new@example.com", username="new", password_hash="x")
        course = Course(title="Joins", status=CourseStatus.published)
        course.modules = [CourseModule(title="Inner", sequence_order=1)]
        db.add_all([user, course])
        await db.commit()
        await enrollment_service.enroll_in_course(db, user.id, course.id)

        with pytest.raises(NotCompletedError):
            await CertificateService(db).claim_certificate(user, "course", course.id)

    @pytest.mark.asyncio
    async def test_unknown_kind(self, db, finished_course):
        user, course = finished_course
        with pytest.raises(ResourceNotFoundError):
            await CertificateService(db).claim_certificate(user, "diploma", course.id)

    @pytest.mark.asyncio
    async def test_upload_failure_stores_nothing(self, db, finished_course, certificate_env):
        user, course = finished_course

        async with httpx.AsyncClient(transport=httpx.MockTransport(FakeServices(fail_upload=True))) as client:
            service = CertificateService(db, client=client)
            with pytest.raises(CertificateError) as exc_info:
                await service.claim_certificate(user, "course", course.id)

        assert exc_info.value.step == "upload"
        assert await service.list_certificates(user.id) == []

    @pytest.mark.asyncio
    async def test_non_image_download_not_uploaded(self, db, finished_course, certificate_env):
        user, course = finished_course
        fake = FakeServices(image_type="application/json")

        async with httpx.AsyncClient(transport=httpx.MockTransport(fake)) as client:
            service = CertificateService(db, client=client)
            with pytest.raises(CertificateError) as exc_info:
                await service.claim_certificate(user, "course", course.id)

        assert exc_info.value.step == "download"
        assert [r.url.host for r in fake.requests] == ["hcti.io", "hcti.io"]
        assert await service.list_certificates(user.id) == []

    @pytest.mark.asyncio
    async def test_unconfigured_renderer(self, db, finished_course, monkeypatch):
        monkeypatch.delenv("HCTI_USER_ID", raising=False)
        user, course = finished_course

        async with httpx.AsyncClient(transport=httpx.MockTransport(FakeServices())) as client:
            with pytest.raises(CertificateError) as exc_info:
                await CertificateService(db, client=client).issue_certificate(user, course.title, course.industry)
        assert exc_info.value.step == "render"

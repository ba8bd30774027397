"""
sqlpath/services/certificate_service.py
Course / bundle completion certificates

Flow for a new certificate:
1. Reuse an existing (user, course_title) certificate if there is one
2. Render the certificate HTML to an image with HCTI (hcti.io)
3. Download the image and upload it to the certificates bucket
4. Insert the record under a uuid that is printed on the image itself

Certificates are only issued for content that progress reconciliation
reports as done.
"""
import logging
import os
import time
import uuid
from datetime import datetime
from html import escape
from typing import List, Optional

import httpx
from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from sqlpath.exceptions import CertificateError, NotCompletedError, ResourceNotFoundError
from sqlpath.orm.course import Course
from sqlpath.orm.learning_path import LearningPath
from sqlpath.orm.reward import UserCertificate
from sqlpath.orm.user import User
from sqlpath.services.progress_reconciliation import ITEM_COURSE, ITEM_PATH
from sqlpath.services.progress_service import ProgressReconciliationService

logger = logging.getLogger(__name__)

HCTI_URL = "https://hcti.io/v1/image"
HTTP_TIMEOUT = 30.0

CERTIFICATE_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
  <style>
    body {{ margin: 0; padding: 0; font-family: 'Lato', sans-serif; background: #fff; }}
    .cert-container {{ width: 1860px; height: 1200px; position: relative; box-sizing: border-box;
                      background: #0f172a; color: #fff; }}
    .content-layer {{ position: absolute; inset: 0; padding: 380px 120px 0 182px; box-sizing: border-box; }}
    .cert-header {{ font-size: 32px; margin-bottom: 25px; letter-spacing: 1px; }}
    .student-name {{ font-size: 80px; font-weight: 700; text-transform: capitalize; margin-bottom: 25px; }}
    .cert-body {{ font-size: 28px; font-weight: 300; margin-bottom: 25px; }}
    .course-title {{ font-size: 48px; font-weight: 700; margin-bottom: 35px; max-width: 90%; }}
    .date {{ font-size: 24px; margin-top: 10px; }}
    .cert-id {{ position: absolute; top: 120px; right: 160px; font-size: 24px; }}
  </style>
</head>
<body>
  <div class="cert-container">
    <div class="cert-id">Certificate ID: {certificate_id}</div>
    <div class="content-layer">
      <div class="cert-header">{date}</div>
      <div class="student-name">{user_name}</div>
      <div class="cert-body">has successfully completed</div>
      <div class="course-title">{course_title}</div>
      <div class="date">The holder of this certificate has successfully completed {course_title}, a hands-on,
      industry-driven program in {industry}, demonstrating practical expertise through real-world projects and challenges.</div>
    </div>
  </div>
</body>
</html>"""


def render_certificate_html(certificate_id: str, user_name: str, course_title: str, industry: str, issued: datetime) -> str:
    return CERTIFICATE_TEMPLATE.format(
        certificate_id=escape(certificate_id),
        date=issued.strftime("%B %d, %Y"),
        user_name=escape(user_name),
        course_title=escape(course_title),
        industry=escape(industry or "data analytics"),
    )


class CertificateService:
    """
    Issues certificates. An httpx.AsyncClient may be injected; otherwise
    one is opened per issue.
    """

    def __init__(self, db: AsyncSession, client: Optional[httpx.AsyncClient] = None):
        self.db = db
        self.client = client
        self.hcti_user_id = os.getenv("HCTI_USER_ID")
        self.hcti_api_key = os.getenv("HCTI_API_KEY")
        self.storage_base_url = (os.getenv("STORAGE_BASE_URL") or "").rstrip("/")
        self.storage_api_key = os.getenv("STORAGE_API_KEY")
        self.bucket = os.getenv("CERTIFICATE_BUCKET", "certificates")

    async def list_certificates(self, user_id: int) -> List[UserCertificate]:
        result = await self.db.execute(
            select(UserCertificate)
            .where(UserCertificate.user_id == user_id)
            .order_by(UserCertificate.issued_at.desc())
        )
        return list(result.scalars().all())

    async def find_certificate(self, user_id: int, course_title: str) -> Optional[UserCertificate]:
        result = await self.db.execute(
            select(UserCertificate).where(
                and_(
                    UserCertificate.user_id == user_id,
                    UserCertificate.course_title == course_title
                )
            )
        )
        return result.scalar_one_or_none()

    # ---- External steps ----

    async def _render_image(self, client: httpx.AsyncClient, html: str) -> str:
        if not self.hcti_user_id or not self.hcti_api_key:
            raise CertificateError("Certificate renderer is not configured", step="render")

        try:
            response = await client.post(
                HCTI_URL,
                auth=(self.hcti_user_id, self.hcti_api_key),
                json={
                    "html": html,
                    "css": "",
                    "google_fonts": "Lato",
                    "device_scale_factor": 1,
                    "selector": ".cert-container",
                    "ms_delay": 500,
                },
            )
            response.raise_for_status()
            image_url = response.json().get("url")
        except httpx.HTTPError as e:
            logger.error(f"HCTI render failed: {str(e)}")
            raise CertificateError(f"Certificate rendering failed: {e}", step="render")

        if not image_url:
            raise CertificateError("Certificate renderer returned no image URL", step="render")
        return image_url

    async def _download(self, client: httpx.AsyncClient, image_url: str) -> bytes:
        try:
            response = await client.get(image_url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Certificate download failed: {str(e)}")
            raise CertificateError("Failed to download generated image", step="download")

        content_type = response.headers.get("content-type", "")
        if not content_type.startswith("image/"):
            logger.error(f"Certificate download returned {content_type or 'no content type'}, expected an image")
            raise CertificateError("Renderer did not return an image", step="download")
        return response.content

    async def _upload(self, client: httpx.AsyncClient, file_name: str, content: bytes) -> str:
        """Upload to the bucket and return the public URL."""
        if not self.storage_base_url or not self.storage_api_key:
            raise CertificateError("Certificate storage is not configured", step="upload")

        try:
            response = await client.post(
                f"{self.storage_base_url}/object/{self.bucket}/{file_name}",
                content=content,
                headers={
                    "Authorization": f"Bearer {self.storage_api_key}",
                    "Content-Type": "image/png",
                    "x-upsert": "false",
                },
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Certificate upload failed: {str(e)}")
            raise CertificateError(f"Storage upload failed: {e}", step="upload")

        return f"{self.storage_base_url}/object/public/{self.bucket}/{file_name}"

    # ---- Issue ----

    async def issue_certificate(self, user: User, course_title: str, industry: Optional[str]) -> UserCertificate:
        """
        Return the learner's certificate for `course_title`, creating it on
        first request.

        Raises:
            CertificateError: any external step failed; nothing is stored
        """
        existing = await self.find_certificate(user.id, course_title)
        if existing is not None:
            logger.info(f"Certificate for user {user.id} '{course_title}' already exists")
            return existing

        certificate_id = str(uuid.uuid4())
        issued = datetime.utcnow()
        html = render_certificate_html(certificate_id, user.username, course_title, industry or "", issued)
        file_name = f"{user.id}_{int(time.time() * 1000)}.png"

        if self.client is not None:
            public_url = await self._produce(self.client, html, file_name)
        else:
            async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as client:
                public_url = await self._produce(client, html, file_name)

        certificate = UserCertificate(
            id=certificate_id,
            user_id=user.id,
            course_title=course_title,
            certificate_url=public_url,
            issued_at=issued,
        )
        self.db.add(certificate)
        await self.db.commit()
        logger.info(f"Issued certificate {certificate_id} to user {user.id} for '{course_title}'")
        return certificate

    async def _produce(self, client: httpx.AsyncClient, html: str, file_name: str) -> str:
        image_url = await self._render_image(client, html)
        content = await self._download(client, image_url)
        return await self._upload(client, file_name, content)

    async def claim_certificate(self, user: User, kind: str, entity_id: int) -> UserCertificate:
        """
        Issue a certificate for a finished course or learning path.

        Raises:
            ResourceNotFoundError: unknown or unpublished course / path
            NotCompletedError: reconciliation does not report it as done
        """
        result = await ProgressReconciliationService(self.db).reconcile_user(user.id)

        if kind == ITEM_COURSE:
            model = Course
            done = entity_id in result.completed_course_ids
        elif kind == ITEM_PATH:
            model = LearningPath
            done = any(item.type == ITEM_PATH and item.entity_id == entity_id for item in result.completed)
        else:
            raise ResourceNotFoundError("Certificate type", kind)

        if not done:
            raise NotCompletedError(f"{kind.capitalize()} {entity_id} is not completed yet")

        row = await self.db.get(model, entity_id)
        if row is None:
            raise ResourceNotFoundError(kind.capitalize(), entity_id)
        return await self.issue_certificate(user, row.title, row.industry)

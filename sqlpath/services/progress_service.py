"""
sqlpath/services/progress_service.py
Store-backed progress reconciliation

Loads the published catalog and the learner's progress rows, runs the pure
reconcile() and persists the status corrections it returns.

The snapshot reads run one after another on the request's session; a
failure in any of them aborts the whole computation and nothing is
written.
"""
import logging
from datetime import datetime
from typing import Iterable, List, Tuple

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from sqlpath.config.feature_flags import feature_flags
from sqlpath.orm.course import Course, CourseStatus
from sqlpath.orm.learning_path import LearningPath
from sqlpath.orm.progress import CourseEnrollment, PathEnrollment, EnrollmentStatus
from sqlpath.services import enrollment_service
from sqlpath.services.progress_reconciliation import (
    CourseView,
    PathView,
    EnrollmentRecord,
    ModuleProgressRecord,
    PathEnrollmentRecord,
    ProgressSnapshot,
    ReconciliationResult,
    StatusWrite,
    ITEM_PATH,
    ITEM_COURSE,
    reconcile,
)

logger = logging.getLogger(__name__)


def _status_value(status):
    return status.value if status is not None else None


class ProgressReconciliationService:
    """Dashboard computation for one request."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def load_snapshot(self, user_id: int) -> ProgressSnapshot:
        try:
            enrollments = await enrollment_service.fetch_enrollments(self.db, user_id)
            module_rows = await enrollment_service.fetch_module_progress(self.db, user_id)
            path_rows = await enrollment_service.fetch_path_enrollments(self.db, user_id)
        except Exception as e:
            logger.error(f"Failed to load progress snapshot for user {user_id}: {e}")
            raise

        return ProgressSnapshot(
            enrollments=[
                EnrollmentRecord(
                    course_id=row.course_id,
                    status=_status_value(row.status),
                    last_accessed=row.last_accessed,
                )
                for row in enrollments
            ],
            module_progress=[
                ModuleProgressRecord(
                    course_id=row.course_id,
                    module_id=row.module_id,
                    status=_status_value(row.status),
                )
                for row in module_rows
            ],
            path_enrollments=[
                PathEnrollmentRecord(
                    path_id=row.path_id,
                    status=_status_value(row.status),
                    enrolled_at=row.enrolled_at,
                )
                for row in path_rows
            ],
        )

    async def load_catalog(self) -> Tuple[List[CourseView], List[PathView]]:
        """
        Published courses with their modules, and published paths whose
        member list is restricted to published courses.
        """
        try:
            course_result = await self.db.execute(
                select(Course)
                .where(Course.status == CourseStatus.published)
                .order_by(Course.id)
            )
            courses = [CourseView.from_orm(c) for c in course_result.scalars().all()]

            path_result = await self.db.execute(
                select(LearningPath)
                .where(LearningPath.is_published == True)
                .order_by(LearningPath.id)
            )
            paths = path_result.scalars().all()
        except Exception as e:
            logger.error(f"Failed to load published catalog: {e}")
            raise

        path_views = [
            PathView(
                id=path.id,
                title=path.title,
                industry=path.industry,
                courses=tuple(
                    CourseView.from_orm(course)
                    for course in path.courses
                    if course.is_published
                ),
            )
            for path in paths
        ]
        return courses, path_views

    async def apply_status_writes(self, user_id: int, writes: Iterable[StatusWrite]) -> int:
        """
        Persist status corrections. Only status (and completed_at) change;
        last_accessed is left alone so reading the dashboard does not count
        as activity. Returns the number of rows changed.
        """
        changed = 0
        now = datetime.utcnow()

        for write in writes:
            if write.entity == ITEM_PATH:
                model, key = PathEnrollment, PathEnrollment.path_id
            elif write.entity == ITEM_COURSE:
                model, key = CourseEnrollment, CourseEnrollment.course_id
            else:
                logger.warning(f"Ignoring status write for unknown entity '{write.entity}'")
                continue

            result = await self.db.execute(
                select(model).where(and_(model.user_id == user_id, key == write.entity_id))
            )
            row = result.scalar_one_or_none()
            if row is None:
                continue

            new_status = EnrollmentStatus(write.status)
            if row.status == new_status:
                continue

            row.status = new_status
            if new_status == EnrollmentStatus.completed and row.completed_at is None:
                row.completed_at = now
            changed += 1

        if changed:
            await self.db.commit()
            logger.info(f"Applied {changed} progress status corrections for user {user_id}")

        return changed

    async def reconcile_user(self, user_id: int) -> ReconciliationResult:
        if not user_id or user_id <= 0:
            raise ValueError("user_id is required")

        courses, paths = await self.load_catalog()
        snapshot = await self.load_snapshot(user_id)

        result = reconcile(user_id, courses, paths, snapshot)

        if result.status_writes and feature_flags.FEATURE_STATUS_WRITEBACK:
            await self.apply_status_writes(user_id, result.status_writes)

        return result

"""
sqlpath/services/enrollment_service.py
Store operations on the learner's progress rows

Course enrollments, module progress and path enrollments. Every function
commits its own change; callers compose them (e.g. gate permit ->
enroll_in_course + log_module_start).
"""
import logging
from datetime import datetime
from typing import List, Optional, Set

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from sqlpath.orm.progress import (
    CourseEnrollment,
    ModuleProgress,
    PathEnrollment,
    EnrollmentStatus,
    ModuleProgressStatus,
)

logger = logging.getLogger(__name__)


def _as_enrollment_status(status) -> Optional[EnrollmentStatus]:
    if status is None or isinstance(status, EnrollmentStatus):
        return status
    return EnrollmentStatus(status)


# ================= READS =================

async def fetch_enrollments(db: AsyncSession, user_id: int) -> List[CourseEnrollment]:
    result = await db.execute(
        select(CourseEnrollment)
        .where(CourseEnrollment.user_id == user_id)
        .order_by(CourseEnrollment.id)
    )
    return list(result.scalars().all())


async def fetch_module_progress(
    db: AsyncSession,
    user_id: int,
    course_id: Optional[int] = None
) -> List[ModuleProgress]:
    query = select(ModuleProgress).where(ModuleProgress.user_id == user_id)
    if course_id is not None:
        query = query.where(ModuleProgress.course_id == course_id)
    result = await db.execute(query.order_by(ModuleProgress.id))
    return list(result.scalars().all())


async def fetch_path_enrollments(db: AsyncSession, user_id: int) -> List[PathEnrollment]:
    result = await db.execute(
        select(PathEnrollment)
        .where(PathEnrollment.user_id == user_id)
        .order_by(PathEnrollment.id)
    )
    return list(result.scalars().all())


async def get_enrollment(db: AsyncSession, user_id: int, course_id: int) -> Optional[CourseEnrollment]:
    result = await db.execute(
        select(CourseEnrollment).where(
            and_(
                CourseEnrollment.user_id == user_id,
                CourseEnrollment.course_id == course_id
            )
        )
    )
    return result.scalar_one_or_none()


async def get_module_progress(db: AsyncSession, user_id: int, module_id: int) -> Optional[ModuleProgress]:
    result = await db.execute(
        select(ModuleProgress).where(
            and_(
                ModuleProgress.user_id == user_id,
                ModuleProgress.module_id == module_id
            )
        )
    )
    return result.scalar_one_or_none()


async def completed_module_ids(db: AsyncSession, user_id: int, course_id: int) -> Set[int]:
    result = await db.execute(
        select(ModuleProgress.module_id).where(
            and_(
                ModuleProgress.user_id == user_id,
                ModuleProgress.course_id == course_id,
                ModuleProgress.status == ModuleProgressStatus.completed
            )
        )
    )
    return set(result.scalars().all())


# ================= COURSE ENROLLMENT =================

async def enroll_in_course(db: AsyncSession, user_id: int, course_id: int) -> CourseEnrollment:
    """Insert an in_progress enrollment, or touch last_accessed of the existing one."""
    now = datetime.utcnow()
    enrollment = await get_enrollment(db, user_id, course_id)

    if enrollment is None:
        enrollment = CourseEnrollment(
            user_id=user_id,
            course_id=course_id,
            status=EnrollmentStatus.in_progress,
            enrolled_at=now,
            last_accessed=now,
        )
        db.add(enrollment)
        logger.info(f"User {user_id} enrolled in course {course_id}")
    else:
        enrollment.last_accessed = now

    await db.commit()
    return enrollment


async def update_enrollment_status(
    db: AsyncSession,
    user_id: int,
    course_id: int,
    status=None
) -> CourseEnrollment:
    """
    Touch last_accessed and optionally set the status.

    Creates the enrollment when missing so a completion is never lost.
    """
    now = datetime.utcnow()
    enrollment = await get_enrollment(db, user_id, course_id)
    if enrollment is None:
        enrollment = CourseEnrollment(
            user_id=user_id,
            course_id=course_id,
            status=EnrollmentStatus.in_progress,
            enrolled_at=now,
        )
        db.add(enrollment)

    enrollment.last_accessed = now
    new_status = _as_enrollment_status(status)
    if new_status is not None:
        enrollment.status = new_status
        if new_status == EnrollmentStatus.completed and enrollment.completed_at is None:
            enrollment.completed_at = now

    await db.commit()
    return enrollment


# ================= PATH ENROLLMENT =================

async def get_path_enrollment(db: AsyncSession, user_id: int, path_id: int) -> Optional[PathEnrollment]:
    result = await db.execute(
        select(PathEnrollment).where(
            and_(
                PathEnrollment.user_id == user_id,
                PathEnrollment.path_id == path_id
            )
        )
    )
    return result.scalar_one_or_none()


async def enroll_in_path(db: AsyncSession, user_id: int, path_id: int) -> PathEnrollment:
    """Explicit opt-in. Enrolling twice returns the existing row."""
    enrollment = await get_path_enrollment(db, user_id, path_id)
    if enrollment is not None:
        return enrollment

    enrollment = PathEnrollment(
        user_id=user_id,
        path_id=path_id,
        status=EnrollmentStatus.in_progress,
        enrolled_at=datetime.utcnow(),
    )
    db.add(enrollment)
    await db.commit()
    logger.info(f"User {user_id} enrolled in learning path {path_id}")
    return enrollment


async def update_path_enrollment_status(
    db: AsyncSession,
    user_id: int,
    path_id: int,
    status
) -> Optional[PathEnrollment]:
    enrollment = await get_path_enrollment(db, user_id, path_id)
    if enrollment is None:
        logger.warning(f"No path enrollment for user {user_id} path {path_id} - status not updated")
        return None

    new_status = _as_enrollment_status(status)
    enrollment.status = new_status
    if new_status == EnrollmentStatus.completed and enrollment.completed_at is None:
        enrollment.completed_at = datetime.utcnow()

    await db.commit()
    return enrollment


# ================= MODULE PROGRESS =================

async def log_module_start(db: AsyncSession, user_id: int, course_id: int, module_id: int) -> ModuleProgress:
    """
    Record that the learner entered a module.

    Existing rows are returned untouched: a completed module is never
    downgraded back to started.
    """
    progress = await get_module_progress(db, user_id, module_id)
    if progress is not None:
        return progress

    progress = ModuleProgress(
        user_id=user_id,
        course_id=course_id,
        module_id=module_id,
        status=ModuleProgressStatus.started,
        xp_earned=0,
    )
    db.add(progress)
    await db.commit()
    logger.info(f"User {user_id} started module {module_id} (course {course_id})")
    return progress


async def log_module_completion(
    db: AsyncSession,
    user_id: int,
    course_id: int,
    module_id: int,
    xp: int = 0
) -> ModuleProgress:
    """Upsert the module to completed. XP only ever goes up."""
    progress = await get_module_progress(db, user_id, module_id)
    if progress is None:
        progress = ModuleProgress(
            user_id=user_id,
            course_id=course_id,
            module_id=module_id,
            xp_earned=0,
        )
        db.add(progress)

    progress.status = ModuleProgressStatus.completed
    progress.xp_earned = max(progress.xp_earned or 0, xp or 0)

    await db.commit()
    logger.info(f"User {user_id} completed module {module_id} (+{xp} xp)")
    return progress

"""
sqlpath/orm/progress.py
Per-user progress records: course enrollments, module progress, path enrollments

Lifecycle:
- CourseEnrollment and the first ModuleProgress row are created together
  when a learner first enters a module of a course.
- ModuleProgress goes started -> completed and is never reverted.
- PathEnrollment exists only after an explicit "enroll in path" action.

Statuses may drift from what the module rows imply; progress reconciliation
computes the corrections and writes them back.
"""
from datetime import datetime
from enum import Enum

from sqlalchemy import Column, Integer, DateTime, ForeignKey, UniqueConstraint, Index, Enum as SQLEnum
from sqlalchemy.orm import relationship

from sqlpath.orm.base import BaseModel


class EnrollmentStatus(str, Enum):
    """Shared by course and path enrollments."""
    in_progress = "in_progress"
    completed = "completed"


class ModuleProgressStatus(str, Enum):
    started = "started"
    completed = "completed"


class CourseEnrollment(BaseModel):
    """
    (user, course) relationship.

    Constraints:
    - Unique: (user_id, course_id)
    """
    __tablename__ = "course_enrollments"

    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    course_id = Column(
        Integer,
        ForeignKey("courses.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    status = Column(
        SQLEnum(EnrollmentStatus),
        nullable=True,
        default=EnrollmentStatus.in_progress
    )

    enrolled_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    last_accessed = Column(DateTime, default=datetime.utcnow, nullable=True, index=True)
    completed_at = Column(DateTime, nullable=True)

    user = relationship("User", back_populates="enrollments")

    __table_args__ = (
        UniqueConstraint("user_id", "course_id", name="uq_course_enrollment_user_course"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "course_id": self.course_id,
            "status": self.status.value if self.status else None,
            "enrolled_at": self.enrolled_at.isoformat() if self.enrolled_at else None,
            "last_accessed": self.last_accessed.isoformat() if self.last_accessed else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


class ModuleProgress(BaseModel):
    """
    (user, module) progress row - ground truth for XP and completion ratios.

    Constraints:
    - Unique: (user_id, module_id)
    - Once completed, never reverted
    """
    __tablename__ = "user_module_progress"

    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    course_id = Column(
        Integer,
        ForeignKey("courses.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    module_id = Column(
        Integer,
        ForeignKey("course_modules.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    status = Column(
        SQLEnum(ModuleProgressStatus),
        nullable=False,
        default=ModuleProgressStatus.started
    )

    xp_earned = Column(Integer, default=0, nullable=False)

    user = relationship("User", back_populates="module_progress")

    __table_args__ = (
        UniqueConstraint("user_id", "module_id", name="uq_module_progress_user_module"),
        Index("ix_module_progress_user_course", "user_id", "course_id"),
    )

    @property
    def is_completed(self) -> bool:
        return self.status == ModuleProgressStatus.completed

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "course_id": self.course_id,
            "module_id": self.module_id,
            "status": self.status.value if self.status else None,
            "xp_earned": self.xp_earned,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class PathEnrollment(BaseModel):
    """
    Explicit opt-in to a learning path.

    Constraints:
    - Unique: (user_id, path_id)
    """
    __tablename__ = "learning_path_enrollments"

    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    path_id = Column(
        Integer,
        ForeignKey("learning_paths.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    status = Column(
        SQLEnum(EnrollmentStatus),
        nullable=True,
        default=EnrollmentStatus.in_progress
    )

    enrolled_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    completed_at = Column(DateTime, nullable=True)

    user = relationship("User", back_populates="path_enrollments")

    __table_args__ = (
        UniqueConstraint("user_id", "path_id", name="uq_path_enrollment_user_path"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "path_id": self.path_id,
            "status": self.status.value if self.status else None,
            "enrolled_at": self.enrolled_at.isoformat() if self.enrolled_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }

"""
sqlpath/orm/course.py
Course and CourseModule - authored, ordered learning content

A course moves through draft -> outline_ready -> generating -> published.
Only published courses are visible to learners. Modules keep a 1-based
sequence_order that is gapless within a course after every edit.
"""
from enum import Enum

from sqlalchemy import Column, Integer, String, Text, ForeignKey, JSON, Enum as SQLEnum, Index
from sqlalchemy.orm import relationship

from sqlpath.orm.base import BaseModel


class CourseStatus(str, Enum):
    draft = "draft"
    outline_ready = "outline_ready"
    generating = "generating"
    published = "published"


class ChallengeType(str, Enum):
    """Module content types. Also the discriminator of the challenge payload."""
    sql = "sql"
    mcq = "mcq"
    debug = "debug"
    completion = "completion"


class Course(BaseModel):
    """
    A multi-module course.

    Fields:
    - title / industry / target_role / skill_level: catalog metadata
    - main_context: business scenario every module is framed in
    - status: authoring lifecycle (see CourseStatus)

    Relationships:
    - modules: ordered by sequence_order, loaded eagerly
    - path_links: memberships in learning paths
    """
    __tablename__ = "courses"

    title = Column(String(255), nullable=False)
    industry = Column(String(100), nullable=True)
    target_role = Column(String(150), nullable=True)
    skill_level = Column(String(50), nullable=True)
    main_context = Column(Text, nullable=True)

    status = Column(
        SQLEnum(CourseStatus),
        nullable=False,
        default=CourseStatus.draft,
        index=True
    )

    modules = relationship(
        "CourseModule",
        back_populates="course",
        cascade="all, delete-orphan",
        order_by="CourseModule.sequence_order",
        lazy="selectin"
    )

    path_links = relationship(
        "LearningPathCourse",
        back_populates="course",
        cascade="all, delete-orphan",
        lazy="noload"
    )

    @property
    def is_published(self) -> bool:
        return self.status == CourseStatus.published

    def to_dict(self, include_modules: bool = True, include_content: bool = True):
        """include_content=False gives the learner-facing outline without challenge bodies."""
        data = {
            "id": self.id,
            "title": self.title,
            "industry": self.industry,
            "target_role": self.target_role,
            "skill_level": self.skill_level,
            "main_context": self.main_context,
            "status": self.status.value if self.status else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_modules:
            data["modules"] = [m.to_dict(include_content=include_content) for m in self.modules]
        return data

    def __repr__(self):
        return f"<Course(id={self.id}, title={self.title}, status={self.status})>"


class CourseModule(BaseModel):
    """
    One lesson of a course.

    challenge_json holds the validated challenge payload and stays NULL
    until content has been generated or pasted in by an admin.
    """
    __tablename__ = "course_modules"

    course_id = Column(
        Integer,
        ForeignKey("courses.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    sequence_order = Column(Integer, nullable=False, default=1)
    title = Column(String(255), nullable=False)
    skill_focus = Column(String(255), nullable=True)
    task_description = Column(Text, nullable=True)
    expected_outcome = Column(Text, nullable=True)
    estimated_time = Column(String(50), nullable=True)

    module_type = Column(
        SQLEnum(ChallengeType),
        nullable=False,
        default=ChallengeType.sql
    )

    challenge_json = Column(JSON, nullable=True)

    course = relationship("Course", back_populates="modules")

    __table_args__ = (
        Index("ix_course_modules_course_order", "course_id", "sequence_order"),
    )

    @property
    def has_content(self) -> bool:
        return bool(self.challenge_json)

    def to_dict(self, include_content: bool = True):
        data = {
            "id": self.id,
            "course_id": self.course_id,
            "sequence_order": self.sequence_order,
            "title": self.title,
            "skill_focus": self.skill_focus,
            "task_description": self.task_description,
            "expected_outcome": self.expected_outcome,
            "estimated_time": self.estimated_time,
            "module_type": self.module_type.value if self.module_type else None,
            "has_content": self.has_content,
        }
        if include_content:
            data["challenge_json"] = self.challenge_json
        return data

    def __repr__(self):
        return f"<CourseModule(id={self.id}, course_id={self.course_id}, order={self.sequence_order})>"

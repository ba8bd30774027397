"""
sqlpath/orm/learning_path.py
LearningPath (bundle) and its ordered course membership
"""
from sqlalchemy import Column, Integer, String, Text, Boolean, ForeignKey, UniqueConstraint, Index
from sqlalchemy.orm import relationship

from sqlpath.orm.base import BaseModel


class LearningPath(BaseModel):
    """
    Ordered collection of courses grouped under one target role.

    Membership goes through LearningPathCourse so a course can appear in
    several paths, each with its own position.
    """
    __tablename__ = "learning_paths"

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    target_role = Column(String(150), nullable=True)
    industry = Column(String(100), nullable=True)
    is_published = Column(Boolean, default=False, nullable=False, index=True)

    course_links = relationship(
        "LearningPathCourse",
        back_populates="path",
        cascade="all, delete-orphan",
        order_by="LearningPathCourse.sequence_order",
        lazy="selectin"
    )

    @property
    def courses(self):
        """Member courses in path order."""
        return [link.course for link in self.course_links if link.course is not None]

    def to_dict(self, include_courses: bool = True):
        data = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "target_role": self.target_role,
            "industry": self.industry,
            "is_published": self.is_published,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_courses:
            data["courses"] = [c.to_dict(include_modules=False) for c in self.courses]
        return data

    def __repr__(self):
        return f"<LearningPath(id={self.id}, title={self.title})>"


class LearningPathCourse(BaseModel):
    """Join row: course `course_id` sits at `sequence_order` inside path `path_id`."""
    __tablename__ = "learning_path_courses"

    path_id = Column(
        Integer,
        ForeignKey("learning_paths.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    course_id = Column(
        Integer,
        ForeignKey("courses.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    sequence_order = Column(Integer, nullable=False, default=1)

    path = relationship("LearningPath", back_populates="course_links")
    course = relationship("Course", back_populates="path_links", lazy="selectin")

    __table_args__ = (
        UniqueConstraint("path_id", "course_id", name="uq_learning_path_course"),
        Index("ix_learning_path_courses_order", "path_id", "sequence_order"),
    )

    def __repr__(self):
        return f"<LearningPathCourse(path={self.path_id}, course={self.course_id}, order={self.sequence_order})>"

"""
sqlpath/orm/reward.py
Achievements and certificates earned by learners
"""
from datetime import datetime

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, UniqueConstraint

from sqlpath.orm.base import Base, BaseModel


class UserAchievement(BaseModel):
    """
    Unlocked achievement.

    Constraints:
    - Unique: (user_id, achievement_key) -> unlocking twice is a no-op
    """
    __tablename__ = "user_achievements"

    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    achievement_key = Column(String(50), nullable=False)
    title = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    unlocked_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "achievement_key", name="uq_user_achievement"),
    )

    def to_dict(self):
        return {
            "achievement_key": self.achievement_key,
            "title": self.title,
            "description": self.description,
            "unlocked_at": self.unlocked_at.isoformat() if self.unlocked_at else None,
        }


class UserCertificate(Base):
    """
    Issued certificate. The id is a uuid because it is printed on the image
    before the row exists.
    """
    __tablename__ = "user_certificates"

    id = Column(String(36), primary_key=True)
    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    course_title = Column(String(255), nullable=False)
    certificate_url = Column(String(1024), nullable=False)
    issued_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "course_title", name="uq_user_certificate_title"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "course_title": self.course_title,
            "certificate_url": self.certificate_url,
            "issued_at": self.issued_at.isoformat() if self.issued_at else None,
        }

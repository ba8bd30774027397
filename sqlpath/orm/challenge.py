"""
sqlpath/orm/challenge.py
Challenge storage: admin library, generated-challenge cache, attempt and XP logs
"""
from sqlalchemy import Column, Integer, String, Text, Boolean, ForeignKey, JSON, UniqueConstraint, Index

from sqlpath.orm.base import BaseModel


class SavedChallenge(BaseModel):
    """Admin-authored standalone challenge; learners see it once published."""
    __tablename__ = "saved_challenges"

    title = Column(String(255), nullable=False)
    topic = Column(String(255), nullable=True)
    difficulty = Column(String(50), nullable=True)
    industry = Column(String(100), nullable=True)
    challenge_json = Column(JSON, nullable=False)
    is_published = Column(Boolean, default=False, nullable=False, index=True)

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "topic": self.topic,
            "difficulty": self.difficulty,
            "industry": self.industry,
            "challenge_json": self.challenge_json,
            "is_published": self.is_published,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class ChallengeInventory(BaseModel):
    """
    Cache of generated practice challenges.

    Constraints:
    - Unique: (topic, industry, difficulty)
    """
    __tablename__ = "challenges_inventory"

    topic = Column(String(255), nullable=False)
    industry = Column(String(100), nullable=False)
    difficulty = Column(String(50), nullable=False)
    challenge_json = Column(JSON, nullable=False)

    __table_args__ = (
        UniqueConstraint("topic", "industry", "difficulty", name="uq_challenge_inventory_key"),
    )


class ChallengeAttempt(BaseModel):
    """Every graded submission, correct or not."""
    __tablename__ = "challenge_attempts"

    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    challenge_ref = Column(String(64), nullable=False)
    query = Column(Text, nullable=False)
    is_correct = Column(Boolean, nullable=False, default=False)
    feedback = Column(Text, nullable=True)
    points_earned = Column(Integer, nullable=False, default=0)
    industry = Column(String(100), nullable=True)
    difficulty = Column(String(50), nullable=True)

    __table_args__ = (
        Index("ix_challenge_attempts_user_context", "user_id", "industry", "difficulty"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "challenge_ref": self.challenge_ref,
            "query": self.query,
            "is_correct": self.is_correct,
            "feedback": self.feedback,
            "points_earned": self.points_earned,
            "industry": self.industry,
            "difficulty": self.difficulty,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class XpEvent(BaseModel):
    """Append-only XP ledger."""
    __tablename__ = "xp_events"

    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    xp = Column(Integer, nullable=False)
    challenge_ref = Column(String(64), nullable=True)

"""
sqlpath/orm/base.py
Declarative base and the id / timestamp columns most tables share

Timestamps are naive UTC.
"""
from datetime import datetime
from sqlalchemy import Column, Integer, DateTime
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class BaseModel(Base):
    """Integer id plus created_at / updated_at. UserCertificate and SubscriptionPrice use their own keys."""
    __abstract__ = True

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

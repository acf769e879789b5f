"""
Base model class for all database models
"""
from sqlalchemy.orm import declarative_base
from sqlalchemy import Column, Integer, DateTime

from origination.utils.helpers import utcnow

Base = declarative_base()


class BaseModel(Base):
    """
    Abstract base model with common fields.
    All database models should inherit from this.
    """
    __abstract__ = True

    id = Column(Integer, primary_key=True, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

"""
SQLAlchemy declarative base and common model utilities.

All SQLAlchemy models should inherit from Base.
"""
from datetime import datetime
from sqlalchemy import DateTime
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models.
    
    Usage:
        from carehub.core.database.base import Base
        
        class Note(Base):
            __tablename__ = "notes"
            
            note_id: Mapped[int] = mapped_column(primary_key=True)
            note: Mapped[str] = mapped_column(Text)
    """
    pass


class TimestampMixin:
    """
    Mixin to add created_at and updated_at timestamps to models.

    Timestamps are naive local datetimes set on the Python side, the same
    convention the month-window billing queries compare against.
    
    Usage:
        class Claim(Base, TimestampMixin):
            __tablename__ = "claims"
            id: Mapped[int] = mapped_column(primary_key=True)
    """
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.now,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.now,
        onupdate=datetime.now,
        nullable=False,
    )

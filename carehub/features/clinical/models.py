"""
Clinical time-tracking records: notes and tasks.

Both carry a `duration` in minutes and a free-text `type` that is expected
to contain a program tag (rpm, ccm or pcm). The billing aggregator sums
durations by tag over a calendar month.
"""
from datetime import date, datetime
from sqlalchemy import String, Integer, ForeignKey, Index, Date, DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column

from carehub.core.database.base import Base


class Note(Base):
    """Clinical note with the minutes spent on it."""
    __tablename__ = "notes"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    patient_id: Mapped[int] = mapped_column(ForeignKey("patients.user_id", ondelete="CASCADE"), nullable=False)
    note: Mapped[str] = mapped_column(Text, nullable=False)
    duration: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    type: Mapped[str | None] = mapped_column(String(50))
    created: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)
    created_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)

    __table_args__ = (
        Index("ix_notes_patient_created", "patient_id", "created"),
    )

    def to_dict(self) -> dict:
        return {
            "note_id": self.id,
            "patient_id": self.patient_id,
            "note": self.note,
            "duration": self.duration,
            "type": self.type,
            "created": self.created,
            "created_by": self.created_by,
        }


class Task(Base):
    """
    Care task assigned for a patient.

    Attributes:
        status / priority: Free-form workflow labels set by the care team
        due_date: Drives the upcoming/overdue split
        duration: Minutes spent, counted by the billing aggregator
        program_type, cpt_code, billing_minutes: Optional billing hints
    """
    __tablename__ = "tasks"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    patient_id: Mapped[int] = mapped_column(ForeignKey("patients.user_id", ondelete="CASCADE"), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    priority: Mapped[str | None] = mapped_column(String(20))
    status: Mapped[str | None] = mapped_column(String(30))
    due_date: Mapped[date | None] = mapped_column(Date, index=True)
    duration: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    type: Mapped[str | None] = mapped_column(String(50))
    frequency: Mapped[str] = mapped_column(String(50), default="NA", nullable=False)
    frequency_type: Mapped[str | None] = mapped_column(String(50))
    program_type: Mapped[str | None] = mapped_column(String(20))
    cpt_code: Mapped[str | None] = mapped_column(String(10))
    billing_minutes: Mapped[int | None] = mapped_column(Integer)
    created: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)
    created_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)

    __table_args__ = (
        Index("ix_tasks_patient_created", "patient_id", "created"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "patient_id": self.patient_id,
            "task_title": self.title,
            "task_description": self.description,
            "priority": self.priority,
            "status": self.status,
            "due_date": self.due_date,
            "duration": self.duration,
            "type": self.type,
            "frequency": self.frequency,
            "frequency_type": self.frequency_type,
            "program_type": self.program_type,
            "cpt_code": self.cpt_code,
            "billing_minutes": self.billing_minutes,
            "created": self.created,
            "created_by": self.created_by,
        }

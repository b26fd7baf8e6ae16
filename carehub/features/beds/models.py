"""
Beds and the patients assigned to them.
"""
from datetime import datetime
from sqlalchemy import String, Integer, ForeignKey, Index, DateTime, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from carehub.core.database.base import Base


ASSIGNMENT_ACTIVE = 1
ASSIGNMENT_RELEASED = 2

ASSIGNMENT_STATUS_LABELS = {ASSIGNMENT_ACTIVE: "Assigned", ASSIGNMENT_RELEASED: "Unassigned"}


class Bed(Base):
    """A bed identified by ward, bed number and room type."""
    __tablename__ = "beds"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    bed_no: Mapped[str] = mapped_column(String(20), nullable=False)
    ward_no: Mapped[str] = mapped_column(String(20), nullable=False)
    room_type: Mapped[str] = mapped_column(String(30), nullable=False)
    created: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)

    __table_args__ = (
        UniqueConstraint("ward_no", "bed_no", "room_type", name="uq_beds_location"),
    )


class BedAssignment(Base):
    """
    A patient's stay in a bed.

    Status 1 is the active assignment; 2 means the bed was released. A patient
    holds at most one active assignment and a bed at most one active patient.
    """
    __tablename__ = "bed_assignments"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    bed_id: Mapped[int] = mapped_column(ForeignKey("beds.id"), nullable=False)
    patient_id: Mapped[int] = mapped_column(ForeignKey("patients.user_id", ondelete="CASCADE"), nullable=False)
    status: Mapped[int] = mapped_column(Integer, default=ASSIGNMENT_ACTIVE, nullable=False)
    assigned_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    assigned_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)
    unassigned_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    unassigned_at: Mapped[datetime | None] = mapped_column(DateTime)

    bed: Mapped[Bed] = relationship(lazy="selectin")

    __table_args__ = (
        Index("ix_bed_assignments_patient_status", "patient_id", "status"),
        Index("ix_bed_assignments_bed_status", "bed_id", "status"),
    )

"""
CPT code catalogue and per-patient CPT billing entries.
"""
from datetime import datetime
from decimal import Decimal
from sqlalchemy import String, Integer, Numeric, ForeignKey, Index, DateTime
from sqlalchemy.orm import Mapped, mapped_column, relationship

from carehub.core.database.base import Base


class CptCode(Base):
    """A billable CPT code and its price."""
    __tablename__ = "cpt_codes"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(10), unique=True, nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(String(255))
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0.00"), nullable=False)

    def __repr__(self) -> str:
        return f"<CptCode(code={self.code!r}, price={self.price})>"


class CptBilling(Base):
    """
    One CPT charge recorded against a patient.

    `code_units` may be null; the aggregator counts null, zero or negative
    units as a single unit.
    """
    __tablename__ = "cpt_billing"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    patient_id: Mapped[int] = mapped_column(ForeignKey("patients.user_id", ondelete="CASCADE"), nullable=False)
    cpt_code_id: Mapped[int] = mapped_column(ForeignKey("cpt_codes.id"), nullable=False)
    code_units: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)

    cpt_code: Mapped[CptCode] = relationship(lazy="selectin")

    __table_args__ = (
        Index("ix_cpt_billing_patient_created", "patient_id", "created"),
    )

"""
Patient account models: claims with their line items, comments and activity,
patient payments, and billing statements.
"""
from datetime import date, datetime
from decimal import Decimal
from sqlalchemy import String, Integer, Numeric, ForeignKey, Index, Date, DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from carehub.core.database.base import Base, TimestampMixin


CLAIM_DRAFT = "draft"
CLAIM_SUBMITTED = "submitted"
CLAIM_PAID = "paid"
CLAIM_DENIED = "denied"
CLAIM_VOIDED = "voided"
CLAIM_CORRECTED = "corrected"

CLAIM_STATUSES = (CLAIM_DRAFT, CLAIM_SUBMITTED, CLAIM_PAID, CLAIM_DENIED, CLAIM_VOIDED, CLAIM_CORRECTED)

STATEMENT_GENERATED = "generated"
STATEMENT_SENT = "sent"

PAYMENT_ADJUSTMENT = "adjustment"


class Claim(Base, TimestampMixin):
    """
    Insurance claim for one date of service.

    Attributes:
        claim_number: Human readable claim identifier
        status: draft, submitted, paid, denied, voided or corrected
        total_amount: Sum of the line item charges
        submitted_date: Set when the claim leaves draft
        appeal_deadline: Last day to appeal a denial
    """
    __tablename__ = "claims"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    claim_number: Mapped[str] = mapped_column(String(40), unique=True, nullable=False)
    patient_id: Mapped[int] = mapped_column(ForeignKey("patients.user_id", ondelete="CASCADE"), nullable=False, index=True)
    provider_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    payer_name: Mapped[str | None] = mapped_column(String(200))
    service_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=CLAIM_DRAFT, nullable=False, index=True)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0.00"), nullable=False)
    submitted_date: Mapped[date | None] = mapped_column(Date)
    appeal_deadline: Mapped[date | None] = mapped_column(Date)
    created_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)

    line_items: Mapped[list["ClaimLineItem"]] = relationship(
        back_populates="claim", lazy="selectin", order_by="ClaimLineItem.id", cascade="all, delete-orphan"
    )
    provider: Mapped["User"] = relationship("User", foreign_keys=[provider_id], lazy="selectin")  # type: ignore

    __table_args__ = (
        Index("ix_claims_patient_service", "patient_id", "service_date"),
    )

    def __repr__(self) -> str:
        return f"<Claim(id={self.id}, number={self.claim_number!r}, status={self.status!r})>"


class ClaimLineItem(Base):
    """One billed procedure on a claim."""
    __tablename__ = "claim_line_items"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    claim_id: Mapped[int] = mapped_column(ForeignKey("claims.id", ondelete="CASCADE"), nullable=False, index=True)
    cpt_code: Mapped[str] = mapped_column(String(10), nullable=False)
    description: Mapped[str | None] = mapped_column(String(255))
    units: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    unit_charge: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    total_charge: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    paid_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0.00"), nullable=False)
    adjustment_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0.00"), nullable=False)
    patient_responsibility: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0.00"), nullable=False)

    claim: Mapped[Claim] = relationship(back_populates="line_items")


class ClaimComment(Base):
    __tablename__ = "claim_comments"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    claim_id: Mapped[int] = mapped_column(ForeignKey("claims.id", ondelete="CASCADE"), nullable=False, index=True)
    comment_text: Mapped[str] = mapped_column(Text, nullable=False)
    comment_type: Mapped[str] = mapped_column(String(30), default="note", nullable=False)
    created_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)


class ClaimActivity(Base):
    """Append-only history of what happened to a claim."""
    __tablename__ = "claim_activity_log"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    claim_id: Mapped[int] = mapped_column(ForeignKey("claims.id", ondelete="CASCADE"), nullable=False, index=True)
    activity_type: Mapped[str] = mapped_column(String(30), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    performed_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    performed_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)


class PatientPayment(Base):
    """
    Money received from or credited to a patient.

    `payment_type` "adjustment" records a write-off rather than cash received.
    """
    __tablename__ = "patient_payments"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    patient_id: Mapped[int] = mapped_column(ForeignKey("patients.user_id", ondelete="CASCADE"), nullable=False, index=True)
    claim_id: Mapped[int | None] = mapped_column(ForeignKey("claims.id"), nullable=True)
    payment_type: Mapped[str] = mapped_column(String(30), nullable=False)
    payment_method: Mapped[str] = mapped_column(String(30), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    reference_number: Mapped[str | None] = mapped_column(String(100))
    payer_name: Mapped[str | None] = mapped_column(String(200))
    check_number: Mapped[str | None] = mapped_column(String(50))
    transaction_id: Mapped[str | None] = mapped_column(String(100))
    applied_to_service_date: Mapped[date | None] = mapped_column(Date)
    notes: Mapped[str | None] = mapped_column(Text)
    created_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)


class PatientStatement(Base):
    """
    Billing statement sent to a patient.

    Totals are a snapshot of the account summary when the statement was generated.
    """
    __tablename__ = "patient_statements"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    statement_number: Mapped[str] = mapped_column(String(40), unique=True, nullable=False, index=True)
    patient_id: Mapped[int] = mapped_column(ForeignKey("patients.user_id", ondelete="CASCADE"), nullable=False, index=True)
    statement_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    total_charges: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    total_payments: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    total_adjustments: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    balance_due: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    include_services_from: Mapped[date] = mapped_column(Date, nullable=False)
    include_services_to: Mapped[date] = mapped_column(Date, nullable=False)
    additional_message: Mapped[str | None] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(20), default=STATEMENT_GENERATED, nullable=False)
    sent_date: Mapped[date | None] = mapped_column(Date)
    sent_method: Mapped[str | None] = mapped_column(String(20))
    created_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)

    line_items: Mapped[list["StatementLineItem"]] = relationship(
        back_populates="statement", lazy="selectin", order_by="StatementLineItem.service_date.desc()",
        cascade="all, delete-orphan",
    )


class StatementLineItem(Base):
    """Charges for one claim listed on a statement."""
    __tablename__ = "statement_line_items"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    statement_id: Mapped[int] = mapped_column(ForeignKey("patient_statements.id", ondelete="CASCADE"), nullable=False, index=True)
    claim_id: Mapped[int | None] = mapped_column(ForeignKey("claims.id"), nullable=True)
    service_date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    charges: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    payments: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    adjustments: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    balance: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    statement: Mapped[PatientStatement] = relationship(back_populates="line_items")

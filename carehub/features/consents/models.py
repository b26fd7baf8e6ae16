"""
Consent links sent to patients and the signed consent documents they produce.
"""
from datetime import datetime
from sqlalchemy import String, Integer, ForeignKey, DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column

from carehub.core.database.base import Base


TOKEN_OPEN = 0
TOKEN_CONSUMED = 1

CONSENT_NOT_RECEIVED = 0
CONSENT_RECEIVED = 1

JOB_PENDING = "pending"
JOB_RENDERING = "rendering"
JOB_COMPLETED = "completed"
JOB_FAILED = "failed"


class ConsentToken(Base):
    """
    Single-use link token emailed to a patient.

    The token is open (status 0) until the form is submitted; the link
    expires a fixed number of hours after `created_at`.
    """
    __tablename__ = "patient_consent_tokens"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    patient_id: Mapped[int] = mapped_column(ForeignKey("patients.user_id", ondelete="CASCADE"), nullable=False, index=True)
    consent_token: Mapped[str] = mapped_column(String(36), unique=True, nullable=False, index=True)
    status: Mapped[int] = mapped_column(Integer, default=TOKEN_OPEN, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)
    consumed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)


class PatientConsent(Base):
    """
    A consent document on file for a patient.

    Documents from the online form are rendered in the background; `job_status`
    tracks that work and `document_url` is set once the upload succeeds.
    Uploaded PDFs are recorded as already completed.
    """
    __tablename__ = "patient_consents"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    patient_id: Mapped[int] = mapped_column(ForeignKey("patients.user_id", ondelete="CASCADE"), nullable=False, index=True)
    consent_token: Mapped[str | None] = mapped_column(String(36), index=True)
    consent_type: Mapped[str] = mapped_column(String(50), default="rpm", nullable=False)
    status: Mapped[int] = mapped_column(Integer, default=CONSENT_NOT_RECEIVED, nullable=False)
    document_url: Mapped[str | None] = mapped_column(String(500))
    local_path: Mapped[str | None] = mapped_column(String(500))
    received: Mapped[datetime | None] = mapped_column(DateTime)
    job_status: Mapped[str] = mapped_column(String(20), default=JOB_PENDING, nullable=False)
    job_error: Mapped[str | None] = mapped_column(Text)
    created: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)
    updated: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, onupdate=datetime.now, nullable=False)

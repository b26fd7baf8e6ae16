"""
Patient profile and clinical child records (allergies, insurance,
medications, diagnoses, vitals).
"""
from datetime import date, datetime
from decimal import Decimal
from sqlalchemy import String, Boolean, Integer, Numeric, ForeignKey, Index, Date, DateTime, Text, JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship

from carehub.core.database.base import Base, TimestampMixin


PATIENT_STATUS_LABELS = {1: "Critical", 2: "Abnormal", 3: "Normal"}

PROGRAM_RPM = 1
PROGRAM_CCM = 2
PROGRAM_PCM = 3
PROGRAM_NAMES = {PROGRAM_RPM: "RPM", PROGRAM_CCM: "CCM", PROGRAM_PCM: "PCM"}

ALLERGY_CATEGORIES = {1: "food", 2: "medication", 3: "environment", 4: "biological"}


def status_label(value: int | None) -> str:
    """Map the numeric patient status to its dashboard label."""
    return PATIENT_STATUS_LABELS.get(value, "NA")


def program_names(service_type: list | None) -> list[str]:
    """Names of the programs a patient is enrolled in, in stored order."""
    names = []
    for code in service_type or []:
        try:
            name = PROGRAM_NAMES.get(int(code))
        except (TypeError, ValueError):
            name = None
        if name:
            names.append(name)
    return names


class Patient(Base, TimestampMixin):
    """
    Patient demographics and care-team links.

    The primary key is the patient's user id, which is the `patientId`
    used throughout the API.

    Attributes:
        user_id: Owning User row (login identity)
        service_type: JSON list of enrolled programs (1=RPM, 2=CCM, 3=PCM)
        status: 1=Critical, 2=Abnormal, 3=Normal
        physician_id / nurse_id: Care team users
        height .. temperature: Snapshot of the latest vitals
        ssn_encrypted / ssn_hash: Encrypted SSN and its salted hash for lookup
        device_imei: Remote-monitoring device registered for the patient
    """
    __tablename__ = "patients"

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    organization_id: Mapped[int | None] = mapped_column(nullable=True, index=True)
    practice_id: Mapped[int | None] = mapped_column(ForeignKey("provider_practices.id"), nullable=True)
    physician_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True, index=True)
    nurse_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)

    # Demographics
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    middle_name: Mapped[str | None] = mapped_column(String(100))
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    suffix: Mapped[str | None] = mapped_column(String(20))
    pronouns: Mapped[str | None] = mapped_column(String(30))
    email: Mapped[str | None] = mapped_column(String(255), index=True)
    phone: Mapped[str | None] = mapped_column(String(30), index=True)
    alternate_phone: Mapped[str | None] = mapped_column(String(30))
    gender: Mapped[str | None] = mapped_column(String(20))
    dob: Mapped[date | None] = mapped_column(Date)
    ethnicity: Mapped[str | None] = mapped_column(String(50))
    race: Mapped[str | None] = mapped_column(String(50))
    language_preference: Mapped[str | None] = mapped_column(String(50))
    preferred_communication: Mapped[str | None] = mapped_column(String(30))
    marital_status: Mapped[str | None] = mapped_column(String(30))
    disability_status: Mapped[str | None] = mapped_column(String(100))
    accessibility_needs: Mapped[str | None] = mapped_column(String(255))
    interpreter_needed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    wheelchair_access: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    last_visit: Mapped[date | None] = mapped_column(Date)

    # Address
    address_line: Mapped[str | None] = mapped_column(String(255))
    address_line_2: Mapped[str | None] = mapped_column(String(255))
    city: Mapped[str | None] = mapped_column(String(100))
    state: Mapped[str | None] = mapped_column(String(50))
    country: Mapped[str | None] = mapped_column(String(50))
    zip: Mapped[str | None] = mapped_column(String(20))

    # Emergency contact
    emergency_contact: Mapped[str | None] = mapped_column(String(255))
    emergency_relationship: Mapped[str | None] = mapped_column(String(50))
    emergency_phone: Mapped[str | None] = mapped_column(String(30))
    emergency_email: Mapped[str | None] = mapped_column(String(255))

    # Programs and triage
    service_type: Mapped[list | None] = mapped_column(JSON, nullable=True)
    status: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    patient_condition: Mapped[str | None] = mapped_column(String(255))

    # Latest vitals snapshot
    height: Mapped[Decimal | None] = mapped_column(Numeric(6, 2))
    weight: Mapped[Decimal | None] = mapped_column(Numeric(6, 2))
    bmi: Mapped[Decimal | None] = mapped_column(Numeric(5, 2))
    blood_pressure: Mapped[str | None] = mapped_column(String(20))
    heart_rate: Mapped[int | None] = mapped_column(Integer)
    temperature: Mapped[Decimal | None] = mapped_column(Numeric(5, 2))

    # Sensitive identifiers
    ssn_encrypted: Mapped[str | None] = mapped_column(Text)
    ssn_hash: Mapped[str | None] = mapped_column(String(64), index=True)
    driver_license: Mapped[str | None] = mapped_column(String(50))
    passport_number: Mapped[str | None] = mapped_column(String(50))

    device_imei: Mapped[str | None] = mapped_column(String(32))

    user: Mapped["User"] = relationship("User", foreign_keys=[user_id], lazy="selectin")  # type: ignore
    physician: Mapped["User"] = relationship("User", foreign_keys=[physician_id], lazy="selectin")  # type: ignore
    practice: Mapped["ProviderPractice"] = relationship("ProviderPractice", lazy="selectin")  # type: ignore

    __table_args__ = (
        Index("ix_patients_name", "last_name", "first_name"),
    )

    @property
    def full_name(self) -> str:
        parts = [self.first_name, self.middle_name, self.last_name]
        return " ".join(p for p in parts if p)

    def __repr__(self) -> str:
        return f"<Patient(user_id={self.user_id}, name='{self.first_name} {self.last_name}')>"


class Allergy(Base):
    """Allergy recorded for a patient. `category` uses ALLERGY_CATEGORIES."""
    __tablename__ = "allergies"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    patient_id: Mapped[int] = mapped_column(ForeignKey("patients.user_id", ondelete="CASCADE"), nullable=False, index=True)
    category: Mapped[int | None] = mapped_column(Integer)
    allergen: Mapped[str] = mapped_column(String(255), nullable=False)
    reaction: Mapped[str | None] = mapped_column(String(255))
    created: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)


class PatientInsurance(Base, TimestampMixin):
    """Insurance policy on file for a patient."""
    __tablename__ = "patient_insurances"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    patient_id: Mapped[int] = mapped_column(ForeignKey("patients.user_id", ondelete="CASCADE"), nullable=False, index=True)
    policy_number: Mapped[str | None] = mapped_column(String(50))
    group_number: Mapped[str | None] = mapped_column(String(50))
    company: Mapped[str | None] = mapped_column(String(200))
    plan: Mapped[str | None] = mapped_column(String(200))
    insured_relationship: Mapped[str | None] = mapped_column(String(50))
    expiration_date: Mapped[date | None] = mapped_column(Date)
    type: Mapped[str | None] = mapped_column(String(30))
    effective_date: Mapped[date | None] = mapped_column(Date)
    insured_name: Mapped[str | None] = mapped_column(String(200))
    insured_gender: Mapped[str | None] = mapped_column(String(20))
    insured_dob: Mapped[date | None] = mapped_column(Date)
    insured_address: Mapped[str | None] = mapped_column(String(255))
    insured_phone: Mapped[str | None] = mapped_column(String(30))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class PatientMedication(Base, TimestampMixin):
    """Medication on a patient's current list."""
    __tablename__ = "patient_medications"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    patient_id: Mapped[int] = mapped_column(ForeignKey("patients.user_id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    dosage: Mapped[str | None] = mapped_column(String(100))
    frequency: Mapped[str | None] = mapped_column(String(100))
    prescribed_by: Mapped[str | None] = mapped_column(String(200))
    start_date: Mapped[date | None] = mapped_column(Date)
    end_date: Mapped[date | None] = mapped_column(Date)
    status: Mapped[str] = mapped_column(String(20), default="active", nullable=False)
    refills: Mapped[int | None] = mapped_column(Integer)


class PatientDiagnosis(Base, TimestampMixin):
    """ICD-10 diagnosis, tagged with the program report it belongs to."""
    __tablename__ = "patient_diagnoses"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    patient_id: Mapped[int] = mapped_column(ForeignKey("patients.user_id", ondelete="CASCADE"), nullable=False, index=True)
    diagnosis_date: Mapped[date | None] = mapped_column("date", Date)
    icd10: Mapped[str] = mapped_column(String(10), nullable=False)
    diagnosis: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str | None] = mapped_column(String(20))
    type: Mapped[str | None] = mapped_column(String(20), index=True)
    created_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)


class PatientVitals(Base):
    """One vitals reading."""
    __tablename__ = "patient_vitals"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    patient_id: Mapped[int] = mapped_column(ForeignKey("patients.user_id", ondelete="CASCADE"), nullable=False, index=True)
    height: Mapped[Decimal | None] = mapped_column(Numeric(6, 2))
    weight: Mapped[Decimal | None] = mapped_column(Numeric(6, 2))
    bmi: Mapped[Decimal | None] = mapped_column(Numeric(5, 2))
    blood_pressure: Mapped[str | None] = mapped_column(String(20))
    heart_rate: Mapped[int | None] = mapped_column(Integer)
    temperature: Mapped[Decimal | None] = mapped_column(Numeric(5, 2))
    created: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)

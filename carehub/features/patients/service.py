"""
Patient lookups and serialization shared by the patient, billing and
consent routes.
"""
from datetime import date
from fastapi import HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from carehub.features.users.models import User, ROLE_ADMIN, ROLE_PROVIDER, ROLE_STAFF, ROLE_PATIENT
from carehub.features.patients.models import (
    Patient, Allergy, PatientInsurance, PatientMedication, PatientVitals, status_label,
)


CARE_TEAM_ROLES = (ROLE_ADMIN, ROLE_PROVIDER, ROLE_STAFF)


async def get_patient(db: AsyncSession, patient_id: int) -> Patient | None:
    return await db.scalar(select(Patient).where(Patient.user_id == patient_id))


async def get_patient_or_404(db: AsyncSession, patient_id: int) -> Patient:
    patient = await get_patient(db, patient_id)
    if patient is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Patient not found")
    return patient


def resolve_patient_id(user: User, patient_id: int | None) -> int:
    """
    Decide whose record the caller may read.

    Care-team users name the patient explicitly; patients always get their
    own record regardless of the parameter.
    """
    if user.role in CARE_TEAM_ROLES:
        if patient_id is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="patientId is required for provider",
            )
        return patient_id
    if user.role == ROLE_PATIENT:
        return user.id
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Unauthorized role")


def ensure_own_profile(user: User, patient_id: int) -> None:
    """Patients may only touch their own profile."""
    if user.role == ROLE_PATIENT and user.id != patient_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied: Can only access own profile",
        )


def scope_to_care_team(query, user: User):
    """Restrict a Patient query to the provider's own panel."""
    if user.role == ROLE_PROVIDER:
        query = query.where(Patient.physician_id == user.id)
    return query


def age_on(dob: date | None, today: date | None = None) -> int | None:
    if dob is None:
        return None
    today = today or date.today()
    return today.year - dob.year - ((today.month, today.day) < (dob.month, dob.day))


def profile_fields(patient: Patient) -> dict:
    """Demographic fields in the shape the dashboard reads them."""
    return {
        "patientId": patient.user_id,
        "firstName": patient.first_name,
        "middleName": patient.middle_name,
        "lastName": patient.last_name,
        "email": patient.email or (patient.user.email if patient.user else None),
        "phone": patient.phone,
        "gender": patient.gender,
        "status": status_label(patient.status),
        "addressLine1": patient.address_line,
        "addressLine2": patient.address_line_2,
        "city": patient.city,
        "state": patient.state,
        "country": patient.country,
        "zipCode": patient.zip,
        "birthDate": patient.dob,
        "lastVisit": patient.last_visit,
        "emergencyContact": patient.emergency_contact,
        "ethnicity": patient.ethnicity,
        "patientService": patient.service_type or [],
        "created": patient.user.created_at if patient.user else patient.created_at,
    }


def physician_fields(patient: Patient) -> dict:
    practice = patient.practice
    return {
        "physicianId": patient.physician_id,
        "physicianName": patient.physician.full_name if patient.physician else None,
        "physicianState": practice.state if practice else None,
        "physicianCity": practice.city if practice else None,
        "physicianCountry": practice.country if practice else None,
    }


async def latest_vitals(db: AsyncSession, patient_id: int) -> PatientVitals | None:
    return await db.scalar(
        select(PatientVitals)
        .where(PatientVitals.patient_id == patient_id)
        .order_by(PatientVitals.id.desc())
        .limit(1)
    )


async def clinical_counts(db: AsyncSession, patient_id: int) -> tuple[int, int, int]:
    """Allergies, active medications and active insurance policies on file."""
    allergies = await db.scalar(
        select(func.count()).select_from(Allergy).where(Allergy.patient_id == patient_id)
    )
    medications = await db.scalar(
        select(func.count()).select_from(PatientMedication).where(
            PatientMedication.patient_id == patient_id,
            PatientMedication.status == "active",
        )
    )
    insurances = await db.scalar(
        select(func.count()).select_from(PatientInsurance).where(
            PatientInsurance.patient_id == patient_id,
            PatientInsurance.is_active.is_(True),
        )
    )
    return allergies or 0, medications or 0, insurances or 0


def normalize_phone(phone: str) -> str:
    """Strip a leading +91, +1 or 0 so the rest can be suffix-matched."""
    for prefix in ("+91", "+1", "0"):
        if phone.startswith(prefix):
            return phone[len(prefix):]
    return phone

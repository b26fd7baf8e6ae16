"""
Patient record API routes.
"""
from math import ceil
from typing import Annotated
from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status
from sqlalchemy import String, case, cast, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from carehub.core.database.engine import get_db
from carehub.core.responses import ok
from carehub.utils import get_logger
from carehub.features.audit.service import create_audit_log
from carehub.features.users.auth import hash_password
from carehub.features.users.dependencies import get_care_team_user, get_current_user
from carehub.features.users.models import User, ROLE_ADMIN, ROLE_PATIENT, ROLE_PROVIDER, ROLE_STAFF
from carehub.features.billing.codes import RPM_ENROLLMENT_CODE, get_or_create_cpt_code
from carehub.features.billing.models import CptBilling
from carehub.features.clinical.models import Note, Task
from carehub.features.patients.completeness import completeness_score
from carehub.features.patients.models import (
    Patient, Allergy, PatientInsurance, PatientMedication, PatientDiagnosis, PatientVitals,
    ALLERGY_CATEGORIES, PROGRAM_RPM, program_names, status_label,
)
from carehub.features.patients.phi import PhiCipher, get_phi_cipher, mask_ssn
from carehub.features.patients.schemas import (
    PatientCreate, PatientUpdate, EnhancedProfileUpdate, DiagnosisIn, VitalsIn,
    AllergyCreate, InsuranceCreate, MedicationCreate,
    AllergyOut, InsuranceOut, MedicationOut, DiagnosisOut, PatientSearchResult,
)
from carehub.features.patients.service import (
    age_on, clinical_counts, ensure_own_profile, get_patient, get_patient_or_404,
    latest_vitals, normalize_phone, profile_fields, resolve_patient_id, scope_to_care_team,
)

log = get_logger(__name__)

router = APIRouter()

ORDERABLE_COLUMNS = {
    "firstname": Patient.first_name,
    "lastname": Patient.last_name,
    "dob": Patient.dob,
    "gender": Patient.gender,
    "ethnicity": Patient.ethnicity,
    "last_visit": Patient.last_visit,
    "height": Patient.height,
    "weight": Patient.weight,
    "bmi": Patient.bmi,
    "heart_rate": Patient.heart_rate,
    "created": Patient.created_at,
    "patientId": Patient.user_id,
}

SENSITIVE_DATA_ROLES = (ROLE_ADMIN, ROLE_STAFF)

VITAL_FIELDS = ("height", "weight", "bmi", "blood_pressure", "heart_rate", "temperature")


def allergy_dict(allergy: Allergy) -> dict:
    return AllergyOut(
        id=allergy.id,
        category=ALLERGY_CATEGORIES.get(allergy.category),
        allergen=allergy.allergen,
        reaction=allergy.reaction,
        created=allergy.created,
    ).model_dump(by_alias=True)


def dump(schema, rows) -> list[dict]:
    return [schema.model_validate(row).model_dump(by_alias=True) for row in rows]


# ---------------------------------------------------------------------------
# Create / read / update
# ---------------------------------------------------------------------------

@router.post("/addPatient", status_code=status.HTTP_201_CREATED)
async def add_patient(
    patient_data: PatientCreate,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_care_team_user)],
):
    """
    Register a patient with all of their intake data.

    The login user, the patient profile and every child record are written
    in one transaction; if any insert fails nothing is kept.

    Raises:
        HTTPException: 409 if a user with this email already exists.
    """
    existing = await db.scalar(select(User.id).where(User.email == patient_data.email))
    if existing:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="email already exists")

    user = User(
        email=patient_data.email,
        password_hash=hash_password(f"{patient_data.first_name}@hub"),
        first_name=patient_data.first_name,
        last_name=patient_data.last_name,
        phone=patient_data.phone,
        role=ROLE_PATIENT,
        created_by_id=current_user.id,
    )
    db.add(user)
    await db.flush()

    physician_id = patient_data.physician_id
    if physician_id is None and current_user.role == ROLE_PROVIDER:
        physician_id = current_user.id

    patient = Patient(
        user_id=user.id,
        organization_id=patient_data.organization_id,
        practice_id=patient_data.practice_id,
        physician_id=physician_id,
        nurse_id=patient_data.nurse_id,
        first_name=patient_data.first_name,
        middle_name=patient_data.middle_name,
        last_name=patient_data.last_name,
        email=patient_data.email,
        phone=patient_data.phone,
        gender=patient_data.gender,
        dob=patient_data.birth_date,
        ethnicity=patient_data.ethnicity,
        last_visit=patient_data.last_visit,
        emergency_contact=patient_data.emergency_contact,
        address_line=patient_data.address_line1,
        address_line_2=patient_data.address_line2,
        city=patient_data.city,
        state=patient_data.state,
        country=patient_data.country,
        zip=patient_data.zip_code,
        service_type=patient_data.patient_service,
        status=patient_data.status,
        device_imei=patient_data.device_imei,
        **{field: getattr(patient_data, field) for field in VITAL_FIELDS},
    )
    db.add(patient)
    await db.flush()

    for allergy in patient_data.allergies:
        db.add(Allergy(patient_id=user.id, **allergy.model_dump()))

    for insurance in patient_data.insurance:
        values = insurance.model_dump(exclude={"relationship"})
        db.add(PatientInsurance(patient_id=user.id, insured_relationship=insurance.relationship, **values))

    for medication in patient_data.current_medications:
        db.add(PatientMedication(patient_id=user.id, **medication.model_dump()))

    for diagnosis in patient_data.diagnosis:
        db.add(PatientDiagnosis(patient_id=user.id, created_by=current_user.id, **diagnosis.model_dump()))

    for note in patient_data.notes:
        db.add(Note(patient_id=user.id, created_by=current_user.id, **note.model_dump()))

    db.add(PatientVitals(
        patient_id=user.id,
        height=patient_data.height or 0,
        weight=patient_data.weight or 0,
        bmi=patient_data.bmi or 0,
        blood_pressure=patient_data.blood_pressure or "0/0",
        heart_rate=patient_data.heart_rate or 0,
        temperature=patient_data.temperature or 0,
    ))

    if PROGRAM_RPM in patient_data.patient_service:
        cpt = await get_or_create_cpt_code(db, RPM_ENROLLMENT_CODE)
        db.add(CptBilling(patient_id=user.id, cpt_code_id=cpt.id))

    await create_audit_log(
        db, current_user.id, "CREATE", "PATIENT", user.id,
        description=f"Patient created with patientId: {user.id} - {patient_data.first_name} {patient_data.last_name}",
        request=request,
    )
    await db.commit()
    log.info("Patient %s registered by user %s", user.id, current_user.id)
    return ok({"patientId": user.id}, "User registered successfully")


@router.get("/getPatientDataById")
async def get_patient_data_by_id(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
    patient_id: Annotated[int | None, Query(alias="patientId")] = None,
):
    """
    Full patient record: profile, child records, notes, tasks and latest vitals.

    Care-team users must pass `patientId`; a patient always gets their own record.
    """
    patient_id = resolve_patient_id(current_user, patient_id)
    patient = await get_patient(db, patient_id)
    if patient is None:
        return {"success": False, "message": "Patient data not found"}

    allergies = (await db.scalars(
        select(Allergy).where(Allergy.patient_id == patient_id).order_by(Allergy.id)
    )).all()
    insurances = (await db.scalars(
        select(PatientInsurance).where(PatientInsurance.patient_id == patient_id).order_by(PatientInsurance.id)
    )).all()
    medications = (await db.scalars(
        select(PatientMedication).where(PatientMedication.patient_id == patient_id)
        .order_by(PatientMedication.id.desc())
    )).all()
    diagnoses = (await db.scalars(
        select(PatientDiagnosis).where(PatientDiagnosis.patient_id == patient_id)
        .order_by(PatientDiagnosis.id.desc())
    )).all()
    notes = (await db.scalars(
        select(Note).where(Note.patient_id == patient_id).order_by(Note.id.desc())
    )).all()
    tasks = (await db.scalars(
        select(Task).where(Task.patient_id == patient_id).order_by(Task.id.desc())
    )).all()
    vitals = await latest_vitals(db, patient_id)

    data = profile_fields(patient)
    data.update({
        "allergies": [allergy_dict(a) for a in allergies],
        "insurance": dump(InsuranceOut, insurances),
        "currentMedications": dump(MedicationOut, medications),
        "diagnosis": dump(DiagnosisOut, diagnoses),
        "notes": [n.to_dict() for n in notes],
        "tasks": [t.to_dict() for t in tasks],
        "createdBy": notes[0].created_by if notes else None,
        "height": vitals.height if vitals else None,
        "weight": vitals.weight if vitals else None,
        "bmi": vitals.bmi if vitals else None,
        "bloodPressure": vitals.blood_pressure if vitals else None,
        "heartRate": vitals.heart_rate if vitals else None,
        "temperature": vitals.temperature if vitals else None,
    })
    return ok(data, "Patient data fetched successfully")


@router.post("/editPatientDataById")
async def edit_patient_data_by_id(
    update: PatientUpdate,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_care_team_user)],
):
    """Update the demographic fields present in the request."""
    patient = await get_patient_or_404(db, update.patient_id)

    columns = {
        "birth_date": "dob",
        "address_line1": "address_line",
        "address_line2": "address_line_2",
        "zip_code": "zip",
        "patient_service": "service_type",
    }
    changes = update.model_dump(exclude_unset=True, exclude={"patient_id"})
    for field, value in changes.items():
        setattr(patient, columns.get(field, field), value)

    if "first_name" in changes or "last_name" in changes:
        patient.user.first_name = patient.first_name
        patient.user.last_name = patient.last_name

    await create_audit_log(
        db, current_user.id, "UPDATE", "PATIENT", patient.user_id,
        description=f"Patient updated: {patient.full_name}",
        details={"fields": sorted(changes)},
        request=request,
    )
    await db.commit()
    return ok(message="Patient updated successfully")


# ---------------------------------------------------------------------------
# Listings and lookups
# ---------------------------------------------------------------------------

@router.get("/getAllPatients")
async def get_all_patients(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_care_team_user)],
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=500)] = 10,
    order: str = "DESC",
    order_by: Annotated[str, Query(alias="orderBy")] = "patientId",
    searchterm: Annotated[str | None, Header()] = None,
    search: str | None = None,
):
    """
    Paginated patient list for the caller's panel.

    The search term may come from the `searchterm` header or the `search`
    query parameter and matches first, middle or last name.
    """
    term = search or searchterm
    query = scope_to_care_team(select(Patient), current_user)
    if term:
        pattern = f"%{term}%"
        query = query.where(or_(
            Patient.first_name.ilike(pattern),
            Patient.middle_name.ilike(pattern),
            Patient.last_name.ilike(pattern),
        ))

    total = await db.scalar(select(func.count()).select_from(query.subquery()))

    column = ORDERABLE_COLUMNS.get(order_by, Patient.last_visit)
    column = column.asc() if order.upper() == "ASC" else column.desc()
    patients = (await db.scalars(
        query.order_by(column, Patient.user_id).offset((page - 1) * limit).limit(limit)
    )).all()

    data = []
    for patient in patients:
        diagnoses = (await db.scalars(
            select(PatientDiagnosis).where(PatientDiagnosis.patient_id == patient.user_id)
            .order_by(PatientDiagnosis.id.desc())
        )).all()
        item = profile_fields(patient)
        item.update({
            "height": patient.height,
            "weight": patient.weight,
            "bmi": patient.bmi,
            "bloodPressure": patient.blood_pressure,
            "heartRate": patient.heart_rate,
            "temperature": patient.temperature,
            "diagnosis": dump(DiagnosisOut, diagnoses),
        })
        data.append(item)

    return ok(
        data,
        "Patients fetched successfully",
        pagination={
            "total": total or 0,
            "page": page,
            "limit": limit,
            "totalPages": ceil((total or 0) / limit),
        },
    )


@router.get("/searchPatient")
async def search_patient(
    searchterm: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_care_team_user)],
):
    """Up to 10 of the caller's patients matching name, dob, email or phone."""
    pattern = f"%{searchterm}%"
    query = scope_to_care_team(select(Patient), current_user).where(or_(
        Patient.first_name.ilike(pattern),
        Patient.middle_name.ilike(pattern),
        Patient.last_name.ilike(pattern),
        Patient.email.ilike(pattern),
        Patient.phone.like(pattern),
        cast(Patient.dob, String).like(pattern),
    )).order_by(Patient.user_id).limit(10)

    patients = (await db.scalars(query)).all()
    data = [
        PatientSearchResult(patient_id=p.user_id, patient_name=f"{p.first_name} {p.last_name}")
        for p in patients
    ]
    return ok(data, "Patient data fetched successfully")


@router.get("/getPatientByPhoneNumber")
async def get_patient_by_phone_number(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_care_team_user)],
    phone: str | None = None,
):
    """Find patients whose phone ends with the given number, ignoring +91, +1 or 0 prefixes."""
    if not phone:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Phone number is required")

    suffix = normalize_phone(phone.strip())
    # An empty or wildcard suffix would match every patient
    if not suffix.isdigit():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid phone number")

    query = scope_to_care_team(select(Patient).where(Patient.phone.like(f"%{suffix}")), current_user)
    patients = (await db.scalars(query.order_by(Patient.user_id))).all()

    return ok([
        {
            "patientId": p.user_id,
            "firstName": p.first_name,
            "middleName": p.middle_name,
            "lastName": p.last_name,
            "birthDate": p.dob,
            "email": p.email,
            "phone": p.phone,
            "gender": p.gender,
            "ethnicity": p.ethnicity,
            "lastVisit": p.last_visit,
            "emergencyContact": p.emergency_contact,
        }
        for p in patients
    ])


@router.get("/getPatientMonitoringData")
async def get_patient_monitoring_data(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_care_team_user)],
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1)] = 100,
):
    """Triage counts by status and a paginated dashboard list."""
    base = scope_to_care_team(select(Patient), current_user).subquery()
    stats_row = (await db.execute(
        select(
            func.count(),
            func.coalesce(func.sum(case((base.c.status == 1, 1), else_=0)), 0),
            func.coalesce(func.sum(case((base.c.status == 2, 1), else_=0)), 0),
            func.coalesce(func.sum(case((base.c.status == 3, 1), else_=0)), 0),
        ).select_from(base)
    )).one()
    total, critical, abnormal, normal = (int(v or 0) for v in stats_row)

    patients = (await db.scalars(
        scope_to_care_team(select(Patient), current_user)
        .order_by(Patient.last_visit.desc(), Patient.user_id)
        .offset((page - 1) * limit)
        .limit(limit)
    )).all()

    return ok(
        message="Dashboard data fetched successfully",
        stats={"total": total, "critical": critical, "abnormal": abnormal, "normal": normal},
        patients=[
            {
                "patientId": p.user_id,
                "name": p.full_name,
                "age": age_on(p.dob),
                "lastVisit": p.last_visit,
                "phone": p.phone,
                "height": p.height,
                "weight": p.weight,
                "bmi": p.bmi,
                "bloodPressure": p.blood_pressure,
                "heartRate": p.heart_rate,
                "temperature": p.temperature,
                "status": status_label(p.status),
                "patientService": ", ".join(program_names(p.service_type)) or "NA",
            }
            for p in patients
        ],
        pagination={
            "total": total,
            "page": page,
            "limit": limit,
            "totalPages": ceil(total / limit),
        },
    )


# ---------------------------------------------------------------------------
# Child records
# ---------------------------------------------------------------------------

@router.post("/addPatientDiagnosis", status_code=status.HTTP_201_CREATED)
async def add_patient_diagnosis(
    diagnosis: DiagnosisIn,
    patient_id: Annotated[int, Query(alias="patientId")],
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_care_team_user)],
):
    await get_patient_or_404(db, patient_id)
    row = PatientDiagnosis(patient_id=patient_id, created_by=current_user.id, **diagnosis.model_dump())
    db.add(row)
    await db.flush()
    await create_audit_log(
        db, current_user.id, "CREATE", "PATIENT_DIAGNOSIS", patient_id,
        description=f"Diagnosis added: {diagnosis.diagnosis}", request=request,
    )
    await db.commit()
    return ok({"id": row.id}, "Patient diagnosis added successfully")


@router.get("/getPatientDiagnosis")
async def get_patient_diagnosis(
    patient_id: Annotated[int, Query(alias="patientId")],
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_care_team_user)],
    diagnosis_id: Annotated[int | None, Query(alias="diagnosisId")] = None,
):
    """Diagnoses for a patient with the name of the user who recorded each one."""
    query = (
        select(PatientDiagnosis, User.first_name, User.last_name)
        .outerjoin(User, User.id == PatientDiagnosis.created_by)
        .where(PatientDiagnosis.patient_id == patient_id)
    )
    if diagnosis_id is not None:
        query = query.where(PatientDiagnosis.id == diagnosis_id)
    rows = (await db.execute(query.order_by(PatientDiagnosis.id.desc()))).all()

    diagnoses = []
    for diagnosis, first_name, last_name in rows:
        item = DiagnosisOut.model_validate(diagnosis).model_dump(by_alias=True)
        item["createdBy"] = diagnosis.created_by
        item["createdByName"] = f"{first_name} {last_name}" if first_name else None
        item["createdAt"] = diagnosis.created_at
        diagnoses.append(item)
    return ok(message="Patient diagnosis fetched successfully", diagnosis=diagnoses)


@router.post("/addPatientAllergy", status_code=status.HTTP_201_CREATED)
async def add_patient_allergy(
    allergy: AllergyCreate,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_care_team_user)],
):
    await get_patient_or_404(db, allergy.patient_id)
    row = Allergy(**allergy.model_dump())
    db.add(row)
    await db.flush()
    await create_audit_log(
        db, current_user.id, "CREATE", "PATIENT_ALLERGY", allergy.patient_id,
        description=f"Allergy added: {allergy.allergen}", request=request,
    )
    await db.commit()
    return ok(message="Allergy added", id=row.id)


@router.post("/addPatientInsurance", status_code=status.HTTP_201_CREATED)
async def add_patient_insurance(
    insurance: InsuranceCreate,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_care_team_user)],
):
    await get_patient_or_404(db, insurance.patient_id)
    values = insurance.model_dump(exclude={"relationship"})
    row = PatientInsurance(insured_relationship=insurance.relationship, **values)
    db.add(row)
    await db.flush()
    await create_audit_log(
        db, current_user.id, "CREATE", "PATIENT_INSURANCE", insurance.patient_id,
        description=f"Insurance record added: {insurance.company}", request=request,
    )
    await db.commit()
    return ok(message="Insurance record added successfully", patient_insurance_id=row.id)


@router.post("/addPatientMedication", status_code=status.HTTP_201_CREATED)
async def add_patient_medication(
    medication: MedicationCreate,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_care_team_user)],
):
    await get_patient_or_404(db, medication.patient_id)
    values = medication.model_dump()
    values["prescribed_by"] = values.get("prescribed_by") or current_user.full_name
    row = PatientMedication(**values)
    db.add(row)
    await db.flush()
    await create_audit_log(
        db, current_user.id, "CREATE", "PATIENT_MEDICATION", medication.patient_id,
        description=f"Medication added: {medication.name}", request=request,
    )
    await db.commit()
    return ok(message="Medication added successfully", medication_id=row.id)


@router.post("/addPatientVitals/{patient_id}", status_code=status.HTTP_201_CREATED)
async def add_patient_vitals(
    patient_id: int,
    vitals: VitalsIn,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_care_team_user)],
):
    """Record a vitals reading and refresh the patient's vitals snapshot."""
    patient = await get_patient_or_404(db, patient_id)
    values = vitals.model_dump()
    db.add(PatientVitals(patient_id=patient_id, **values))
    for field, value in values.items():
        setattr(patient, field, value)

    await create_audit_log(
        db, current_user.id, "CREATE", "PATIENT_VITALS", patient_id,
        description=f"Vital signs recorded for patient {patient_id}", request=request,
    )
    await db.commit()
    return ok(message="Vitals added successfully and user profile updated.")


# ---------------------------------------------------------------------------
# Enhanced profile
# ---------------------------------------------------------------------------

@router.get("/{patient_id}/enhanced-profile")
async def get_enhanced_profile(
    patient_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
    cipher: Annotated[PhiCipher, Depends(get_phi_cipher)],
):
    """
    Complete demographic profile with related clinical data.

    The decrypted SSN is returned only to admin and staff users; everyone
    else sees the masked form.
    """
    ensure_own_profile(current_user, patient_id)
    patient = await get_patient_or_404(db, patient_id)

    allergies = (await db.scalars(
        select(Allergy).where(Allergy.patient_id == patient_id).order_by(Allergy.id)
    )).all()
    medications = (await db.scalars(
        select(PatientMedication).where(PatientMedication.patient_id == patient_id)
        .order_by(PatientMedication.id.desc())
    )).all()
    insurances = (await db.scalars(
        select(PatientInsurance).where(PatientInsurance.patient_id == patient_id).order_by(PatientInsurance.id)
    )).all()
    diagnoses = (await db.scalars(
        select(PatientDiagnosis).where(PatientDiagnosis.patient_id == patient_id)
        .order_by(PatientDiagnosis.diagnosis_date.desc(), PatientDiagnosis.id.desc())
    )).all()

    ssn = cipher.decrypt(patient.ssn_encrypted)
    if current_user.role not in SENSITIVE_DATA_ROLES:
        ssn = mask_ssn(ssn)

    counts = await clinical_counts(db, patient_id)
    profile = {
        "patientId": patient.user_id,
        "firstName": patient.first_name,
        "middleName": patient.middle_name,
        "lastName": patient.last_name,
        "suffix": patient.suffix,
        "pronouns": patient.pronouns,
        "dateOfBirth": patient.dob,
        "gender": patient.gender,
        "email": patient.email,
        "phone": patient.phone,
        "alternatePhone": patient.alternate_phone,
        "address": {
            "line1": patient.address_line,
            "line2": patient.address_line_2,
            "city": patient.city,
            "state": patient.state,
            "zipCode": patient.zip,
            "country": patient.country or "USA",
        },
        "ethnicity": patient.ethnicity,
        "race": patient.race,
        "languagePreference": patient.language_preference or "English",
        "preferredCommunication": patient.preferred_communication or "phone",
        "maritalStatus": patient.marital_status,
        "disabilityStatus": patient.disability_status,
        "accessibilityNeeds": patient.accessibility_needs.split(",") if patient.accessibility_needs else [],
        "interpreterNeeded": patient.interpreter_needed,
        "wheelchairAccess": patient.wheelchair_access,
        "emergencyContact": {
            "name": patient.emergency_contact,
            "relationship": patient.emergency_relationship,
            "phone": patient.emergency_phone,
            "email": patient.emergency_email,
        },
        "ssn": ssn,
        "driverLicense": patient.driver_license,
        "passport": patient.passport_number,
        "allergies": [allergy_dict(a) for a in allergies],
        "medications": dump(MedicationOut, medications),
        "insurances": dump(InsuranceOut, insurances),
        "problemList": dump(DiagnosisOut, diagnoses),
        "profileCompleteness": completeness_score(patient, *counts),
        "lastUpdated": patient.updated_at,
        "createdAt": patient.created_at,
    }
    return ok(profile, "Enhanced patient profile retrieved successfully")


@router.put("/{patient_id}/enhanced-profile")
async def update_enhanced_profile(
    patient_id: int,
    profile: EnhancedProfileUpdate,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
    cipher: Annotated[PhiCipher, Depends(get_phi_cipher)],
):
    """
    Replace the demographic profile and return the new completeness score.

    The SSN is stored encrypted alongside a salted hash for lookups.
    """
    ensure_own_profile(current_user, patient_id)
    patient = await get_patient_or_404(db, patient_id)

    patient.first_name = profile.first_name
    patient.middle_name = profile.middle_name
    patient.last_name = profile.last_name
    patient.suffix = profile.suffix
    patient.pronouns = profile.pronouns
    patient.dob = profile.date_of_birth
    patient.gender = profile.gender
    patient.email = profile.email
    patient.phone = profile.phone
    patient.alternate_phone = profile.alternate_phone
    patient.ethnicity = profile.ethnicity
    patient.race = profile.race
    patient.language_preference = profile.language_preference
    patient.preferred_communication = profile.preferred_communication
    patient.marital_status = profile.marital_status
    patient.disability_status = profile.disability_status
    patient.accessibility_needs = ",".join(profile.accessibility_needs) or None
    patient.interpreter_needed = profile.interpreter_needed
    patient.wheelchair_access = profile.wheelchair_access
    patient.driver_license = profile.driver_license
    patient.passport_number = profile.passport

    if profile.address is not None:
        patient.address_line = profile.address.line1
        patient.address_line_2 = profile.address.line2
        patient.city = profile.address.city
        patient.state = profile.address.state
        patient.zip = profile.address.zip_code
        patient.country = profile.address.country

    if profile.emergency_contact is not None:
        patient.emergency_contact = profile.emergency_contact.name
        patient.emergency_relationship = profile.emergency_contact.relationship
        patient.emergency_phone = profile.emergency_contact.phone
        patient.emergency_email = profile.emergency_contact.email

    if profile.ssn:
        patient.ssn_encrypted = cipher.encrypt(profile.ssn)
        patient.ssn_hash = cipher.hash(profile.ssn)

    await db.flush()
    score = completeness_score(patient, *(await clinical_counts(db, patient_id)))

    await create_audit_log(
        db, current_user.id, "UPDATE", "PATIENT_PROFILE", patient_id,
        description="Enhanced patient profile updated",
        details={"completenessScore": score, "ssnUpdated": bool(profile.ssn)},
        request=request,
    )
    await db.commit()
    return ok({"patientId": patient_id, "completenessScore": score}, "Patient profile updated successfully")

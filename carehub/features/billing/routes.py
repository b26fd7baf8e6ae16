"""
Billing-minutes routes: monthly program timings and the monthly patient summaries
used for RPM/CCM/PCM reports.
"""
from datetime import date
from typing import Annotated
from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from carehub.core.database.engine import get_db
from carehub.core.responses import ok
from carehub.utils import get_logger
from carehub.features.users.dependencies import get_care_team_user
from carehub.features.users.models import User
from carehub.features.clinical.models import Note, Task
from carehub.features.patients.models import (
    Allergy, PatientMedication, PatientDiagnosis, PatientVitals, ALLERGY_CATEGORIES,
)
from carehub.features.patients.schemas import MedicationOut, DiagnosisOut, VitalsOut
from carehub.features.patients.service import get_patient, physician_fields, profile_fields
from carehub.features.billing.timings import (
    calculate_billed_minutes, cpt_rows, cpt_total, month_range, program_minutes,
)

log = get_logger(__name__)

router = APIRouter()

RANGE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _minutes_total(minutes: dict[str, int]) -> int:
    return minutes["rpm_minutes"] + minutes["ccm_minutes"] + minutes["pcm_minutes"]


@router.get("/getPatientTimings")
async def get_patient_timings(
    patient_id: Annotated[int, Query(alias="patientId")],
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_care_team_user)],
    day: Annotated[date | None, Query(alias="date")] = None,
):
    """
    Minutes per program and the CPT charge total for the month containing `date`.

    Tasks and notes in the window are listed alongside the totals so the
    dashboard can show what the minutes were made of.
    """
    start, end = month_range(day)
    minutes = await program_minutes(db, patient_id, start, end)

    tasks = (await db.scalars(
        select(Task)
        .where(Task.patient_id == patient_id, Task.created.between(start, end))
        .order_by(Task.created.desc(), Task.id.desc())
    )).all()
    notes = (await db.scalars(
        select(Note)
        .where(Note.patient_id == patient_id, Note.created.between(start, end))
        .order_by(Note.created.desc(), Note.id.desc())
    )).all()
    cpt_data = await cpt_rows(db, patient_id, start, end)

    log.debug("Timings for patient %s in %s: %s", patient_id, start.strftime("%Y-%m"), minutes)
    return ok(
        message="Patient timings fetched successfully",
        totalMinutes=_minutes_total(minutes),
        totalAmount=cpt_total(cpt_data),
        tasks=[
            {
                "title": t.title,
                "duration": t.duration,
                "category": t.type,
                "created": t.created,
                "billing": "task",
            }
            for t in tasks
        ],
        notes=[n.to_dict() for n in notes],
        cpt_data=cpt_data,
        filterRange={"startDate": start.strftime(RANGE_FORMAT), "endDate": end.strftime(RANGE_FORMAT)},
        **minutes,
    )


async def _monthly_summary(
    db: AsyncSession,
    patient_id: int,
    day: date | None,
    report_type: str | None,
    include_allergies: bool,
) -> dict:
    patient = await get_patient(db, patient_id)
    if patient is None:
        return {"success": False, "message": "Patient data not found"}

    start, end = month_range(day)

    def typed(query, model):
        if report_type:
            query = query.where(model.type == report_type)
        return query

    medications = (await db.scalars(
        select(PatientMedication)
        .where(PatientMedication.patient_id == patient_id, PatientMedication.created_at.between(start, end))
        .order_by(PatientMedication.id.desc())
    )).all()
    diagnoses = (await db.scalars(typed(
        select(PatientDiagnosis)
        .where(PatientDiagnosis.patient_id == patient_id, PatientDiagnosis.created_at.between(start, end)),
        PatientDiagnosis,
    ).order_by(PatientDiagnosis.id.desc()))).all()
    notes = (await db.scalars(typed(
        select(Note).where(Note.patient_id == patient_id, Note.created.between(start, end)),
        Note,
    ).order_by(Note.id.desc()))).all()
    tasks = (await db.scalars(typed(
        select(Task).where(Task.patient_id == patient_id, Task.created.between(start, end)),
        Task,
    ).order_by(Task.id.desc()))).all()
    vitals = (await db.scalars(
        select(PatientVitals)
        .where(PatientVitals.patient_id == patient_id, PatientVitals.created.between(start, end))
        .order_by(PatientVitals.id)
    )).all()

    minutes = await program_minutes(db, patient_id, start, end)

    data = profile_fields(patient)
    data.update(physician_fields(patient))
    data.update({
        "height": patient.height,
        "weight": patient.weight,
        "bmi": patient.bmi,
        "bloodPressure": patient.blood_pressure,
        "heartRate": patient.heart_rate,
        "temperature": patient.temperature,
        "currentMedications": [MedicationOut.model_validate(m).model_dump(by_alias=True) for m in medications],
        "diagnosis": [DiagnosisOut.model_validate(d).model_dump(by_alias=True) for d in diagnoses],
        "notes": [n.to_dict() for n in notes],
        "tasks": [t.to_dict() for t in tasks],
        "vitals": [VitalsOut.model_validate(v).model_dump(by_alias=True) for v in vitals],
        "createdBy": notes[0].created_by if notes else None,
        "total_minutes": calculate_billed_minutes(_minutes_total(minutes)),
        "reportType": report_type,
        **minutes,
    })

    if include_allergies:
        allergies = (await db.scalars(
            select(Allergy)
            .where(Allergy.patient_id == patient_id, Allergy.created.between(start, end))
            .order_by(Allergy.id)
        )).all()
        data["allergies"] = [
            {
                "id": a.id,
                "category": ALLERGY_CATEGORIES.get(a.category),
                "allergen": a.allergen,
                "reaction": a.reaction,
                "created": a.created,
            }
            for a in allergies
        ]
    else:
        # Report header labels the physician as the provider
        for key in ("Id", "Name", "State", "City", "Country"):
            data[f"provider{key}"] = data.pop(f"physician{key}")

    return ok(data, "Patient data fetched successfully")


@router.get("/{patient_id}/summary")
async def get_patient_summary(
    patient_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_care_team_user)],
    day: Annotated[date | None, Query(alias="date")] = None,
    report_type: Annotated[str | None, Query(alias="reportType")] = None,
):
    """Monthly summary for a program report, including allergies recorded that month."""
    return await _monthly_summary(db, patient_id, day, report_type, include_allergies=True)


@router.get("/{patient_id}/summary/ccm")
async def get_patient_summary_ccm(
    patient_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_care_team_user)],
    day: Annotated[date | None, Query(alias="date")] = None,
    report_type: Annotated[str | None, Query(alias="reportType")] = None,
):
    """Monthly summary in the CCM report layout."""
    return await _monthly_summary(db, patient_id, day, report_type, include_allergies=False)

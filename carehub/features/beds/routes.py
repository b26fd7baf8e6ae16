"""
Bed assignment routes.
"""
from typing import Annotated
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from carehub.core.database.engine import get_db
from carehub.core.responses import ok
from carehub.utils import get_logger, now
from carehub.features.audit.service import create_audit_log
from carehub.features.users.dependencies import get_care_team_user
from carehub.features.users.models import User
from carehub.features.patients.models import Patient
from carehub.features.patients.service import get_patient_or_404, scope_to_care_team
from carehub.features.beds.models import (
    Bed, BedAssignment, ASSIGNMENT_ACTIVE, ASSIGNMENT_RELEASED, ASSIGNMENT_STATUS_LABELS,
)
from carehub.features.beds.schemas import BedAssign

log = get_logger(__name__)

router = APIRouter()


@router.get("/getAllBeds")
async def get_all_beds(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_care_team_user)],
    patient_id: Annotated[int | None, Query(alias="patientId")] = None,
    assignment_status: Annotated[int | None, Query(alias="status", ge=1, le=2)] = None,
):
    """Bed assignments for the caller's patients, newest first."""
    query = scope_to_care_team(
        select(BedAssignment, Bed, Patient)
        .join(Bed, Bed.id == BedAssignment.bed_id)
        .join(Patient, Patient.user_id == BedAssignment.patient_id),
        current_user,
    )
    if patient_id is not None:
        query = query.where(BedAssignment.patient_id == patient_id)
    if assignment_status is not None:
        query = query.where(BedAssignment.status == assignment_status)

    rows = (await db.execute(
        query.order_by(BedAssignment.assigned_at.desc(), BedAssignment.id.desc())
    )).all()

    return ok(
        [
            {
                "assignmentId": assignment.id,
                "patientId": assignment.patient_id,
                "patientName": patient.full_name,
                "gender": patient.gender,
                "birthDate": patient.dob,
                "phone": patient.phone,
                "email": patient.email,
                "bedNo": bed.bed_no,
                "wardNo": bed.ward_no,
                "roomType": bed.room_type,
                "assignedAt": assignment.assigned_at,
                "unassignedAt": assignment.unassigned_at,
                "bedStatus": ASSIGNMENT_STATUS_LABELS.get(assignment.status, "Available"),
            }
            for assignment, bed, patient in rows
        ],
        "Beds fetched successfully.",
    )


@router.post("/assignBedToPatient")
async def assign_bed_to_patient(
    assignment_data: BedAssign,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_care_team_user)],
):
    """
    Put a patient in a bed, registering the bed on first use.

    Raises:
        HTTPException: 400 if the patient already has a bed, 409 if the bed is occupied.
    """
    await get_patient_or_404(db, assignment_data.patient_id)

    existing = await db.scalar(
        select(BedAssignment.id).where(
            BedAssignment.patient_id == assignment_data.patient_id,
            BedAssignment.status == ASSIGNMENT_ACTIVE,
        )
    )
    if existing is not None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Patient already has a bed assigned.")

    bed = await db.scalar(
        select(Bed).where(
            Bed.bed_no == assignment_data.bed_no,
            Bed.ward_no == assignment_data.ward_no,
            Bed.room_type == assignment_data.room_type,
        )
    )
    if bed is None:
        bed = Bed(bed_no=assignment_data.bed_no, ward_no=assignment_data.ward_no, room_type=assignment_data.room_type)
        db.add(bed)
        await db.flush()
    else:
        occupied = await db.scalar(
            select(BedAssignment.id).where(BedAssignment.bed_id == bed.id, BedAssignment.status == ASSIGNMENT_ACTIVE)
        )
        if occupied is not None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="This bed is already assigned to another patient.",
            )

    assignment = BedAssignment(
        bed_id=bed.id,
        patient_id=assignment_data.patient_id,
        status=ASSIGNMENT_ACTIVE,
        assigned_by=current_user.id,
    )
    db.add(assignment)
    await db.flush()
    await create_audit_log(
        db, current_user.id, "ASSIGN", "BED", assignment.id,
        description=f"Ward {bed.ward_no} bed {bed.bed_no} to patient {assignment_data.patient_id}",
        request=request,
    )
    await db.commit()
    return ok({"assignmentId": assignment.id}, "Bed assigned successfully.")


@router.post("/unassignBedFromPatient")
async def unassign_bed_from_patient(
    patient_id: Annotated[int, Query(alias="patientId")],
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_care_team_user)],
):
    assignment = await db.scalar(
        select(BedAssignment)
        .where(BedAssignment.patient_id == patient_id, BedAssignment.status == ASSIGNMENT_ACTIVE)
        .order_by(BedAssignment.assigned_at.desc())
        .limit(1)
    )
    if assignment is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No active bed assigned to this patient.")

    assignment.status = ASSIGNMENT_RELEASED
    assignment.unassigned_by = current_user.id
    assignment.unassigned_at = now()
    await create_audit_log(db, current_user.id, "UNASSIGN", "BED", assignment.id, request=request)
    await db.commit()
    return ok(message="Bed unassigned successfully.")

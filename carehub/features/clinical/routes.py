"""
Clinical notes and care task routes.
"""
from datetime import date
from typing import Annotated
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from carehub.core.database.engine import get_db
from carehub.core.responses import ok
from carehub.features.audit.service import create_audit_log
from carehub.features.users.dependencies import get_care_team_user
from carehub.features.users.models import User, ROLE_PROVIDER
from carehub.features.patients.models import Patient
from carehub.features.patients.service import get_patient_or_404
from carehub.features.clinical.models import Note, Task
from carehub.features.clinical.schemas import NoteCreate, TaskCreate, TaskUpdate

router = APIRouter()


@router.post("/addPatientNotes", status_code=status.HTTP_201_CREATED)
async def add_patient_notes(
    note_data: NoteCreate,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_care_team_user)],
):
    await get_patient_or_404(db, note_data.patient_id)
    note = Note(**note_data.model_dump(), created_by=current_user.id)
    db.add(note)
    await db.flush()
    await create_audit_log(
        db, current_user.id, "CREATE", "PATIENT_NOTE", note_data.patient_id,
        description=f"Note added for patient {note_data.patient_id}", request=request,
    )
    await db.commit()
    return ok({"note_id": note.id}, "Patient Notes added successfully")


@router.get("/getPatientNotes")
async def get_patient_notes(
    patient_id: Annotated[int, Query(alias="patientId")],
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_care_team_user)],
    type: str | None = None,
):
    query = select(Note).where(Note.patient_id == patient_id)
    if type:
        query = query.where(Note.type == type)
    notes = (await db.scalars(query.order_by(Note.id.desc()))).all()
    return ok([n.to_dict() for n in notes], "Patient Notes fetched successfully")


@router.post("/addPatientTask", status_code=status.HTTP_201_CREATED)
async def add_patient_task(
    task_data: TaskCreate,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_care_team_user)],
):
    await get_patient_or_404(db, task_data.patient_id)
    values = task_data.model_dump()
    values["frequency"] = values["frequency"] or "NA"
    task = Task(**values, created_by=current_user.id)
    db.add(task)
    await db.flush()
    await create_audit_log(
        db, current_user.id, "CREATE", "PATIENT_TASK", task_data.patient_id,
        description=f"Task created: {task_data.title} for patient {task_data.patient_id}",
        request=request,
    )
    await db.commit()
    return ok({"task_id": task.id}, "Task inserted successfully")


@router.post("/editPatientTask")
async def edit_patient_task(
    task_data: TaskUpdate,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_care_team_user)],
):
    """
    Update a task.

    Raises:
        HTTPException: 404 if the task does not exist.
    """
    task = await db.scalar(select(Task).where(Task.id == task_data.task_id))
    if task is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found or not authorized")

    for field, value in task_data.model_dump(exclude_unset=True, exclude={"task_id"}).items():
        setattr(task, field, value)

    await create_audit_log(
        db, current_user.id, "UPDATE", "PATIENT_TASK", task.id,
        description=f"Task updated: {task.title}", request=request,
    )
    await db.commit()
    return ok(message="Task updated successfully")


@router.get("/getAllPatientTasks")
async def get_all_patient_tasks(
    patient_id: Annotated[int, Query(alias="patientId")],
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_care_team_user)],
    type: str | None = None,
):
    """Tasks for one patient, newest first, optionally filtered by exact type."""
    query = select(Task).where(Task.patient_id == patient_id)
    if type:
        query = query.where(Task.type == type)
    tasks = (await db.scalars(query.order_by(Task.id.desc()))).all()

    if not tasks:
        return {"success": False, "message": "No task is available for this patient", "data": []}
    return ok([t.to_dict() for t in tasks], "Tasks fetched successfully")


@router.get("/getAllTasks")
async def get_all_tasks(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_care_team_user)],
):
    """Tasks across the caller's patient panel."""
    query = select(Task).join(Patient, Patient.user_id == Task.patient_id)
    if current_user.role == ROLE_PROVIDER:
        query = query.where(Patient.physician_id == current_user.id)
    tasks = (await db.scalars(query.order_by(Task.id.desc()))).all()
    return ok([t.to_dict() for t in tasks], "Patient tasks fetched successfully")


@router.get("/getUpcomingAndOverdueTasks")
async def get_upcoming_and_overdue_tasks(
    patient_id: Annotated[int, Query(alias="patientId")],
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_care_team_user)],
):
    """Split a patient's dated tasks into due today or later, and overdue."""
    today = date.today()
    upcoming = (await db.scalars(
        select(Task).where(Task.patient_id == patient_id, Task.due_date >= today).order_by(Task.due_date)
    )).all()
    overdue = (await db.scalars(
        select(Task).where(Task.patient_id == patient_id, Task.due_date < today).order_by(Task.due_date)
    )).all()
    return ok({
        "patient_id": patient_id,
        "upcoming": [t.to_dict() for t in upcoming],
        "overdue": [t.to_dict() for t in overdue],
    })

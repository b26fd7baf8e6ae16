"""
Remote-monitoring device readings for a patient.
"""
from datetime import datetime
from typing import Annotated
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from carehub.core.database.engine import get_db
from carehub.core.responses import ok
from carehub.utils import get_logger
from carehub.features.users.dependencies import get_current_user
from carehub.features.users.models import User
from carehub.features.patients.service import get_patient_or_404, resolve_patient_id
from carehub.features.devices.client import MioAPIError, MioClient, get_mio_client

log = get_logger(__name__)

router = APIRouter()


@router.get("/{patient_id}/device-readings")
async def get_device_readings(
    patient_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
    client: Annotated[MioClient, Depends(get_mio_client)],
    start: datetime | None = None,
    end: datetime | None = None,
):
    """
    Readings from the device registered to the patient.

    Raises:
        HTTPException: 404 if the patient has no device, 502 if the device API fails.
    """
    if resolve_patient_id(current_user, patient_id) != patient_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied: Can only access own profile")

    patient = await get_patient_or_404(db, patient_id)
    if not patient.device_imei:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No device registered for this patient")

    try:
        readings = await client.get_readings(patient.device_imei, start, end)
    except MioAPIError as exc:
        log.error("Device readings for patient %s failed: %s", patient_id, exc)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Device service unavailable") from exc

    return ok({"patientId": patient_id, "imei": patient.device_imei, "readings": readings})

"""
Consent workflow routes.

`patient_router` holds the care-team endpoints mounted under /patient;
`router` holds the public consent-form endpoints mounted under /ehr.
"""
import asyncio
import html
import uuid
from datetime import datetime, timedelta
from math import ceil
from typing import Annotated
from fastapi import (
    APIRouter, BackgroundTasks, Depends, File, Form, HTTPException, Query, Request, UploadFile, status,
)
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from carehub.core import config
from carehub.core.database.engine import get_db, get_session_factory
from carehub.core.pdf import mark_submitted
from carehub.core.responses import ok
from carehub.utils import get_logger, now
from carehub.features.audit.service import create_audit_log
from carehub.features.users.dependencies import get_care_team_user, get_current_user
from carehub.features.users.models import User
from carehub.features.patients.models import Patient, program_names
from carehub.features.patients.service import get_patient, scope_to_care_team
from carehub.features.providers.models import ProviderPractice
from carehub.features.consents.jobs import render_consent_document
from carehub.features.consents.mailer import Mailer, get_mailer
from carehub.features.consents.models import (
    ConsentToken, PatientConsent, TOKEN_OPEN, TOKEN_CONSUMED,
    CONSENT_RECEIVED, JOB_COMPLETED,
)
from carehub.features.consents.schemas import ConsentSubmit
from carehub.features.consents.storage import CONSENT_KEY_PREFIX, DocumentStorage, get_storage

log = get_logger(__name__)

patient_router = APIRouter()
router = APIRouter()

MAX_UPLOAD_BYTES = 5 * 1024 * 1024
CONSENT_EMAIL_SUBJECT = "Secure Document: Patient Consent Form for Your Approval"


def consent_email_html(first_name: str, doctor_name: str, url: str) -> str:
    return f"""
<div style="font-family: Arial, sans-serif; background-color: #f9f9f9; padding: 20px;">
  <div style="max-width: 600px; margin: 0 auto; background-color: #ffffff; border-radius: 8px;">
    <div style="padding: 30px;">
      <p style="font-size: 16px; color: #333;">Dear <strong>{html.escape(first_name or "")}</strong>,</p>
      <p style="font-size: 16px; color: #333;">
        You have been invited by <strong>Dr. {html.escape(doctor_name or "")}</strong> to review and
        provide your consent for a medical procedure or treatment.
      </p>
      <p style="font-size: 16px; color: #333;">
        To proceed, please click the button below to view and electronically sign the consent form:
      </p>
      <div style="text-align: center; margin: 30px 0;">
        <a href="{html.escape(url)}" style="display: inline-block; padding: 14px 28px; background-color: #1a73e8;
           color: #ffffff; text-decoration: none; border-radius: 6px; font-size: 16px; font-weight: bold;">
          Review &amp; Sign Consent Form
        </a>
      </div>
      <p style="font-size: 14px; color: #888; text-align: center;">
        <strong>Note:</strong> This link will expire in <strong>{config.CONSENT_LINK_TTL_HOURS} hours</strong>.
      </p>
      <p style="font-size: 16px; color: #333;">
        If you have any questions or concerns, feel free to contact your healthcare provider.
      </p>
      <p style="font-size: 16px; color: #333;">Thank you,<br/>The Healthcare Team</p>
    </div>
  </div>
</div>
"""


async def _open_token(db: AsyncSession, token: str) -> ConsentToken:
    """
    Return the open token row.

    Raises:
        HTTPException: 404 if no open token matches, 410 once the link is
            older than the configured lifetime.
    """
    row = await db.scalar(
        select(ConsentToken).where(ConsentToken.consent_token == token, ConsentToken.status == TOKEN_OPEN)
    )
    if row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Link is expired or invalid")
    if now() - row.created_at > timedelta(hours=config.CONSENT_LINK_TTL_HOURS):
        raise HTTPException(status_code=status.HTTP_410_GONE, detail="Consent link has expired.")
    return row


async def _practice_for(db: AsyncSession, patient: Patient) -> ProviderPractice | None:
    if patient.practice is not None:
        return patient.practice
    if patient.physician_id is None:
        return None
    return await db.scalar(
        select(ProviderPractice)
        .where(ProviderPractice.provider_id == patient.physician_id)
        .order_by(ProviderPractice.id)
        .limit(1)
    )


# ---------------------------------------------------------------------------
# Care-team endpoints (/patient)
# ---------------------------------------------------------------------------

@patient_router.get("/sendConsentEmail")
async def send_consent_email(
    patient_id: Annotated[int, Query(alias="patientId")],
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_care_team_user)],
    mailer: Annotated[Mailer, Depends(get_mailer)],
):
    """
    Email the patient a single-use link to the consent form.

    Raises:
        HTTPException: 400 if the patient is unknown or has no email,
            502 if the message could not be delivered.
    """
    patient = await get_patient(db, patient_id)
    if patient is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Patient not found")
    email = patient.email or (patient.user.email if patient.user else None)
    if not email:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email not found")

    token = str(uuid.uuid4())
    db.add(ConsentToken(patient_id=patient_id, consent_token=token))
    await db.flush()

    doctor_name = patient.physician.full_name if patient.physician else ""
    url = f"{config.CONSENT_FORM_URL}?token={token}"
    sent = await asyncio.to_thread(
        mailer.send, email, CONSENT_EMAIL_SUBJECT, consent_email_html(patient.first_name, doctor_name, url)
    )
    if not sent:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Email could not be sent")

    await create_audit_log(
        db, current_user.id, "EMAIL_SENT", "PATIENT_CONSENT", patient_id,
        description=f"SENT CONSENT FORM: {patient_id} - {email}", request=request,
    )
    await db.commit()
    return ok(message="Email sent successfully")


@patient_router.post("/uploadConsentForm", status_code=status.HTTP_201_CREATED)
async def upload_consent_form(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
    storage: Annotated[DocumentStorage, Depends(get_storage)],
    pdf: Annotated[UploadFile, File()],
    token: Annotated[str, Form()],
    consent_type: Annotated[str, Form(alias="consentType")],
):
    """
    Store a signed consent PDF uploaded by staff or the patient.

    Raises:
        HTTPException: 400 for a non-PDF or a file over 5 MB, 404 for an unknown token,
            502 when the document cannot be uploaded.
    """
    if pdf.content_type not in ("application/pdf", "application/x-pdf"):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Please upload a PDF file")
    data = await pdf.read(MAX_UPLOAD_BYTES + 1)
    if len(data) > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="File size exceeds 5MB")

    token_row = await db.scalar(select(ConsentToken).where(ConsentToken.consent_token == token))
    if token_row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Link is expired or invalid")

    safe_name = "".join(ch for ch in (pdf.filename or "consent.pdf") if ch.isalnum() or ch in "._-")
    file_name = f"{datetime.now():%Y%m%d%H%M%S}_{safe_name}"
    path = await asyncio.to_thread(storage.save_local, file_name, data)
    url = await asyncio.to_thread(storage.upload_with_retry, path, f"{CONSENT_KEY_PREFIX}/{file_name}")
    if not url:
        log.error("Consent upload for patient %s failed; local copy kept at %s", token_row.patient_id, path)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Document upload failed")

    consent = PatientConsent(
        patient_id=token_row.patient_id,
        consent_token=token,
        consent_type=consent_type,
        status=CONSENT_RECEIVED,
        document_url=url,
        local_path=path,
        received=now(),
        job_status=JOB_COMPLETED,
    )
    db.add(consent)
    await db.flush()
    await create_audit_log(
        db, current_user.id, "CREATE", f"PATIENT_CONSENT-{consent_type}", token_row.patient_id,
        description="Consent form uploaded", request=request,
    )
    await db.commit()
    return ok({"consentId": consent.id, "documentUrl": url}, "Consent form uploaded successfully")


@patient_router.get("/getAllConsents")
async def get_all_consents(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_care_team_user)],
    patient_id: Annotated[int | None, Query(alias="patientId")] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=500)] = 50,
):
    """Consents on file for the caller's patients, newest first."""
    query = scope_to_care_team(
        select(PatientConsent, Patient).join(Patient, Patient.user_id == PatientConsent.patient_id),
        current_user,
    )
    if patient_id is not None:
        query = query.where(PatientConsent.patient_id == patient_id)

    total = await db.scalar(select(func.count()).select_from(query.subquery()))
    rows = (await db.execute(
        query.order_by(PatientConsent.created.desc(), PatientConsent.id.desc())
        .offset((page - 1) * limit).limit(limit)
    )).all()

    data = [
        {
            "id": consent.id,
            "patientId": consent.patient_id,
            "patientName": patient.full_name,
            "gender": patient.gender,
            "dob": patient.dob,
            "phone": patient.phone,
            "email": patient.email,
            "consentType": consent.consent_type,
            "status": "Received" if consent.status == CONSENT_RECEIVED else "Not Received",
            "jobStatus": consent.job_status,
            "documentUrl": consent.document_url,
            "received": consent.received,
            "created": consent.created,
        }
        for consent, patient in rows
    ]
    return ok(
        data,
        "Consents fetched successfully.",
        pagination={"total": total or 0, "page": page, "limit": limit, "totalPages": ceil((total or 0) / limit)},
    )


# ---------------------------------------------------------------------------
# Public consent form (/ehr)
# ---------------------------------------------------------------------------

@router.get("/consent-form")
async def get_consent_form(
    db: Annotated[AsyncSession, Depends(get_db)],
    token: str | None = None,
):
    """Details the consent form page needs: patient, provider, practice and services."""
    if not token:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing token")

    token_row = await _open_token(db, token)
    patient = await get_patient(db, token_row.patient_id)
    if patient is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Link is expired or invalid")

    physician = patient.physician
    practice = await _practice_for(db, patient)
    return ok({
        "firstName": patient.first_name,
        "lastName": patient.last_name,
        "email": patient.email,
        "phone": patient.phone,
        "dob": patient.dob,
        "address1": patient.address_line,
        "address2": patient.address_line_2,
        "city": patient.city,
        "state": patient.state,
        "country": patient.country,
        "zipcode": patient.zip,
        "doctorName": physician.full_name if physician else "",
        "providerPhone": (physician.phone if physician else None) or "",
        "providerEmail": physician.email if physician else "",
        "practiceName": practice.practice_name if practice else "",
        "practiceAddress1": (practice.address_line1 if practice else None) or "",
        "practiceAddress2": (practice.address_line2 if practice else None) or "",
        "practiceCity": (practice.city if practice else None) or "",
        "practiceState": (practice.state if practice else None) or "",
        "practiceZip": (practice.zip if practice else None) or "",
        "practiceCountry": (practice.country if practice else None) or "",
        "services": program_names(patient.service_type),
    })


@router.post("/consent-form/submit", status_code=status.HTTP_202_ACCEPTED)
async def submit_consent_form(
    submission: ConsentSubmit,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Annotated[AsyncSession, Depends(get_db)],
    storage: Annotated[DocumentStorage, Depends(get_storage)],
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
):
    """
    Accept a signed consent form.

    The token is consumed with a conditional update so only one of two
    concurrent submissions wins; the loser gets 404. The PDF is rendered
    and uploaded in the background and can be polled through the jobs endpoint.
    """
    token_row = await _open_token(db, submission.token)

    result = await db.execute(
        update(ConsentToken)
        .where(ConsentToken.consent_token == submission.token, ConsentToken.status == TOKEN_OPEN)
        .values(status=TOKEN_CONSUMED, consumed_at=now())
    )
    if result.rowcount == 0:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Link is expired or invalid")

    consent = PatientConsent(patient_id=token_row.patient_id, consent_token=submission.token)
    db.add(consent)
    await db.flush()
    await create_audit_log(
        db, None, "SUBMITTED", "PATIENT_CONSENT", token_row.patient_id,
        description=f"SUBMITTED CONSENT FORM PatientID: {token_row.patient_id}", request=request,
    )
    await db.commit()

    background_tasks.add_task(
        render_consent_document, consent.id, mark_submitted(submission.html_content), storage, session_factory,
    )
    return ok({"consentId": consent.id, "jobStatus": consent.job_status}, "Consent form submitted")


@router.get("/consent-form/jobs/{consent_id}")
async def get_consent_job(
    consent_id: int,
    token: str,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Render status of a submitted consent form; the token it was submitted with is required."""
    consent = await db.scalar(
        select(PatientConsent).where(PatientConsent.id == consent_id, PatientConsent.consent_token == token)
    )
    if consent is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Consent not found")
    return ok({
        "consentId": consent.id,
        "jobStatus": consent.job_status,
        "documentUrl": consent.document_url,
        "error": consent.job_error,
        "received": consent.received,
    })

"""
Patient account routes: account summary, claims, payments and statements.
"""
import asyncio
import html
from datetime import date
from typing import Annotated
from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from carehub.core.database.engine import get_db
from carehub.core.pdf import render_pdf_from_text
from carehub.core.responses import ok
from carehub.utils import get_logger, round_money
from carehub.features.audit.service import create_audit_log
from carehub.features.users.dependencies import get_care_team_user, get_current_user
from carehub.features.users.models import User
from carehub.features.patients.models import Patient
from carehub.features.patients.service import get_patient_or_404, resolve_patient_id
from carehub.features.consents.mailer import Mailer, get_mailer
from carehub.features.accounts.models import (
    Claim, ClaimLineItem, ClaimComment, ClaimActivity, PatientPayment, PatientStatement, StatementLineItem,
    CLAIM_DRAFT, CLAIM_SUBMITTED, CLAIM_DENIED, CLAIM_VOIDED, CLAIM_CORRECTED, STATEMENT_SENT,
)
from carehub.features.accounts.schemas import (
    ClaimCreate, ClaimAction, ClaimCommentCreate, ClaimVoid, ClaimCorrect, PaymentCreate,
    StatementGenerate, StatementResend,
    ClaimOut, ClaimActivityOut, ClaimCommentOut, PaymentOut, StatementOut,
)
from carehub.features.accounts.service import (
    account_summary, document_number, ensure_transition, get_claim_or_404, money, record_claim_event,
)

log = get_logger(__name__)

router = APIRouter()


def _summary_json(summary: dict) -> dict:
    return {key: round_money(value) if not isinstance(value, int) else value for key, value in summary.items()}


def _claim_json(claim: Claim, today: date | None = None) -> dict:
    today = today or date.today()
    data = ClaimOut.model_validate(claim).model_dump(by_alias=True)
    data["providerName"] = claim.provider.full_name if claim.provider else None
    data["daysSinceSubmission"] = (today - claim.submitted_date).days if claim.submitted_date else None
    data["daysUntilAppealDeadline"] = (
        (claim.appeal_deadline - today).days
        if claim.status == CLAIM_DENIED and claim.appeal_deadline else None
    )
    return data


# ---------------------------------------------------------------------------
# Summary
# ---------------------------------------------------------------------------

@router.get("/summary")
async def get_account_summary(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
    patient_id: Annotated[int | None, Query(alias="patientId")] = None,
):
    """Charges, payments, adjustments and outstanding balance for a patient."""
    patient_id = resolve_patient_id(current_user, patient_id)
    await get_patient_or_404(db, patient_id)
    summary = await account_summary(db, patient_id)
    return ok({"patientId": patient_id, **_summary_json(summary)})


# ---------------------------------------------------------------------------
# Claims
# ---------------------------------------------------------------------------

@router.post("/claims", status_code=status.HTTP_201_CREATED)
async def create_claim(
    claim_data: ClaimCreate,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_care_team_user)],
):
    """Create a draft claim with its line items."""
    await get_patient_or_404(db, claim_data.patient_id)

    claim = Claim(
        claim_number=document_number("CLM"),
        patient_id=claim_data.patient_id,
        provider_id=claim_data.provider_id or current_user.id,
        payer_name=claim_data.payer_name,
        service_date=claim_data.service_date,
        status=CLAIM_DRAFT,
        created_by=current_user.id,
    )
    for item in claim_data.line_items:
        total = money(item.unit_charge * item.units)
        claim.line_items.append(ClaimLineItem(
            cpt_code=item.cpt_code,
            description=item.description,
            units=item.units,
            unit_charge=money(item.unit_charge),
            total_charge=total,
            patient_responsibility=total,
        ))
    claim.total_amount = sum((li.total_charge for li in claim.line_items), money(0))
    db.add(claim)
    await db.flush()

    await record_claim_event(db, claim.id, current_user.id, "created", f"Claim {claim.claim_number} created")
    await create_audit_log(db, current_user.id, "CREATE", "CLAIM", claim.id, request=request)
    await db.commit()
    return ok({"claimId": claim.id, "claimNumber": claim.claim_number}, "Claim created successfully")


@router.post("/claims/submit")
async def submit_claim(
    action: ClaimAction,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_care_team_user)],
):
    claim = await get_claim_or_404(db, action.claim_id)
    ensure_transition(claim, CLAIM_SUBMITTED)

    claim.status = CLAIM_SUBMITTED
    claim.submitted_date = date.today()
    await record_claim_event(
        db, claim.id, current_user.id, "submitted", "Claim submitted to payer",
        comment="CLAIM SUBMITTED",
    )
    await create_audit_log(db, current_user.id, "SUBMIT", "CLAIM", claim.id, request=request)
    await db.commit()
    return ok(message="Claim submitted successfully")


@router.get("/claims")
async def get_patient_claims(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
    patient_id: Annotated[int | None, Query(alias="patientId")] = None,
):
    """Claims with line items, most recent date of service first."""
    patient_id = resolve_patient_id(current_user, patient_id)
    claims = (await db.scalars(
        select(Claim).where(Claim.patient_id == patient_id).order_by(Claim.service_date.desc(), Claim.id.desc())
    )).all()
    today = date.today()
    return ok([_claim_json(c, today) for c in claims])


@router.get("/claims/{claim_id}")
async def get_claim_details(
    claim_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_care_team_user)],
):
    """A claim with its line items, activity log and comments (newest first)."""
    claim = await get_claim_or_404(db, claim_id)

    activity = (await db.scalars(
        select(ClaimActivity).where(ClaimActivity.claim_id == claim_id)
        .order_by(ClaimActivity.performed_at.desc(), ClaimActivity.id.desc())
    )).all()
    comments = (await db.scalars(
        select(ClaimComment).where(ClaimComment.claim_id == claim_id)
        .order_by(ClaimComment.created_at.desc(), ClaimComment.id.desc())
    )).all()

    data = _claim_json(claim)
    data["activityLog"] = [ClaimActivityOut.model_validate(a).model_dump(by_alias=True) for a in activity]
    data["comments"] = [ClaimCommentOut.model_validate(c).model_dump(by_alias=True) for c in comments]
    return ok(data)


@router.post("/claims/comment", status_code=status.HTTP_201_CREATED)
async def add_claim_comment(
    comment: ClaimCommentCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_care_team_user)],
):
    claim = await get_claim_or_404(db, comment.claim_id)
    await record_claim_event(
        db, claim.id, current_user.id, "comment_added", f"Comment added: {comment.comment[:100]}",
        comment=comment.comment, comment_type=comment.comment_type,
    )
    await db.commit()
    return ok(message="Comment added successfully")


@router.post("/claims/void")
async def void_claim(
    action: ClaimVoid,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_care_team_user)],
):
    claim = await get_claim_or_404(db, action.claim_id)
    ensure_transition(claim, CLAIM_VOIDED)

    claim.status = CLAIM_VOIDED
    await record_claim_event(
        db, claim.id, current_user.id, "voided", f"Claim voided: {action.reason}",
        comment=f"CLAIM VOIDED: {action.reason}",
    )
    await create_audit_log(
        db, current_user.id, "VOID", "CLAIM", claim.id, description=action.reason, request=request,
    )
    await db.commit()
    return ok(message="Claim voided successfully")


@router.post("/claims/correct")
async def correct_claim(
    action: ClaimCorrect,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_care_team_user)],
):
    claim = await get_claim_or_404(db, action.claim_id)
    ensure_transition(claim, CLAIM_CORRECTED)

    claim.status = CLAIM_CORRECTED
    await record_claim_event(
        db, claim.id, current_user.id, "corrected", f"Claim corrected: {action.correction_notes}",
        comment=f"CORRECTION SUBMITTED: {action.correction_notes}", comment_type="action_required",
    )
    await create_audit_log(
        db, current_user.id, "CORRECT", "CLAIM", claim.id, description=action.correction_notes, request=request,
    )
    await db.commit()
    return ok(message="Claim correction submitted successfully")


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------

@router.get("/payments")
async def get_patient_payments(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
    patient_id: Annotated[int | None, Query(alias="patientId")] = None,
):
    patient_id = resolve_patient_id(current_user, patient_id)
    payments = (await db.scalars(
        select(PatientPayment).where(PatientPayment.patient_id == patient_id)
        .order_by(PatientPayment.payment_date.desc(), PatientPayment.id.desc())
    )).all()
    return ok([PaymentOut.model_validate(p).model_dump(by_alias=True) for p in payments])


@router.post("/payments", status_code=status.HTTP_201_CREATED)
async def record_patient_payment(
    payment_data: PaymentCreate,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_care_team_user)],
):
    """
    Record a payment or write-off.

    Raises:
        HTTPException: 404 if the patient is unknown or the claim does not belong to them.
    """
    await get_patient_or_404(db, payment_data.patient_id)
    if payment_data.claim_id is not None:
        claim = await get_claim_or_404(db, payment_data.claim_id)
        if claim.patient_id != payment_data.patient_id:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Claim not found")

    payment = PatientPayment(**payment_data.model_dump(), created_by=current_user.id)
    db.add(payment)
    await db.flush()
    await create_audit_log(
        db, current_user.id, "CREATE", "PATIENT_PAYMENT", payment.id,
        details={"amount": str(payment.amount), "type": payment.payment_type}, request=request,
    )
    await db.commit()
    return ok(message="Payment recorded successfully", paymentId=payment.id)


# ---------------------------------------------------------------------------
# Statements
# ---------------------------------------------------------------------------

def statement_pdf(statement: PatientStatement, patient: Patient) -> bytes:
    lines = [
        f"Statement: {statement.statement_number}",
        f"Statement date: {statement.statement_date:%Y-%m-%d}    Due date: {statement.due_date:%Y-%m-%d}",
        "",
        patient.full_name,
        ", ".join(p for p in (patient.address_line, patient.address_line_2) if p),
        " ".join(p for p in (patient.city, patient.state, patient.zip) if p),
        "",
        f"Services from {statement.include_services_from:%Y-%m-%d} to {statement.include_services_to:%Y-%m-%d}",
        "",
    ]
    for item in statement.line_items:
        lines.append(
            f"{item.service_date:%Y-%m-%d}  {item.description or ''}  "
            f"charges {money(item.charges)}  payments {money(item.payments)}  "
            f"adjustments {money(item.adjustments)}  balance {money(item.balance)}"
        )
    lines += [
        "",
        f"Total charges:      {money(statement.total_charges)}",
        f"Total payments:     {money(statement.total_payments)}",
        f"Total adjustments:  {money(statement.total_adjustments)}",
        f"Balance due:        {money(statement.balance_due)}",
    ]
    if statement.additional_message:
        lines += ["", statement.additional_message]
    return render_pdf_from_text("\n".join(lines), "Patient Statement")


def statement_email_html(first_name: str, statement: PatientStatement) -> str:
    return (
        f"<p>Dear {html.escape(first_name or '')},</p>"
        f"<p>Your statement {statement.statement_number} is attached. "
        f"The balance of ${money(statement.balance_due)} is due by {statement.due_date:%B %d, %Y}.</p>"
        "<p>Thank you,<br/>The Healthcare Team</p>"
    )


async def _email_statement(mailer: Mailer, patient: Patient, statement: PatientStatement) -> None:
    """
    Mail the statement PDF to the patient and mark the statement sent.

    Raises:
        HTTPException: 400 if the patient has no email, 502 if delivery fails.
    """
    email = patient.email or (patient.user.email if patient.user else None)
    if not email:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email not found")

    pdf = await asyncio.to_thread(statement_pdf, statement, patient)
    sent = await asyncio.to_thread(
        mailer.send,
        email,
        f"Your statement {statement.statement_number}",
        statement_email_html(patient.first_name, statement),
        attachments=[(f"{statement.statement_number}.pdf", pdf)],
    )
    if not sent:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Statement could not be emailed")

    statement.status = STATEMENT_SENT
    statement.sent_date = date.today()
    statement.sent_method = "email"
    log.info("Statement %s emailed to patient %s", statement.statement_number, patient.user_id)


@router.get("/statements")
async def get_patient_statements(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
    patient_id: Annotated[int | None, Query(alias="patientId")] = None,
):
    patient_id = resolve_patient_id(current_user, patient_id)
    statements = (await db.scalars(
        select(PatientStatement).where(PatientStatement.patient_id == patient_id)
        .order_by(PatientStatement.statement_date.desc(), PatientStatement.id.desc())
    )).all()
    return ok([StatementOut.model_validate(s).model_dump(by_alias=True) for s in statements])


@router.post("/statements/generate", status_code=status.HTTP_201_CREATED)
async def generate_patient_statement(
    statement_data: StatementGenerate,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_care_team_user)],
    mailer: Annotated[Mailer, Depends(get_mailer)],
):
    """
    Snapshot the account into a statement.

    Totals come from the account summary. Each claim that is not voided and
    whose date of service falls in the service window becomes one line item.
    With `sendEmail` the statement PDF is mailed to the patient; if that
    fails nothing is saved.
    """
    patient_id = statement_data.patient_id
    patient = await get_patient_or_404(db, patient_id)

    services_from = statement_data.include_services_from or statement_data.statement_date
    services_to = statement_data.include_services_to or statement_data.statement_date
    summary = await account_summary(db, patient_id)

    statement = PatientStatement(
        statement_number=document_number("STMT", statement_data.statement_date),
        patient_id=patient_id,
        statement_date=statement_data.statement_date,
        due_date=statement_data.due_date,
        total_charges=summary["total_charges"],
        total_payments=summary["total_payments"],
        total_adjustments=summary["total_adjustments"],
        balance_due=summary["outstanding_balance"],
        include_services_from=services_from,
        include_services_to=services_to,
        additional_message=statement_data.additional_message,
        created_by=current_user.id,
    )

    claims = (await db.scalars(
        select(Claim)
        .where(
            Claim.patient_id == patient_id,
            Claim.service_date.between(services_from, services_to),
            Claim.status != CLAIM_VOIDED,
        )
        .order_by(Claim.service_date.desc(), Claim.id.desc())
    )).all()
    for claim in claims:
        statement.line_items.append(StatementLineItem(
            claim_id=claim.id,
            service_date=claim.service_date,
            description=", ".join(li.description or li.cpt_code for li in claim.line_items),
            charges=sum((li.total_charge for li in claim.line_items), money(0)),
            payments=sum((li.paid_amount for li in claim.line_items), money(0)),
            adjustments=sum((li.adjustment_amount for li in claim.line_items), money(0)),
            balance=sum((li.patient_responsibility for li in claim.line_items), money(0)),
        ))

    db.add(statement)
    await db.flush()
    if statement_data.send_email:
        await _email_statement(mailer, patient, statement)
    await create_audit_log(
        db, current_user.id, "CREATE", "PATIENT_STATEMENT", statement.id,
        description=statement.statement_number, request=request,
    )
    await db.commit()

    message = "Statement generated and sent successfully" if statement_data.send_email else "Statement generated successfully"
    return ok(
        message=message,
        statementId=statement.id,
        statementNumber=statement.statement_number,
    )


@router.get("/statements/{statement_id}/download")
async def download_statement(
    statement_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
):
    """Render a statement as a PDF document."""
    statement = await db.scalar(select(PatientStatement).where(PatientStatement.id == statement_id))
    if statement is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Statement not found")
    if resolve_patient_id(current_user, statement.patient_id) != statement.patient_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    patient = await get_patient_or_404(db, statement.patient_id)

    pdf = statement_pdf(statement, patient)
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{statement.statement_number}.pdf"'},
    )


@router.post("/statements/resend")
async def resend_statement(
    resend: StatementResend,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_care_team_user)],
    mailer: Annotated[Mailer, Depends(get_mailer)],
):
    """Email the statement PDF to the patient again."""
    statement = await db.scalar(select(PatientStatement).where(PatientStatement.id == resend.statement_id))
    if statement is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Statement not found")

    patient = await get_patient_or_404(db, statement.patient_id)
    await _email_statement(mailer, patient, statement)
    await db.commit()
    return ok(message="Statement resent successfully")

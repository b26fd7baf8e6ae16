"""
Account arithmetic and claim state changes shared by the account routes.
"""
from datetime import date
from decimal import Decimal
from fastapi import HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from ulid import ULID

from carehub.features.accounts.models import (
    Claim, ClaimLineItem, ClaimComment, ClaimActivity, PatientPayment,
    CLAIM_DRAFT, CLAIM_SUBMITTED, CLAIM_DENIED, CLAIM_VOIDED, CLAIM_CORRECTED,
    PAYMENT_ADJUSTMENT,
)

CENT = Decimal("0.01")

# Target status -> statuses a claim may move from
ALLOWED_TRANSITIONS = {
    CLAIM_SUBMITTED: (CLAIM_DRAFT,),
    CLAIM_VOIDED: (CLAIM_DRAFT, CLAIM_SUBMITTED, CLAIM_DENIED),
    CLAIM_CORRECTED: (CLAIM_SUBMITTED, CLAIM_DENIED),
}


def money(value) -> Decimal:
    """Coerce a database sum (None, int, float or Decimal) to a cent-rounded Decimal."""
    if value is None:
        return Decimal("0.00")
    amount = value if isinstance(value, Decimal) else Decimal(str(value))
    return amount.quantize(CENT)


def document_number(prefix: str, today: date | None = None) -> str:
    """e.g. STMT-2024-01HV6S8Y3M6PZ4T9Q2X0N7B5RC"""
    year = (today or date.today()).year
    return f"{prefix}-{year}-{ULID()}"


def ensure_transition(claim: Claim, target: str) -> None:
    """
    Raises:
        HTTPException: 409 if the claim cannot move to `target` from its current status.
    """
    if claim.status not in ALLOWED_TRANSITIONS.get(target, ()):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Cannot change claim from {claim.status} to {target}",
        )


async def get_claim_or_404(db: AsyncSession, claim_id: int) -> Claim:
    claim = await db.scalar(select(Claim).where(Claim.id == claim_id))
    if claim is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Claim not found")
    return claim


async def record_claim_event(
    db: AsyncSession,
    claim_id: int,
    user_id: int | None,
    activity_type: str,
    description: str,
    comment: str | None = None,
    comment_type: str = "note",
) -> None:
    """Append an activity row and, when given, a comment for a claim."""
    db.add(ClaimActivity(
        claim_id=claim_id,
        activity_type=activity_type,
        description=description,
        performed_by=user_id,
    ))
    if comment is not None:
        db.add(ClaimComment(
            claim_id=claim_id,
            comment_text=comment,
            comment_type=comment_type,
            created_by=user_id,
        ))
    await db.flush()


async def account_summary(db: AsyncSession, patient_id: int) -> dict[str, Decimal | int]:
    """
    Running totals for a patient's account.

    Charges, insurance payments and contractual adjustments come from the
    line items of claims that are not voided. Patient payments and
    write-offs come from `patient_payments`, where `payment_type`
    "adjustment" is a write-off. The outstanding balance is charges less
    every payment and adjustment.
    """
    live_claim = (Claim.patient_id == patient_id, Claim.status != CLAIM_VOIDED)

    charges, insurance_paid, line_adjustments = (await db.execute(
        select(
            func.coalesce(func.sum(ClaimLineItem.total_charge), 0),
            func.coalesce(func.sum(ClaimLineItem.paid_amount), 0),
            func.coalesce(func.sum(ClaimLineItem.adjustment_amount), 0),
        )
        .join(Claim, Claim.id == ClaimLineItem.claim_id)
        .where(*live_claim)
    )).one()

    patient_paid = await db.scalar(
        select(func.coalesce(func.sum(PatientPayment.amount), 0))
        .where(PatientPayment.patient_id == patient_id, PatientPayment.payment_type != PAYMENT_ADJUSTMENT)
    )
    written_off = await db.scalar(
        select(func.coalesce(func.sum(PatientPayment.amount), 0))
        .where(PatientPayment.patient_id == patient_id, PatientPayment.payment_type == PAYMENT_ADJUSTMENT)
    )

    claim_counts = dict((await db.execute(
        select(Claim.status, func.count(Claim.id))
        .where(Claim.patient_id == patient_id)
        .group_by(Claim.status)
    )).all())

    total_charges = money(charges)
    total_payments = money(insurance_paid) + money(patient_paid)
    total_adjustments = money(line_adjustments) + money(written_off)

    return {
        "total_charges": total_charges,
        "insurance_payments": money(insurance_paid),
        "patient_payments": money(patient_paid),
        "total_payments": total_payments,
        "total_adjustments": total_adjustments,
        "outstanding_balance": total_charges - total_payments - total_adjustments,
        "total_claims": sum(claim_counts.values()),
        "open_claims": claim_counts.get(CLAIM_DRAFT, 0) + claim_counts.get(CLAIM_SUBMITTED, 0),
        "denied_claims": claim_counts.get(CLAIM_DENIED, 0),
    }

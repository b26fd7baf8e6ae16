"""
Pydantic schemas for claims, payments and statements.
"""
from datetime import date, datetime
from decimal import Decimal
from pydantic import Field, model_validator

from carehub.features.patients.schemas import CamelModel


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

class ClaimLineItemIn(CamelModel):
    cpt_code: str = Field(..., min_length=1, max_length=10)
    description: str | None = Field(None, max_length=255)
    units: int = Field(1, ge=1)
    unit_charge: Decimal = Field(..., ge=0, decimal_places=2)


class ClaimCreate(CamelModel):
    patient_id: int
    provider_id: int | None = None
    payer_name: str | None = None
    service_date: date
    line_items: list[ClaimLineItemIn] = Field(..., min_length=1)


class ClaimAction(CamelModel):
    claim_id: int


class ClaimCommentCreate(ClaimAction):
    comment: str = Field(..., min_length=1)
    comment_type: str = "note"


class ClaimVoid(ClaimAction):
    reason: str = Field(..., min_length=1)


class ClaimCorrect(ClaimAction):
    correction_notes: str = Field(..., min_length=1)


class PaymentCreate(CamelModel):
    patient_id: int
    claim_id: int | None = None
    payment_type: str = Field(..., min_length=1, max_length=30)
    payment_method: str = Field(..., min_length=1, max_length=30)
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    payment_date: date
    reference_number: str | None = None
    payer_name: str | None = None
    check_number: str | None = None
    transaction_id: str | None = None
    applied_to_service_date: date | None = None
    notes: str | None = None


class StatementGenerate(CamelModel):
    patient_id: int
    statement_date: date
    due_date: date
    include_services_from: date | None = None
    include_services_to: date | None = None
    additional_message: str | None = None
    send_email: bool = False

    @model_validator(mode="after")
    def check_dates(self):
        if self.due_date < self.statement_date:
            raise ValueError("dueDate must not be before statementDate")
        start = self.include_services_from or self.statement_date
        end = self.include_services_to or self.statement_date
        if end < start:
            raise ValueError("includeServicesTo must not be before includeServicesFrom")
        return self


class StatementResend(CamelModel):
    statement_id: int


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class ClaimLineItemOut(CamelModel):
    id: int
    cpt_code: str
    description: str | None = None
    units: int
    unit_charge: Decimal
    total_charge: Decimal
    paid_amount: Decimal
    adjustment_amount: Decimal
    patient_responsibility: Decimal


class ClaimOut(CamelModel):
    id: int
    claim_number: str
    patient_id: int
    provider_id: int | None = None
    payer_name: str | None = None
    service_date: date
    status: str
    total_amount: Decimal
    submitted_date: date | None = None
    appeal_deadline: date | None = None
    created_at: datetime
    updated_at: datetime
    line_items: list[ClaimLineItemOut] = []


class ClaimCommentOut(CamelModel):
    id: int
    comment_text: str
    comment_type: str
    created_by: int | None = None
    created_at: datetime


class ClaimActivityOut(CamelModel):
    id: int
    activity_type: str
    description: str | None = None
    performed_by: int | None = None
    performed_at: datetime


class PaymentOut(CamelModel):
    id: int
    patient_id: int
    claim_id: int | None = None
    payment_type: str
    payment_method: str
    amount: Decimal
    payment_date: date
    reference_number: str | None = None
    payer_name: str | None = None
    check_number: str | None = None
    transaction_id: str | None = None
    applied_to_service_date: date | None = None
    notes: str | None = None
    created_by: int | None = None
    created_at: datetime


class StatementLineItemOut(CamelModel):
    claim_id: int | None = None
    service_date: date
    description: str | None = None
    charges: Decimal
    payments: Decimal
    adjustments: Decimal
    balance: Decimal


class StatementOut(CamelModel):
    id: int
    statement_number: str
    patient_id: int
    statement_date: date
    due_date: date
    total_charges: Decimal
    total_payments: Decimal
    total_adjustments: Decimal
    balance_due: Decimal
    include_services_from: date
    include_services_to: date
    additional_message: str | None = None
    status: str
    sent_date: date | None = None
    sent_method: str | None = None
    created_at: datetime
    line_items: list[StatementLineItemOut] = []

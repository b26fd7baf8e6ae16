from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import update

from carehub.features.accounts.models import ClaimLineItem
from carehub.features.accounts.service import document_number, money


def claim_payload(patient_id, **overrides):
    payload = {
        "patientId": patient_id,
        "payerName": "Acme Health",
        "serviceDate": "2024-05-10",
        "lineItems": [{"cptCode": "99453", "description": "RPM setup", "units": 2, "unitCharge": "75.00"}],
    }
    payload.update(overrides)
    return payload


async def create_claim(client, headers, patient_id, **overrides):
    resp = await client.post("/account/claims", json=claim_payload(patient_id, **overrides), headers=headers)
    assert resp.status_code == 201
    return resp.json()["data"]["claimId"]


def test_money_rounds_to_cents():
    assert money(None) == Decimal("0.00")
    assert money(12) == Decimal("12.00")
    assert money(0.1 + 0.2) == Decimal("0.30")


def test_document_number_format():
    number = document_number("CLM", date(2024, 3, 1))
    prefix, year, suffix = number.split("-")
    assert (prefix, year) == ("CLM", "2024")
    assert len(suffix) == 26
    assert number != document_number("CLM", date(2024, 3, 1))


@pytest.mark.asyncio
async def test_create_claim(client, provider, make_patient, auth):
    patient = await make_patient()
    resp = await client.post("/account/claims", json=claim_payload(patient.user_id), headers=auth(provider))
    assert resp.status_code == 201
    data = resp.json()["data"]
    assert data["claimNumber"].startswith(f"CLM-{date.today().year}-")

    resp = await client.get("/account/claims", params={"patientId": patient.user_id}, headers=auth(provider))
    claims = resp.json()["data"]
    assert len(claims) == 1
    claim = claims[0]
    assert claim["status"] == "draft"
    assert claim["totalAmount"] == 150.0
    assert claim["providerName"] == "Gregory House"
    assert claim["daysSinceSubmission"] is None
    assert claim["lineItems"][0]["totalCharge"] == 150.0


@pytest.mark.asyncio
async def test_create_claim_requires_line_items(client, provider, make_patient, auth):
    patient = await make_patient()
    resp = await client.post(
        "/account/claims", json=claim_payload(patient.user_id, lineItems=[]), headers=auth(provider),
    )
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_claim_lifecycle(client, provider, make_patient, auth):
    patient = await make_patient()
    headers = auth(provider)
    claim_id = await create_claim(client, headers, patient.user_id)

    resp = await client.post("/account/claims/submit", json={"claimId": claim_id}, headers=headers)
    assert resp.status_code == 200

    resp = await client.post("/account/claims/submit", json={"claimId": claim_id}, headers=headers)
    assert resp.status_code == 409
    assert resp.json()["message"] == "Cannot change claim from submitted to submitted"

    resp = await client.post(
        "/account/claims/correct", json={"claimId": claim_id, "correctionNotes": "Wrong modifier"}, headers=headers,
    )
    assert resp.status_code == 200

    resp = await client.post("/account/claims/void", json={"claimId": claim_id, "reason": "dup"}, headers=headers)
    assert resp.status_code == 409

    resp = await client.post(
        "/account/claims/comment", json={"claimId": claim_id, "comment": "Called payer"}, headers=headers,
    )
    assert resp.status_code == 201

    resp = await client.get(f"/account/claims/{claim_id}", headers=headers)
    data = resp.json()["data"]
    assert data["status"] == "corrected"
    assert data["submittedDate"] == date.today().isoformat()
    assert data["daysSinceSubmission"] == 0
    assert [a["activityType"] for a in data["activityLog"]] == ["comment_added", "corrected", "submitted", "created"]
    assert [c["commentText"] for c in data["comments"]] == [
        "Called payer", "CORRECTION SUBMITTED: Wrong modifier", "CLAIM SUBMITTED",
    ]
    assert data["comments"][1]["commentType"] == "action_required"


@pytest.mark.asyncio
async def test_void_draft_claim(client, provider, make_patient, auth):
    patient = await make_patient()
    headers = auth(provider)
    claim_id = await create_claim(client, headers, patient.user_id)

    resp = await client.post("/account/claims/void", json={"claimId": claim_id, "reason": "Entered twice"}, headers=headers)
    assert resp.status_code == 200

    resp = await client.post("/account/claims/submit", json={"claimId": claim_id}, headers=headers)
    assert resp.status_code == 409

    resp = await client.post("/account/claims/submit", json={"claimId": 9999}, headers=headers)
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_account_summary(client, session_factory, provider, make_patient, auth):
    patient = await make_patient()
    headers = auth(provider)
    paid_claim = await create_claim(client, headers, patient.user_id)
    voided_claim = await create_claim(
        client, headers, patient.user_id,
        lineItems=[{"cptCode": "99454", "units": 1, "unitCharge": "40.00"}],
    )
    await client.post("/account/claims/void", json={"claimId": voided_claim, "reason": "dup"}, headers=headers)

    async with session_factory() as s:
        await s.execute(
            update(ClaimLineItem)
            .where(ClaimLineItem.claim_id == paid_claim)
            .values(paid_amount=Decimal("100.00"), adjustment_amount=Decimal("20.00"))
        )
        await s.commit()

    for payment_type, amount in (("patient", "15.00"), ("adjustment", "5.00")):
        resp = await client.post("/account/payments", json={
            "patientId": patient.user_id,
            "claimId": paid_claim,
            "paymentType": payment_type,
            "paymentMethod": "card",
            "amount": amount,
            "paymentDate": "2024-06-02",
        }, headers=headers)
        assert resp.status_code == 201
        assert resp.json()["paymentId"]

    resp = await client.get("/account/summary", params={"patientId": patient.user_id}, headers=headers)
    data = resp.json()["data"]
    assert data["total_charges"] == 150.0
    assert data["insurance_payments"] == 100.0
    assert data["patient_payments"] == 15.0
    assert data["total_payments"] == 115.0
    assert data["total_adjustments"] == 25.0
    assert data["outstanding_balance"] == 10.0
    assert data["total_claims"] == 2
    assert data["open_claims"] == 1
    assert data["denied_claims"] == 0

    resp = await client.get("/account/payments", params={"patientId": patient.user_id}, headers=headers)
    assert len(resp.json()["data"]) == 2

    # A patient only ever sees their own account
    resp = await client.get("/account/summary", params={"patientId": 4242}, headers=auth(patient.user))
    assert resp.json()["data"]["patientId"] == patient.user_id


@pytest.mark.asyncio
async def test_payment_against_another_patients_claim(client, provider, make_patient, auth):
    patient = await make_patient()
    other = await make_patient("John", "Roe")
    headers = auth(provider)
    claim_id = await create_claim(client, headers, other.user_id)

    resp = await client.post("/account/payments", json={
        "patientId": patient.user_id,
        "claimId": claim_id,
        "paymentType": "patient",
        "paymentMethod": "cash",
        "amount": "10.00",
        "paymentDate": "2024-06-02",
    }, headers=headers)
    assert resp.status_code == 404
    assert resp.json()["message"] == "Claim not found"


@pytest.mark.asyncio
async def test_generate_and_download_statement(client, provider, make_patient, auth, mailer):
    patient = await make_patient(address_line="1 Main St", city="Springfield", state="IL", zip="62701")
    other = await make_patient("John", "Roe")
    headers = auth(provider)
    await create_claim(client, headers, patient.user_id)
    # Outside the service window
    await create_claim(client, headers, patient.user_id, serviceDate="2024-03-01")

    resp = await client.post("/account/statements/generate", json={
        "patientId": patient.user_id,
        "statementDate": "2024-06-01",
        "dueDate": "2024-06-30",
        "includeServicesFrom": "2024-05-01",
        "includeServicesTo": "2024-05-31",
        "additionalMessage": "Thank you",
    }, headers=headers)
    assert resp.status_code == 201
    body = resp.json()
    assert body["statementNumber"].startswith("STMT-2024-")
    statement_id = body["statementId"]

    resp = await client.get("/account/statements", params={"patientId": patient.user_id}, headers=headers)
    statement = resp.json()["data"][0]
    assert statement["status"] == "generated"
    assert statement["totalCharges"] == 300.0
    assert statement["balanceDue"] == 300.0
    assert len(statement["lineItems"]) == 1
    assert statement["lineItems"][0]["serviceDate"] == "2024-05-10"
    assert statement["lineItems"][0]["charges"] == 150.0

    resp = await client.get(f"/account/statements/{statement_id}/download", headers=headers)
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "application/pdf"
    assert resp.content.startswith(b"%PDF")

    resp = await client.get(f"/account/statements/{statement_id}/download", headers=auth(patient.user))
    assert resp.status_code == 200
    resp = await client.get(f"/account/statements/{statement_id}/download", headers=auth(other.user))
    assert resp.status_code == 403

    resp = await client.post("/account/statements/resend", json={"statementId": statement_id}, headers=headers)
    assert resp.status_code == 200
    to, subject, _body, attachments = mailer.sent[0]
    assert to == patient.email
    assert body["statementNumber"] in subject
    assert attachments[0][0] == f"{body['statementNumber']}.pdf"
    assert attachments[0][1].startswith(b"%PDF")
    resp = await client.get("/account/statements", params={"patientId": patient.user_id}, headers=headers)
    assert resp.json()["data"][0]["status"] == "sent"
    assert resp.json()["data"][0]["sentMethod"] == "email"

    resp = await client.post("/account/statements/resend", json={"statementId": 9999}, headers=headers)
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_statement_date_order(client, provider, make_patient, auth):
    patient = await make_patient()
    resp = await client.post("/account/statements/generate", json={
        "patientId": patient.user_id,
        "statementDate": "2024-06-01",
        "dueDate": "2024-05-01",
    }, headers=auth(provider))
    assert resp.status_code == 400
    assert resp.json()["message"] == "Validation error"


@pytest.mark.asyncio
async def test_generate_statement_with_email(client, provider, make_patient, auth, mailer):
    patient = await make_patient()
    headers = auth(provider)
    await create_claim(client, headers, patient.user_id)

    resp = await client.post("/account/statements/generate", json={
        "patientId": patient.user_id,
        "statementDate": "2024-06-01",
        "dueDate": "2024-06-30",
        "includeServicesFrom": "2024-05-01",
        "includeServicesTo": "2024-05-31",
        "sendEmail": True,
    }, headers=headers)
    assert resp.status_code == 201
    assert resp.json()["message"] == "Statement generated and sent successfully"

    assert len(mailer.sent) == 1
    _to, _subject, html_body, attachments = mailer.sent[0]
    assert "$150.00" in html_body
    assert attachments[0][1].startswith(b"%PDF")

    statement = (await client.get(
        "/account/statements", params={"patientId": patient.user_id}, headers=headers,
    )).json()["data"][0]
    assert statement["status"] == "sent"
    assert statement["sentMethod"] == "email"


@pytest.mark.asyncio
async def test_statement_not_marked_sent_when_email_fails(client, provider, make_patient, auth, mailer):
    mailer.result = False
    patient = await make_patient()
    headers = auth(provider)

    resp = await client.post("/account/statements/generate", json={
        "patientId": patient.user_id, "statementDate": "2024-06-01", "dueDate": "2024-06-30", "sendEmail": True,
    }, headers=headers)
    assert resp.status_code == 502
    resp = await client.get("/account/statements", params={"patientId": patient.user_id}, headers=headers)
    assert resp.json()["data"] == []

    mailer.result = True
    resp = await client.post("/account/statements/generate", json={
        "patientId": patient.user_id, "statementDate": "2024-06-01", "dueDate": "2024-06-30",
    }, headers=headers)
    statement_id = resp.json()["statementId"]

    mailer.result = False
    resp = await client.post("/account/statements/resend", json={"statementId": statement_id}, headers=headers)
    assert resp.status_code == 502
    statement = (await client.get(
        "/account/statements", params={"patientId": patient.user_id}, headers=headers,
    )).json()["data"][0]
    assert statement["status"] == "generated"
    assert statement["sentMethod"] is None

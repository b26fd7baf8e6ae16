from datetime import date, datetime
from decimal import Decimal

import pytest

from carehub.features.billing.models import CptBilling, CptCode
from carehub.features.billing.timings import (
    POLICY_EXCLUSIVE,
    calculate_billed_minutes,
    cpt_total,
    month_range,
    program_minutes,
)
from carehub.features.clinical.models import Note, Task


def test_calculate_billed_minutes():
    assert calculate_billed_minutes(47) == {"total": 47, "billed": 40, "unbilled": 7}
    assert calculate_billed_minutes(0) == {"total": 0, "billed": 0, "unbilled": 0}
    assert calculate_billed_minutes(None) == {"total": 0, "billed": 0, "unbilled": 0}
    assert calculate_billed_minutes(20) == {"total": 20, "billed": 20, "unbilled": 0}


def test_calculate_billed_minutes_custom_increment():
    assert calculate_billed_minutes(47, increment=30) == {"total": 47, "billed": 30, "unbilled": 17}


def test_month_range_covers_whole_month():
    start, end = month_range(date(2024, 2, 10))
    assert start == datetime(2024, 2, 1, 0, 0, 0)
    assert end == datetime(2024, 2, 29, 23, 59, 59, 999999)

    start, end = month_range(datetime(2023, 12, 31, 18, 30))
    assert start == datetime(2023, 12, 1)
    assert end.date() == date(2023, 12, 31)


def test_cpt_total_counts_missing_units_as_one():
    rows = [
        {"price": Decimal("25.00"), "code_units": 2},
        {"price": Decimal("10.00"), "code_units": 0},
    ]
    assert cpt_total(rows) == 60.00
    assert cpt_total([{"price": 19.735, "code_units": None}]) == 19.74
    assert cpt_total([]) == 0.0


@pytest.mark.asyncio
async def test_program_minutes_sums_notes_and_tasks(db, make_patient):
    patient = await make_patient()
    day = datetime(2024, 5, 14, 10, 0)
    db.add(Note(patient_id=patient.user_id, note="call", duration=15, type="rpm", created=day))
    db.add(Task(patient_id=patient.user_id, title="review", duration=10, type="RPM review", created=day))
    # Outside the month
    db.add(Note(patient_id=patient.user_id, note="old", duration=30, type="rpm", created=datetime(2024, 4, 30, 23, 59)))
    await db.commit()

    start, end = month_range(day)
    minutes = await program_minutes(db, patient.user_id, start, end)
    assert minutes == {"rpm_minutes": 25, "ccm_minutes": 0, "pcm_minutes": 0}


@pytest.mark.asyncio
async def test_program_minutes_ignores_duplicate_rows(db, make_patient):
    patient = await make_patient()
    day = datetime(2024, 5, 14, 10, 0)
    for _ in range(3):
        db.add(Note(patient_id=patient.user_id, note="dup", duration=12, type="ccm", created=day))
    db.add(Note(patient_id=patient.user_id, note="other", duration=12, type="ccm", created=datetime(2024, 5, 15)))
    await db.commit()

    start, end = month_range(day)
    minutes = await program_minutes(db, patient.user_id, start, end)
    assert minutes["ccm_minutes"] == 24


@pytest.mark.asyncio
async def test_program_minutes_tag_policy(db, make_patient):
    patient = await make_patient()
    day = datetime(2024, 5, 14, 10, 0)
    db.add(Note(patient_id=patient.user_id, note="both", duration=20, type="rpm/ccm", created=day))
    await db.commit()

    start, end = month_range(day)
    independent = await program_minutes(db, patient.user_id, start, end, policy="independent")
    assert independent == {"rpm_minutes": 20, "ccm_minutes": 20, "pcm_minutes": 0}

    exclusive = await program_minutes(db, patient.user_id, start, end, policy=POLICY_EXCLUSIVE)
    assert exclusive == {"rpm_minutes": 20, "ccm_minutes": 0, "pcm_minutes": 0}

    with pytest.raises(ValueError):
        await program_minutes(db, patient.user_id, start, end, policy="weighted")


@pytest.mark.asyncio
async def test_get_patient_timings(client, db, provider, make_patient, auth):
    patient = await make_patient()
    day = datetime(2024, 5, 14, 10, 0)
    db.add(Note(patient_id=patient.user_id, note="call", duration=15, type="rpm", created=day))
    db.add(Task(patient_id=patient.user_id, title="review", duration=10, type="rpm", created=day))
    cheap = CptCode(code="90001", description="test", price=Decimal("25.00"))
    free_units = CptCode(code="90002", description="test", price=Decimal("10.00"))
    db.add_all([cheap, free_units])
    await db.flush()
    db.add(CptBilling(patient_id=patient.user_id, cpt_code_id=cheap.id, code_units=2, created=day))
    db.add(CptBilling(patient_id=patient.user_id, cpt_code_id=free_units.id, code_units=0, created=day))
    await db.commit()

    resp = await client.get(
        "/patient/getPatientTimings",
        params={"patientId": patient.user_id, "date": "2024-05-01"},
        headers=auth(provider),
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["totalMinutes"] == 25
    assert body["rpm_minutes"] == 25
    assert body["ccm_minutes"] == 0
    assert body["pcm_minutes"] == 0
    assert body["totalAmount"] == 60.0
    assert body["filterRange"] == {"startDate": "2024-05-01 00:00:00", "endDate": "2024-05-31 23:59:59"}
    assert len(body["tasks"]) == 1
    assert len(body["notes"]) == 1
    assert len(body["cpt_data"]) == 2


@pytest.mark.asyncio
async def test_monthly_summary(client, db, provider, make_patient, auth):
    patient = await make_patient()
    day = datetime(2024, 5, 14, 10, 0)
    db.add(Note(patient_id=patient.user_id, note="call", duration=47, type="ccm", created=day))
    await db.commit()

    resp = await client.get(
        f"/patient/{patient.user_id}/summary/ccm",
        params={"date": "2024-05-20"},
        headers=auth(provider),
    )
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["total_minutes"] == {"total": 47, "billed": 40, "unbilled": 7}
    assert data["ccm_minutes"] == 47
    assert data["providerId"] == provider.id
    assert "physicianId" not in data

    resp = await client.get("/patient/999/summary", headers=auth(provider))
    assert resp.json() == {"success": False, "message": "Patient data not found"}


@pytest.mark.asyncio
async def test_timings_require_care_team(client, make_patient, auth):
    patient = await make_patient()
    resp = await client.get(
        "/patient/getPatientTimings",
        params={"patientId": patient.user_id},
        headers=auth(patient.user),
    )
    assert resp.status_code == 403
    assert resp.json()["success"] is False

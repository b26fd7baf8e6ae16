import pytest


def bed(patient_id, bed_no="12", ward_no="3", room_type="private"):
    return {"patientId": patient_id, "bedNo": bed_no, "wardNo": ward_no, "roomType": room_type}


@pytest.mark.asyncio
async def test_assign_and_unassign_bed(client, provider, make_patient, auth):
    patient = await make_patient()
    headers = auth(provider)

    resp = await client.post("/patient/assignBedToPatient", json=bed(patient.user_id), headers=headers)
    assert resp.status_code == 200
    assert resp.json()["data"]["assignmentId"]

    resp = await client.post("/patient/assignBedToPatient", json=bed(patient.user_id, bed_no="14"), headers=headers)
    assert resp.status_code == 400
    assert resp.json()["message"] == "Patient already has a bed assigned."

    resp = await client.get("/patient/getAllBeds", headers=headers)
    rows = resp.json()["data"]
    assert len(rows) == 1
    assert rows[0]["bedNo"] == "12"
    assert rows[0]["patientName"] == "Jane Doe"
    assert rows[0]["bedStatus"] == "Assigned"

    resp = await client.post("/patient/unassignBedFromPatient", params={"patientId": patient.user_id}, headers=headers)
    assert resp.status_code == 200

    resp = await client.post("/patient/unassignBedFromPatient", params={"patientId": patient.user_id}, headers=headers)
    assert resp.status_code == 400

    resp = await client.get("/patient/getAllBeds", params={"status": 2}, headers=headers)
    rows = resp.json()["data"]
    assert rows[0]["bedStatus"] == "Unassigned"
    assert rows[0]["unassignedAt"] is not None


@pytest.mark.asyncio
async def test_occupied_bed_conflict(client, provider, make_patient, auth):
    first = await make_patient()
    second = await make_patient("John", "Roe")
    headers = auth(provider)

    resp = await client.post("/patient/assignBedToPatient", json=bed(first.user_id), headers=headers)
    assert resp.status_code == 200
    resp = await client.post("/patient/assignBedToPatient", json=bed(second.user_id), headers=headers)
    assert resp.status_code == 409

    # Same bed number in another ward is a different bed
    resp = await client.post("/patient/assignBedToPatient", json=bed(second.user_id, ward_no="4"), headers=headers)
    assert resp.status_code == 200

    # A released bed can be reused
    await client.post("/patient/unassignBedFromPatient", params={"patientId": first.user_id}, headers=headers)
    third = await make_patient("Ann", "Lee")
    resp = await client.post("/patient/assignBedToPatient", json=bed(third.user_id), headers=headers)
    assert resp.status_code == 200

    resp = await client.get("/patient/getAllBeds", params={"status": 1}, headers=headers)
    assert {row["patientId"] for row in resp.json()["data"]} == {second.user_id, third.user_id}


@pytest.mark.asyncio
async def test_beds_require_care_team(client, make_patient, auth):
    patient = await make_patient()
    resp = await client.post("/patient/assignBedToPatient", json=bed(patient.user_id), headers=auth(patient.user))
    assert resp.status_code == 403

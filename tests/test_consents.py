import io
from datetime import timedelta

import pytest
from boto3.exceptions import S3UploadFailedError
from pypdf import PdfReader
from sqlalchemy import func, select

from carehub.core.config import StorageSettings
from carehub.core.pdf import FormFlattener, mark_submitted, render_pdf_from_html
from carehub.features.consents import routes as consent_routes
from carehub.features.consents.models import ConsentToken, PatientConsent, TOKEN_CONSUMED
from carehub.features.consents.storage import DocumentStorage, get_storage
from carehub.main import app
from carehub.utils import now

FORM_HTML = """
<html><body>
  <h1>Remote Patient Monitoring Consent</h1>
  <p>I agree to participate in the RPM program.</p>
  <button type="submit" class="btn submit-button">Submit</button>
</body></html>
"""


class FakeStorage(DocumentStorage):
    """Writes real local copies; uploads succeed unless told otherwise."""

    def __init__(self, local_dir, upload_ok=True):
        super().__init__(StorageSettings(
            bucket_name="test-bucket", region="us-east-1",
            access_key_id=None, secret_access_key=None, local_dir=str(local_dir),
        ))
        self.upload_ok = upload_ok
        self.uploads = []

    def upload(self, path, key):
        self.uploads.append(key)
        return f"https://test-bucket.s3.us-east-1.amazonaws.com/{key}" if self.upload_ok else None


@pytest.fixture
def storage(tmp_path):
    fake = FakeStorage(tmp_path)
    app.dependency_overrides[get_storage] = lambda: fake
    yield fake
    app.dependency_overrides.pop(get_storage, None)


async def open_token(db, patient, token="tok-123", age=timedelta(0)):
    row = ConsentToken(patient_id=patient.user_id, consent_token=token, created_at=now() - age)
    db.add(row)
    await db.commit()
    return token


def test_mark_submitted_replaces_button():
    html = mark_submitted(FORM_HTML)
    assert "Submitted" in html
    assert "disabled" in html
    assert ">Submit<" not in html


SIGNED_FORM_HTML = """
<html><head><style>.form-value { font-weight: bold; }</style></head><body>
  <h1>Consent</h1>
  <label>Patient name <input type="text" name="name" value="Jane Q Patient"></label>
  <label><input type="checkbox" name="rpm" checked> RPM</label>
  <label><input type="checkbox" name="ccm"> CCM</label>
  <select name="relationship"><option>Self</option><option selected>Guardian</option></select>
  <textarea name="notes">Call after 5pm</textarea>
  <input type="hidden" name="csrf" value="secret-value">
  <script>document.write("should not render")</script>
  <img alt="signature" style="width:160px;height:40px"
       src="data:image/png;base64,iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg==">
  <button class="submit-button" disabled>Submitted</button>
</body></html>
"""


def test_form_flattener_keeps_entered_values():
    flattener = FormFlattener()
    flat = flattener.flatten(SIGNED_FORM_HTML)
    assert flattener.has_content
    assert '<span class="form-value">Jane Q Patient</span>' in flat
    assert '<span class="form-value">[x]</span> RPM' in flat
    assert '<span class="form-value">[ ]</span> CCM' in flat
    assert '<span class="form-value">Guardian</span>' in flat
    assert "Self" not in flat
    assert '<div class="form-value">Call after 5pm</div>' in flat
    assert "secret-value" not in flat
    assert "should not render" not in flat
    assert 'src="data:image/png;base64,' in flat


def test_render_pdf_from_html():
    pdf = render_pdf_from_html(FORM_HTML, "Consent")
    assert pdf.startswith(b"%PDF")
    with pytest.raises(ValueError):
        render_pdf_from_html("<div>   </div>", "Consent")
    with pytest.raises(ValueError):
        render_pdf_from_html("<script>alert(1)</script><input type='hidden' value='x'>", "Consent")


def test_signed_form_pdf_carries_values_and_signature():
    reader = PdfReader(io.BytesIO(render_pdf_from_html(SIGNED_FORM_HTML, "Patient Consent Form")))
    page = reader.pages[0]
    text = page.extract_text()
    assert "Jane Q Patient" in text
    assert "[x]" in text
    assert "Guardian" in text
    assert "Call after 5pm" in text
    assert len(page.images) >= 1
    assert reader.metadata.title == "Patient Consent Form"


@pytest.mark.asyncio
async def test_send_consent_email(client, session_factory, provider, make_patient, auth, mailer):
    patient = await make_patient(service_type=[1, 2])
    resp = await client.get(
        "/patient/sendConsentEmail", params={"patientId": patient.user_id}, headers=auth(provider),
    )
    assert resp.status_code == 200
    assert resp.json()["success"] is True

    assert len(mailer.sent) == 1
    to, _subject, body, _attachments = mailer.sent[0]
    assert to == patient.email

    async with session_factory() as s:
        token = await s.scalar(select(ConsentToken).where(ConsentToken.patient_id == patient.user_id))
    assert token.status == 0
    assert f"token={token.consent_token}" in body

    resp = await client.get("/ehr/consent-form", params={"token": token.consent_token})
    data = resp.json()["data"]
    assert data["firstName"] == "Jane"
    assert data["doctorName"] == "Gregory House"
    assert data["services"] == ["RPM", "CCM"]


@pytest.mark.asyncio
async def test_send_consent_email_failure_keeps_no_token(client, session_factory, provider, make_patient, auth, mailer):
    mailer.result = False
    patient = await make_patient()
    resp = await client.get(
        "/patient/sendConsentEmail", params={"patientId": patient.user_id}, headers=auth(provider),
    )
    assert resp.status_code == 502
    async with session_factory() as s:
        assert await s.scalar(select(ConsentToken.id)) is None


@pytest.mark.asyncio
async def test_send_consent_email_unknown_patient(client, provider, auth, mailer):
    resp = await client.get("/patient/sendConsentEmail", params={"patientId": 777}, headers=auth(provider))
    assert resp.status_code == 400
    assert resp.json()["message"] == "Patient not found"


@pytest.mark.asyncio
async def test_consent_form_token_checks(client, db, make_patient):
    patient = await make_patient()

    resp = await client.get("/ehr/consent-form")
    assert resp.status_code == 400

    resp = await client.get("/ehr/consent-form", params={"token": "missing"})
    assert resp.status_code == 404
    assert resp.json() == {"success": False, "message": "Link is expired or invalid"}

    expired = await open_token(db, patient, token="old-token", age=timedelta(hours=49))
    resp = await client.get("/ehr/consent-form", params={"token": expired})
    assert resp.status_code == 410

    fresh = await open_token(db, patient, token="new-token", age=timedelta(hours=47))
    resp = await client.get("/ehr/consent-form", params={"token": fresh})
    assert resp.status_code == 200


@pytest.mark.asyncio
async def test_submit_consent_form(client, db, session_factory, make_patient, storage):
    patient = await make_patient()
    token = await open_token(db, patient)

    resp = await client.post("/ehr/consent-form/submit", json={"token": token, "htmlContent": FORM_HTML})
    assert resp.status_code == 202
    body = resp.json()["data"]
    consent_id = body["consentId"]
    assert body["jobStatus"] == "pending"

    # The token is single use
    resp = await client.get("/ehr/consent-form", params={"token": token})
    assert resp.status_code == 404
    resp = await client.post("/ehr/consent-form/submit", json={"token": token, "htmlContent": FORM_HTML})
    assert resp.status_code == 404

    resp = await client.get(f"/ehr/consent-form/jobs/{consent_id}", params={"token": token})
    job = resp.json()["data"]
    assert job["jobStatus"] == "completed"
    assert job["documentUrl"].startswith("https://test-bucket.s3.us-east-1.amazonaws.com/documents/consents/")
    assert job["error"] is None

    async with session_factory() as s:
        consent = await s.scalar(select(PatientConsent).where(PatientConsent.id == consent_id))
        token_row = await s.scalar(select(ConsentToken).where(ConsentToken.consent_token == token))
    assert consent.status == 1
    assert consent.received is not None
    with open(consent.local_path, "rb") as f:
        assert f.read(4) == b"%PDF"
    assert token_row.status == TOKEN_CONSUMED
    assert token_row.consumed_at is not None

    resp = await client.get(f"/ehr/consent-form/jobs/{consent_id}", params={"token": "wrong"})
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_submit_consent_form_upload_failure(client, db, make_patient, storage):
    storage.upload_ok = False
    patient = await make_patient()
    token = await open_token(db, patient)

    resp = await client.post("/ehr/consent-form/submit", json={"token": token, "htmlContent": FORM_HTML})
    consent_id = resp.json()["data"]["consentId"]

    job = (await client.get(f"/ehr/consent-form/jobs/{consent_id}", params={"token": token})).json()["data"]
    assert job["jobStatus"] == "failed"
    assert job["error"] == "Document upload failed"
    assert job["documentUrl"] is None
    # First attempt plus one retry
    assert len(storage.uploads) == 2


@pytest.mark.asyncio
async def test_submit_expired_token(client, db, make_patient, storage):
    patient = await make_patient()
    token = await open_token(db, patient, age=timedelta(hours=49))
    resp = await client.post("/ehr/consent-form/submit", json={"token": token, "htmlContent": FORM_HTML})
    assert resp.status_code == 410


@pytest.mark.asyncio
async def test_upload_and_list_consents(client, db, provider, make_patient, auth, storage):
    patient = await make_patient()
    token = await open_token(db, patient)

    resp = await client.post(
        "/patient/uploadConsentForm",
        data={"token": token, "consentType": "ccm"},
        files={"pdf": ("signed.pdf", b"%PDF-1.4 signed", "application/pdf")},
        headers=auth(provider),
    )
    assert resp.status_code == 201
    assert resp.json()["data"]["documentUrl"].endswith("signed.pdf")

    resp = await client.post(
        "/patient/uploadConsentForm",
        data={"token": token, "consentType": "ccm"},
        files={"pdf": ("big.pdf", b"0" * (5 * 1024 * 1024 + 1), "application/pdf")},
        headers=auth(provider),
    )
    assert resp.status_code == 400

    resp = await client.get(
        "/patient/getAllConsents", params={"patientId": patient.user_id}, headers=auth(provider),
    )
    body = resp.json()
    assert body["pagination"]["total"] == 1
    assert body["data"][0]["consentType"] == "ccm"
    assert body["data"][0]["status"] == "Received"


class RejectingS3Client:
    """Stands in for a boto3 S3 client whose bucket refuses writes."""

    def __init__(self):
        self.calls = 0

    def upload_file(self, *args, **kwargs):
        self.calls += 1
        raise S3UploadFailedError(
            "Failed to upload: An error occurred (AccessDenied) when calling the PutObject operation"
        )


@pytest.fixture
def rejecting_storage(tmp_path):
    real = DocumentStorage(StorageSettings(
        bucket_name="locked-bucket", region="us-east-1",
        access_key_id=None, secret_access_key=None, local_dir=str(tmp_path),
    ))
    real._client = RejectingS3Client()
    app.dependency_overrides[get_storage] = lambda: real
    yield real
    app.dependency_overrides.pop(get_storage, None)


def test_rejected_upload_is_retried_once(rejecting_storage):
    path = rejecting_storage.save_local("consent.pdf", b"%PDF-1.4")
    assert rejecting_storage.upload_with_retry(path, "documents/consents/consent.pdf") is None
    assert rejecting_storage._client.calls == 2


@pytest.mark.asyncio
async def test_submit_with_rejected_upload_fails_job(client, db, make_patient, rejecting_storage):
    patient = await make_patient()
    token = await open_token(db, patient)

    resp = await client.post("/ehr/consent-form/submit", json={"token": token, "htmlContent": FORM_HTML})
    assert resp.status_code == 202
    consent_id = resp.json()["data"]["consentId"]

    job = (await client.get(f"/ehr/consent-form/jobs/{consent_id}", params={"token": token})).json()["data"]
    assert job["jobStatus"] == "failed"
    assert job["error"] == "Document upload failed"
    assert rejecting_storage._client.calls == 2


@pytest.mark.asyncio
async def test_unexpected_render_error_fails_job(client, db, make_patient, storage, monkeypatch):
    def broken_render(html_content, title):
        raise RuntimeError("renderer crashed")

    monkeypatch.setattr("carehub.features.consents.jobs.render_pdf_from_html", broken_render)
    patient = await make_patient()
    token = await open_token(db, patient)

    resp = await client.post("/ehr/consent-form/submit", json={"token": token, "htmlContent": FORM_HTML})
    consent_id = resp.json()["data"]["consentId"]

    job = (await client.get(f"/ehr/consent-form/jobs/{consent_id}", params={"token": token})).json()["data"]
    assert job["jobStatus"] == "failed"
    assert job["error"] == "renderer crashed"
    assert storage.uploads == []


@pytest.mark.asyncio
async def test_upload_consent_form_rejected_by_storage(
    client, db, session_factory, provider, make_patient, auth, rejecting_storage,
):
    patient = await make_patient()
    token = await open_token(db, patient)

    resp = await client.post(
        "/patient/uploadConsentForm",
        data={"token": token, "consentType": "rpm"},
        files={"pdf": ("signed.pdf", b"%PDF-1.4 signed", "application/pdf")},
        headers=auth(provider),
    )
    assert resp.status_code == 502
    assert resp.json()["message"] == "Document upload failed"
    async with session_factory() as s:
        assert await s.scalar(select(func.count()).select_from(PatientConsent)) == 0


@pytest.mark.asyncio
async def test_concurrent_submission_loses_token_race(client, db, session_factory, make_patient, storage, monkeypatch):
    patient = await make_patient()
    token = await open_token(db, patient)
    # Read while still open, as a second request racing the first would have
    stale_row = await db.scalar(select(ConsentToken).where(ConsentToken.consent_token == token))

    resp = await client.post("/ehr/consent-form/submit", json={"token": token, "htmlContent": FORM_HTML})
    assert resp.status_code == 202

    async def open_token_read_before_commit(db, token):
        return stale_row

    monkeypatch.setattr(consent_routes, "_open_token", open_token_read_before_commit)
    resp = await client.post("/ehr/consent-form/submit", json={"token": token, "htmlContent": FORM_HTML})
    assert resp.status_code == 404
    assert resp.json()["message"] == "Link is expired or invalid"

    async with session_factory() as s:
        assert await s.scalar(select(func.count()).select_from(PatientConsent)) == 1
        status = await s.scalar(select(ConsentToken.status).where(ConsentToken.consent_token == token))
    assert status == TOKEN_CONSUMED

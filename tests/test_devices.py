import httpx
import pytest

from carehub.core.config import MioSettings
from carehub.features.devices.client import MioAPIError, MioClient, get_mio_client
from carehub.main import app

READINGS = [
    {"imei": "351234567890123", "type": "bp", "systolic": 128, "diastolic": 82, "ts": "2024-05-14T08:00:00"},
    {"imei": "351234567890123", "type": "bp", "systolic": 131, "diastolic": 85, "ts": "2024-05-15T08:00:00"},
]


def mio_override(handler):
    async def _client():
        async with MioClient(MioSettings(base_url="http://mio", api_key="k"), transport=httpx.MockTransport(handler)) as client:
            yield client
    return _client


@pytest.fixture
def mio():
    calls = []

    def use(handler):
        def recording(request):
            calls.append(request)
            return handler(request)
        app.dependency_overrides[get_mio_client] = mio_override(recording)
        return calls

    yield use
    app.dependency_overrides.pop(get_mio_client, None)


@pytest.mark.asyncio
async def test_client_unwraps_readings():
    def handler(request):
        assert request.headers["x-api-key"] == "k"
        assert request.url.path == "/devices/123/readings"
        return httpx.Response(200, json={"readings": READINGS})

    async with MioClient(MioSettings(base_url="http://mio", api_key="k"), transport=httpx.MockTransport(handler)) as client:
        assert await client.get_readings("123") == READINGS


@pytest.mark.asyncio
async def test_client_raises_on_error_status():
    transport = httpx.MockTransport(lambda request: httpx.Response(503, text="down"))
    async with MioClient(MioSettings(base_url="http://mio", api_key="k"), transport=transport) as client:
        with pytest.raises(MioAPIError) as exc_info:
            await client.get_readings("123")
    assert exc_info.value.status_code == 503
    assert exc_info.value.body == "down"


@pytest.mark.asyncio
async def test_client_requires_base_url():
    async with MioClient(MioSettings(base_url="", api_key="k")) as client:
        with pytest.raises(MioAPIError):
            await client.get_readings("123")


@pytest.mark.asyncio
async def test_device_readings(client, provider, make_patient, auth, mio):
    patient = await make_patient(device_imei="351234567890123")
    calls = mio(lambda request: httpx.Response(200, json=READINGS))

    resp = await client.get(
        f"/patient/{patient.user_id}/device-readings",
        params={"start": "2024-05-01T00:00:00"},
        headers=auth(provider),
    )
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["imei"] == "351234567890123"
    assert data["readings"] == READINGS
    assert calls[0].url.params["from"] == "2024-05-01T00:00:00"

    # Patients may read their own device
    resp = await client.get(f"/patient/{patient.user_id}/device-readings", headers=auth(patient.user))
    assert resp.status_code == 200


@pytest.mark.asyncio
async def test_device_readings_errors(client, provider, make_patient, auth, mio):
    patient = await make_patient(device_imei="351234567890123")
    no_device = await make_patient("John", "Roe")
    mio(lambda request: httpx.Response(500, text="boom"))

    resp = await client.get(f"/patient/{no_device.user_id}/device-readings", headers=auth(provider))
    assert resp.status_code == 404
    assert resp.json()["message"] == "No device registered for this patient"

    resp = await client.get(f"/patient/{patient.user_id}/device-readings", headers=auth(provider))
    assert resp.status_code == 502
    assert resp.json() == {"success": False, "message": "Device service unavailable"}

    resp = await client.get(f"/patient/{patient.user_id}/device-readings", headers=auth(no_device.user))
    assert resp.status_code == 403

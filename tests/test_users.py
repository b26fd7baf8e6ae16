import pytest

from carehub.features.users.auth import verify_jwt_token


@pytest.mark.asyncio
async def test_login(client, provider):
    resp = await client.post("/users/login", json={"email": "doc@carehub.dev", "password": "pw"})
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["role"] == "provider"
    assert data["user_id"] == provider.id
    assert verify_jwt_token(data["access_token"])["sub"] == str(provider.id)

    resp = await client.post("/users/login", json={"email": "doc@carehub.dev", "password": "nope"})
    assert resp.status_code == 401
    assert resp.json() == {"success": False, "message": "Invalid email or password"}


@pytest.mark.asyncio
async def test_me_requires_token(client, provider, auth):
    resp = await client.get("/users/me", headers=auth(provider))
    assert resp.json()["data"]["email"] == "doc@carehub.dev"

    resp = await client.get("/users/me")
    assert resp.status_code == 401

    resp = await client.get("/users/me", headers={"Authorization": "Bearer not-a-token"})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_admin_manages_users(client, admin, provider, auth):
    payload = {
        "email": "new.nurse@carehub.dev",
        "password": "s3cret-pass",
        "first_name": "Elliot",
        "last_name": "Reid",
        "role": "staff",
    }
    resp = await client.post("/users/", json=payload, headers=auth(provider))
    assert resp.status_code == 403

    resp = await client.post("/users/", json=payload, headers=auth(admin))
    assert resp.status_code == 201
    user_id = resp.json()["data"]["id"]

    resp = await client.post("/users/", json=payload, headers=auth(admin))
    assert resp.status_code == 409

    resp = await client.post("/users/login", json={"email": "new.nurse@carehub.dev", "password": "s3cret-pass"})
    assert resp.status_code == 200

    resp = await client.delete(f"/users/{user_id}", headers=auth(admin))
    assert resp.status_code == 200
    resp = await client.post("/users/login", json={"email": "new.nurse@carehub.dev", "password": "s3cret-pass"})
    assert resp.status_code == 403

    resp = await client.delete(f"/users/{admin.id}", headers=auth(admin))
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_practices(client, provider, staff, auth):
    resp = await client.post("/providers/practices", json={
        "practice_name": "Princeton Plainsboro", "npi": "1234567890", "city": "Princeton", "state": "NJ",
    }, headers=auth(provider))
    assert resp.status_code == 201
    practice = resp.json()["data"]
    assert practice["provider_id"] == provider.id

    resp = await client.post("/providers/practices", json={
        "practice_name": "Copy", "npi": "1234567890",
    }, headers=auth(provider))
    assert resp.status_code == 400

    # Staff must name a provider
    resp = await client.post("/providers/practices", json={"practice_name": "Clinic"}, headers=auth(staff))
    assert resp.status_code == 404

    resp = await client.get(f"/providers/practices/{practice['id']}", headers=auth(staff))
    assert resp.json()["data"]["practice_name"] == "Princeton Plainsboro"

    resp = await client.get("/providers/practices", params={"provider_id": provider.id}, headers=auth(staff))
    assert len(resp.json()["data"]) == 1

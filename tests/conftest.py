import os

os.environ.setdefault("RATE_LIMIT_ENABLED", "0")
os.environ.setdefault("JWT_SECRET", "test-secret")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from carehub.core.database.base import Base
from carehub.core.database.engine import get_db, get_session_factory, import_models
from carehub.features.users.auth import create_access_token, hash_password
from carehub.features.users.models import User, ROLE_ADMIN, ROLE_PATIENT, ROLE_PROVIDER, ROLE_STAFF
from carehub.features.patients.models import Patient
from carehub.features.consents.mailer import get_mailer
from carehub.main import app


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    import_models()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    yield factory
    await engine.dispose()


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory

    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def _create_user(db, email, role, first_name="Test", last_name="User"):
    user = User(
        email=email,
        password_hash=hash_password("pw"),
        first_name=first_name,
        last_name=last_name,
        role=role,
    )
    db.add(user)
    await db.commit()
    return user


@pytest_asyncio.fixture
async def admin(db):
    return await _create_user(db, "admin@carehub.dev", ROLE_ADMIN, "Ada", "Admin")


@pytest_asyncio.fixture
async def provider(db):
    return await _create_user(db, "doc@carehub.dev", ROLE_PROVIDER, "Gregory", "House")


@pytest_asyncio.fixture
async def staff(db):
    return await _create_user(db, "nurse@carehub.dev", ROLE_STAFF, "Carla", "Espinosa")


def _bearer(user):
    return {"Authorization": f"Bearer {create_access_token(user.id, user.role)}"}


@pytest.fixture
def auth():
    """Returns a function building the bearer header for a user."""
    return _bearer


@pytest.fixture
def make_patient(db, provider):
    """Factory creating a patient user and profile on the provider's panel."""
    async def _make(first_name="Jane", last_name="Doe", email=None, **fields):
        user = await _create_user(
            db, email or f"{first_name.lower()}.{last_name.lower()}@carehub.dev", ROLE_PATIENT, first_name, last_name,
        )
        patient = Patient(
            user_id=user.id,
            user=user,
            physician_id=provider.id,
            first_name=first_name,
            last_name=last_name,
            email=user.email,
            **fields,
        )
        db.add(patient)
        await db.commit()
        return patient

    return _make


class FakeMailer:
    def __init__(self, result=True):
        self.result = result
        self.sent = []

    def send(self, to, subject, html_body, text_body=None, attachments=None):
        self.sent.append((to, subject, html_body, attachments or []))
        return self.result


@pytest.fixture
def mailer():
    fake = FakeMailer()
    app.dependency_overrides[get_mailer] = lambda: fake
    yield fake
    app.dependency_overrides.pop(get_mailer, None)

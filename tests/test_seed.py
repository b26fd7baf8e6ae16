from decimal import Decimal

import pytest
from sqlalchemy import func, select

from carehub.features.billing.codes import DEFAULT_CPT_CODES
from carehub.features.billing.models import CptCode
from carehub.features.users.auth import verify_password
from carehub.features.users.models import User
from scripts.seed_cpt_codes import seed_admin, seed_cpt_codes


@pytest.mark.asyncio
async def test_seed_cpt_codes_keeps_existing_prices(db):
    db.add(CptCode(code="99454", description="custom", price=Decimal("50.00")))
    await db.commit()

    created = await seed_cpt_codes(db)
    assert created == len(DEFAULT_CPT_CODES) - 1
    assert await seed_cpt_codes(db) == 0

    price = await db.scalar(select(CptCode.price).where(CptCode.code == "99454"))
    assert price == Decimal("50.00")


@pytest.mark.asyncio
async def test_seed_admin_once(db):
    await seed_admin(db, "root@carehub.dev", "bootstrap-pass")
    await seed_admin(db, "root@carehub.dev", "other-pass")

    assert await db.scalar(select(func.count()).select_from(User)) == 1
    admin = await db.scalar(select(User).where(User.email == "root@carehub.dev"))
    assert admin.role == "admin"
    assert verify_password("bootstrap-pass", admin.password_hash)

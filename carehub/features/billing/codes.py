"""
Default CPT code catalogue for the remote and chronic care programs.
"""
from decimal import Decimal
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from carehub.features.billing.models import CptCode


# code -> (description, price)
DEFAULT_CPT_CODES = {
    "99453": ("RPM initial device setup and patient education", Decimal("19.73")),
    "99454": ("RPM device supply with daily recordings, each 30 days", Decimal("43.02")),
    "99457": ("RPM treatment management, first 20 minutes", Decimal("47.87")),
    "99458": ("RPM treatment management, each additional 20 minutes", Decimal("38.49")),
    "99490": ("CCM clinical staff time, first 20 minutes", Decimal("60.49")),
    "99439": ("CCM clinical staff time, each additional 20 minutes", Decimal("45.93")),
    "99424": ("PCM physician time, first 30 minutes", Decimal("78.84")),
    "99426": ("PCM clinical staff time, first 30 minutes", Decimal("60.49")),
}

# Charged when a patient is enrolled in RPM
RPM_ENROLLMENT_CODE = "99454"


async def get_or_create_cpt_code(db: AsyncSession, code: str) -> CptCode:
    """Return the catalogue row for `code`, adding it from the defaults if missing."""
    cpt = await db.scalar(select(CptCode).where(CptCode.code == code))
    if cpt is None:
        if code not in DEFAULT_CPT_CODES:
            raise KeyError(f"Unknown CPT code: {code}")
        description, price = DEFAULT_CPT_CODES[code]
        cpt = CptCode(code=code, description=description, price=price)
        db.add(cpt)
        await db.flush()
    return cpt

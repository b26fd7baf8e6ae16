"""
Provider practice API routes.
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from carehub.core.database.engine import get_db
from carehub.core.responses import ok
from carehub.features.users.dependencies import get_care_team_user
from carehub.features.users.models import User, ROLE_PROVIDER
from carehub.features.providers.models import ProviderPractice
from carehub.features.providers.schemas import PracticeCreate, PracticeResponse

router = APIRouter()


@router.post("/practices", status_code=201)
async def create_practice(
    practice_data: PracticeCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_care_team_user)
):
    """
    Create a practice record, validating uniqueness of `npi`.
    
    Raises:
        HTTPException: 400 if a practice with the same `npi` already exists,
            404 if `provider_id` does not name a provider.
    """
    provider_id = practice_data.provider_id or current_user.id
    provider = await db.scalar(select(User).where(User.id == provider_id))
    if not provider or provider.role != ROLE_PROVIDER:
        raise HTTPException(status_code=404, detail="Provider not found")

    if practice_data.npi:
        existing = await db.scalar(
            select(ProviderPractice).where(ProviderPractice.npi == practice_data.npi)
        )
        if existing:
            raise HTTPException(status_code=400, detail="Practice with this NPI already exists")
    
    practice = ProviderPractice(**practice_data.model_dump(exclude={"provider_id"}), provider_id=provider_id)
    db.add(practice)
    await db.commit()
    await db.refresh(practice)
    return ok(PracticeResponse.model_validate(practice), "Practice created successfully")


@router.get("/practices/{practice_id}")
async def get_practice(
    practice_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_care_team_user)
):
    """Retrieve a practice by id, 404 when it does not exist."""
    practice = await db.scalar(
        select(ProviderPractice).where(ProviderPractice.id == practice_id)
    )
    if not practice:
        raise HTTPException(status_code=404, detail="Practice not found")
    return ok(PracticeResponse.model_validate(practice))


@router.get("/practices")
async def list_practices(
    provider_id: int | None = None,
    organization_id: int | None = None,
    skip: int = 0,
    limit: int = 100,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_care_team_user)
):
    """List practices, optionally filtered by provider or organization."""
    query = select(ProviderPractice)
    if provider_id:
        query = query.where(ProviderPractice.provider_id == provider_id)
    if organization_id:
        query = query.where(ProviderPractice.organization_id == organization_id)
    query = query.order_by(ProviderPractice.id).offset(skip).limit(limit)
    
    result = await db.execute(query)
    return ok([PracticeResponse.model_validate(p) for p in result.scalars().all()])

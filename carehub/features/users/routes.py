"""
User feature routes.
"""
from typing import Annotated
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from carehub.core.database.engine import get_db
from carehub.core.responses import ok
from carehub.utils import now
from carehub.features.users.models import User
from carehub.features.users.schemas import LoginRequest, TokenResponse, UserCreate, UserResponse
from carehub.features.users.auth import create_access_token, hash_password, verify_password
from carehub.features.users.dependencies import get_current_user, get_current_admin_user


router = APIRouter(tags=["users"])


@router.post("/login")
async def login(
    credentials: LoginRequest,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Exchange email and password for a bearer token."""
    user = await db.scalar(select(User).where(User.email == credentials.email))
    
    if user is None or not verify_password(credentials.password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password"
        )
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is deactivated"
        )
    
    user.last_login_at = now()
    await db.commit()
    token = create_access_token(user.id, user.role)
    return ok(TokenResponse(access_token=token, role=user.role, user_id=user.id), "Login successful")


@router.get("/me")
async def get_current_user_profile(
    user: Annotated[User, Depends(get_current_user)]
):
    """Get current authenticated user's profile."""
    return ok(UserResponse.model_validate(user))


# Admin-only routes
@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_user(
    user_data: UserCreate,
    admin: Annotated[User, Depends(get_current_admin_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Create a staff, provider or admin account (admin only)."""
    existing = await db.scalar(select(User).where(User.email == user_data.email))
    if existing:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="email already exists"
        )
    
    user = User(
        **user_data.model_dump(exclude={"password"}),
        password_hash=hash_password(user_data.password),
        created_by_id=admin.id,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return ok(UserResponse.model_validate(user), "User created successfully")


@router.delete("/{user_id}")
async def deactivate_user(
    user_id: int,
    admin: Annotated[User, Depends(get_current_admin_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Deactivate a user account (admin only)."""
    user = await db.scalar(select(User).where(User.id == user_id))
    
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )
    
    # Prevent self-deactivation
    if user.id == admin.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot deactivate your own account"
        )
    
    user.is_active = False
    await db.commit()
    return ok(message="User deactivated successfully")

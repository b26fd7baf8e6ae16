"""
FastAPI dependencies for authentication and authorization.
"""
from typing import Annotated
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from carehub.core.database.engine import get_db
from carehub.features.users.models import User, ROLE_ADMIN, ROLE_PROVIDER, ROLE_STAFF
from carehub.features.users.auth import verify_jwt_token


security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)]
) -> User:
    """
    Get the current authenticated user from JWT token.
    
    Usage:
        @router.get("/me")
        async def get_me(user: User = Depends(get_current_user)):
            return user
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = verify_jwt_token(credentials.credentials)
    subject = payload.get("sub")
    
    if not subject or not str(subject).isdigit():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )
    
    user = await db.scalar(select(User).where(User.id == int(subject)))
    
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )
    
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is deactivated",
        )
    
    return user


def require_roles(*roles: str):
    """
    Dependency factory restricting a route to the given roles.
    Admins always pass.

    Usage:
        @router.post("/claims/void")
        async def void_claim(user: User = Depends(require_roles("staff", "provider"))):
            ...
    """
    async def role_dependency(
        user: Annotated[User, Depends(get_current_user)]
    ) -> User:
        if user.role != ROLE_ADMIN and user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Unauthorized role",
            )
        return user

    return role_dependency


# Providers, care staff and admins
get_care_team_user = require_roles(ROLE_PROVIDER, ROLE_STAFF)


async def get_current_admin_user(
    user: Annotated[User, Depends(get_current_user)]
) -> User:
    """Require admin privileges."""
    if user.role != ROLE_ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required",
        )
    return user


def get_authorization_header(request) -> str:
    """
    Extract authorization header for rate limiting.
    Used with slowapi Limiter.
    """
    auth = request.headers.get("Authorization", "")
    return auth or "anonymous"

"""
Pydantic schemas for user-related requests and responses.
"""
from datetime import datetime
from pydantic import BaseModel, EmailStr, Field

from carehub.features.users.models import ROLES


class LoginRequest(BaseModel):
    """Credentials for obtaining an access token."""
    email: EmailStr
    password: str = Field(..., min_length=1)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    role: str
    user_id: int


class UserCreate(BaseModel):
    """Schema for creating a staff, provider or admin account."""
    email: EmailStr
    password: str = Field(..., min_length=8)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    phone: str | None = Field(None, max_length=30)
    role: str = Field(..., pattern="^(" + "|".join(ROLES) + ")$")


class UserResponse(BaseModel):
    """Schema for user responses."""
    id: int
    email: str
    first_name: str
    last_name: str
    phone: str | None = None
    role: str
    is_active: bool
    last_login_at: datetime | None = None
    created_at: datetime
    
    model_config = {"from_attributes": True}

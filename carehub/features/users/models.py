"""
User model: login identity and role for staff, providers and patients.
"""
from datetime import datetime
from sqlalchemy import String, Boolean
from sqlalchemy.orm import Mapped, mapped_column

from carehub.core.database.base import Base, TimestampMixin


ROLE_ADMIN = "admin"
ROLE_PROVIDER = "provider"
ROLE_STAFF = "staff"
ROLE_PATIENT = "patient"

ROLES = (ROLE_ADMIN, ROLE_PROVIDER, ROLE_STAFF, ROLE_PATIENT)


class User(Base, TimestampMixin):
    """
    User model representing authenticated users.

    A patient's `patientId` everywhere in the API is the id of its User row.
    """
    __tablename__ = "users"
    
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    
    # Login name
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    password_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)
    
    # User information
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(30), nullable=True)
    
    role: Mapped[str] = mapped_column(String(20), nullable=False, default=ROLE_PATIENT, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    
    # User who created this account (patients are created by providers)
    created_by_id: Mapped[int | None] = mapped_column(nullable=True)
    
    last_login_at: Mapped[datetime | None] = mapped_column(nullable=True)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
    
    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email!r}, role={self.role!r})>"

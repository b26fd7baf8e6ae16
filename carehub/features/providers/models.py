"""
Provider practice model: the practice a physician bills under.
"""
from sqlalchemy import String, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column

from carehub.core.database.base import Base, TimestampMixin


class ProviderPractice(Base, TimestampMixin):
    """
    Practice details for a provider, shown on consent forms and statements.
    
    Attributes:
        id: Integer primary key
        provider_id: User id of the physician
        organization_id: Tenant the practice belongs to
        practice_name: Display name
        npi: Group National Provider Identifier (optional)
        address_line1 .. country: Mailing address
    """
    __tablename__ = "provider_practices"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    provider_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    organization_id: Mapped[int | None] = mapped_column(nullable=True, index=True)
    practice_name: Mapped[str] = mapped_column(String(200), nullable=False)
    npi: Mapped[str | None] = mapped_column(String(10), unique=True, index=True)
    phone: Mapped[str | None] = mapped_column(String(30))
    address_line1: Mapped[str | None] = mapped_column(String(255))
    address_line2: Mapped[str | None] = mapped_column(String(255))
    city: Mapped[str | None] = mapped_column(String(100))
    state: Mapped[str | None] = mapped_column(String(50))
    zip: Mapped[str | None] = mapped_column(String(20))
    country: Mapped[str | None] = mapped_column(String(50))

    __table_args__ = (
        Index("ix_provider_practices_name", "practice_name"),
    )

    def __repr__(self):
        return f"<ProviderPractice(id={self.id}, name='{self.practice_name}')>"

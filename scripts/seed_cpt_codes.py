"""
Seed script to populate the CPT code catalogue and the first admin user.

Run this script after database initialization to create:
- The default RPM/CCM/PCM CPT codes and prices
- An admin account, when SEED_ADMIN_EMAIL and SEED_ADMIN_PASSWORD are set

Usage:
    uv run python -m scripts.seed_cpt_codes
"""
import asyncio
import os
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from carehub.core.database.engine import get_db, init_db
from carehub.features.billing.codes import DEFAULT_CPT_CODES
from carehub.features.billing.models import CptCode
from carehub.features.users.auth import hash_password
from carehub.features.users.models import User, ROLE_ADMIN
from carehub.utils import get_logger


log = get_logger(__name__)


async def seed_cpt_codes(db: AsyncSession) -> int:
    """
    Create missing CPT codes. Existing codes keep their stored price.

    Returns:
        Number of codes created
    """
    log.info("Creating default CPT codes...")
    created = 0

    for code, (description, price) in DEFAULT_CPT_CODES.items():
        existing = await db.scalar(select(CptCode).where(CptCode.code == code))
        if existing:
            log.debug(f"CPT code '{code}' already exists, skipping")
            continue

        db.add(CptCode(code=code, description=description, price=price))
        created += 1
        log.info(f"Created CPT code: {code} ({price})")

    await db.commit()
    log.info(f"Created {created} CPT codes")
    return created


async def seed_admin(db: AsyncSession, email: str, password: str):
    """Create the admin account unless a user with that email exists."""
    existing = await db.scalar(select(User).where(User.email == email))
    if existing:
        log.debug(f"User '{email}' already exists, skipping")
        return

    db.add(User(
        email=email,
        password_hash=hash_password(password),
        first_name="System",
        last_name="Admin",
        role=ROLE_ADMIN,
    ))
    await db.commit()
    log.info(f"Created admin user: {email}")


async def main():
    """Main function to seed CPT codes and the admin user."""
    log.info("Starting seeding...")

    # Initialize database tables first
    log.info("Initializing database tables...")
    await init_db()

    # Get database session
    async for db in get_db():
        try:
            await seed_cpt_codes(db)

            admin_email = os.environ.get("SEED_ADMIN_EMAIL")
            admin_password = os.environ.get("SEED_ADMIN_PASSWORD")
            if admin_email and admin_password:
                await seed_admin(db, admin_email, admin_password)
            else:
                log.info("SEED_ADMIN_EMAIL/SEED_ADMIN_PASSWORD not set, no admin created")

            log.info("Seeding completed successfully!")

        except Exception as e:
            log.error(f"Error seeding: {e}", exc_info=True)
            await db.rollback()
            raise

        break  # Only use first session


if __name__ == "__main__":
    asyncio.run(main())

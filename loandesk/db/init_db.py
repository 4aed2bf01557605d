import asyncio
import logging

from sqlalchemy import func, select

from loandesk.core.permissions import Role
from loandesk.core.security import get_password_hash
from loandesk.core.settings import settings
from loandesk.db.session import AsyncSessionLocal
from loandesk.models.user import User


logger = logging.getLogger(__name__)


async def init_db() -> None:
    """
    Seed the initial super admin when it does not exist yet.
    """
    if not settings.seed_admin_email or not settings.seed_admin_password:
        logger.info("Seed admin credentials not configured; skipping seeding")
        return

    email = settings.seed_admin_email.strip().lower()
    async with AsyncSessionLocal() as session:
        stmt = select(User).where(func.lower(User.email) == email)
        user = (await session.execute(stmt)).scalar_one_or_none()
        if user is not None:
            logger.info("Seed admin %s already exists", email)
            return

        session.add(
            User(
                email=email,
                full_name=settings.seed_admin_full_name,
                hashed_password=get_password_hash(settings.seed_admin_password),
                role=Role.SUPER_ADMIN.value,
                is_active=True,
                email_verified=True,
                token_version=0,
            )
        )
        await session.commit()
        logger.info("Seed admin %s created", email)


if __name__ == "__main__":
    asyncio.run(init_db())

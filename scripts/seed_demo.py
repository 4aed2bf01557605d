#!/usr/bin/env python3
"""
Seed a development database with demo staff, applicants and an interest rate table.

Existing users (matched by email) are left untouched, so the script can be
re-run safely. Never point this at production.

Usage:
    python scripts/seed_demo.py [--password PASSWORD]
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from decimal import Decimal

from sqlalchemy import func, select

from loandesk.core.logging import configure_logging
from loandesk.core.permissions import Role
from loandesk.core.security import get_password_hash
from loandesk.core.settings import settings
from loandesk.db.session import AsyncSessionLocal
from loandesk.models import InterestRate, User

DEMO_USERS = [
    ("officer1@loandesk.local", "Ada Officer", Role.LOAN_OFFICER),
    ("officer2@loandesk.local", "Bayo Officer", Role.LOAN_OFFICER),
    ("approver@loandesk.local", "Chika Approver", Role.APPROVER),
    ("applicant1@loandesk.local", "Dayo Applicant", Role.APPLICANT),
    ("applicant2@loandesk.local", "Efe Applicant", Role.APPLICANT),
]

# months -> annual flat rate percent
DEMO_RATES = {
    3: Decimal("12.00"),
    6: Decimal("14.50"),
    12: Decimal("18.00"),
    24: Decimal("22.00"),
}


async def seed(password: str) -> None:
    hashed = get_password_hash(password)
    async with AsyncSessionLocal() as session:
        for email, full_name, role in DEMO_USERS:
            existing = await session.execute(select(User.id).where(func.lower(User.email) == email))
            if existing.first() is not None:
                print(f"skip  {email}")
                continue
            session.add(
                User(
                    email=email,
                    full_name=full_name,
                    hashed_password=hashed,
                    role=role.value,
                    is_active=True,
                    email_verified=True,
                    token_version=0,
                )
            )
            print(f"add   {email} ({role.value})")

        for months, rate in DEMO_RATES.items():
            existing = await session.execute(
                select(InterestRate.id).where(InterestRate.months == months, InterestRate.is_active.is_(True))
            )
            if existing.first() is not None:
                print(f"skip  rate for {months} months")
                continue
            session.add(InterestRate(months=months, rate=rate, is_active=True))
            print(f"add   rate {rate}% for {months} months")

        await session.commit()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Seed demo users and interest rates")
    parser.add_argument("--password", default="Password123!", help="Password for every demo user")
    args = parser.parse_args(argv)

    if settings.environment.lower() == "production":
        print("Refusing to seed demo data in production.", file=sys.stderr)
        return 1
    configure_logging()
    asyncio.run(seed(args.password))
    return 0


if __name__ == "__main__":
    sys.exit(main())

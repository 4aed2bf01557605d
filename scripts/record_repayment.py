#!/usr/bin/env python3
"""
Record a repayment against a disbursed loan.

This is the only way repayments enter the system; there is no HTTP route for
it. The loan row is locked while the repayment is applied, and the owning
application moves to CLOSED once the loan is fully repaid.

Usage:
    python scripts/record_repayment.py <loan_id> <amount> [--reference REF] [--recorded-by USER_ID]
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from decimal import Decimal, InvalidOperation
from uuid import UUID

from loandesk.core.errors import DomainError
from loandesk.core.logging import configure_logging
from loandesk.db.session import AsyncSessionLocal
from loandesk.services.loans import record_repayment


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Record a loan repayment")
    parser.add_argument("loan_id", type=UUID)
    parser.add_argument("amount", type=str)
    parser.add_argument("--reference", default=None, help="Bank or payment reference")
    parser.add_argument("--recorded-by", type=UUID, default=None, help="Operator user id")
    return parser.parse_args(argv)


async def run(loan_id: UUID, amount: Decimal, *, reference: str | None, recorded_by: UUID | None) -> int:
    async with AsyncSessionLocal() as session:
        try:
            loan, repayment = await record_repayment(
                session,
                loan_id,
                amount,
                recorded_by=recorded_by,
                reference=reference,
            )
            await session.commit()
        except DomainError as exc:
            await session.rollback()
            print(f"Repayment rejected ({exc.code}): {exc.message}", file=sys.stderr)
            return 1

    print(f"Recorded repayment {repayment.id} of {repayment.amount} on loan {loan.id}")
    print(f"Total repaid: {loan.total_repaid} / {loan.disbursement_amount}")
    if loan.is_fully_paid:
        print(f"Loan fully paid at {loan.closed_at.isoformat()}")
    else:
        print(f"Next payment due {loan.next_payment_due.isoformat()}")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    configure_logging()
    try:
        amount = Decimal(args.amount)
    except InvalidOperation:
        print(f"Invalid amount: {args.amount}", file=sys.stderr)
        return 2
    return asyncio.run(run(args.loan_id, amount, reference=args.reference, recorded_by=args.recorded_by))


if __name__ == "__main__":
    sys.exit(main())

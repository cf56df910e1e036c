"""
Funding ledger.

The amount a loan has raised is the sum of its committed investments. The
``amount_funded`` column on ``loan_requests`` is only a cache of that sum and
is rewritten from it on every commit.

Writers for one loan are serialized three ways:

- ``KeyedLock`` orders commits inside this process, one lock per loan id.
- ``SELECT ... FOR UPDATE`` on the loan row orders commits across processes
  on databases that support row locks.
- The loan's ``version`` column rejects any UPDATE made from a stale read,
  which surfaces as ``ConcurrencyConflict``.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from decimal import Decimal
from typing import AsyncIterator, Dict, Hashable

from dateutil.relativedelta import relativedelta
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from lendcircle.core.exceptions import ConcurrencyConflict, InvestmentExceedsCapacity, LoanNotFound
from lendcircle.modules.funding.models import Investment
from lendcircle.modules.loans.models import LoanRequest, LoanStatus

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")
CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    """Normalize a driver value to a 2dp Decimal"""
    if value is None:
        return ZERO
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT)


class KeyedLock:
    """One asyncio.Lock per key, dropped again once nobody holds or waits on it"""

    def __init__(self):
        self._locks: Dict[Hashable, asyncio.Lock] = {}
        self._users: Dict[Hashable, int] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def __len__(self):
        return len(self._locks)


# Shared by every ledger in the process so all sessions contend on the same locks
loan_locks = KeyedLock()


class FundingLedger:
    """Reads and appends against the investment set of each loan"""

    def __init__(self, db: AsyncSession, locks: KeyedLock = loan_locks):
        self.db = db
        self.locks = locks

    def serialize(self, loan_id: int):
        """Per-loan critical section for commits and settlement"""
        return self.locks.hold(loan_id)

    async def get_loan(self, loan_id: int, for_update: bool = False) -> LoanRequest:
        query = select(LoanRequest).where(LoanRequest.id == loan_id)
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query.execution_options(populate_existing=True))
        loan = result.scalar_one_or_none()
        if loan is None:
            raise LoanNotFound(loan_id)
        return loan

    async def funded_amount(self, loan_id: int) -> Decimal:
        result = await self.db.execute(
            select(func.coalesce(func.sum(Investment.amount), 0)).where(Investment.loan_id == loan_id)
        )
        return to_money(result.scalar_one())

    @staticmethod
    def funded_totals():
        """Subquery of (loan_id, funded) for joining into loan listings"""
        return (
            select(Investment.loan_id.label("loan_id"), func.sum(Investment.amount).label("funded"))
            .group_by(Investment.loan_id)
            .subquery("funded_totals")
        )

    async def remaining_capacity(self, loan: LoanRequest) -> Decimal:
        funded = await self.funded_amount(loan.id)
        return max(ZERO, to_money(loan.amount_requested) - funded)

    async def has_investments(self, loan_id: int) -> bool:
        result = await self.db.execute(
            select(Investment.id).where(Investment.loan_id == loan_id).limit(1)
        )
        return result.first() is not None

    async def append(self, loan: LoanRequest, investment: Investment, funded_before: Decimal) -> Decimal:
        """
        Stage ``investment`` and advance the loan's cached total.

        Must run inside ``serialize(loan.id)`` with ``funded_before`` read in the
        same transaction. The caller commits. Returns the new funded amount.
        """
        loan_id = loan.id
        requested = to_money(loan.amount_requested)
        new_total = funded_before + to_money(investment.amount)
        if new_total > requested:
            raise InvestmentExceedsCapacity(to_money(investment.amount), requested - funded_before)

        self.db.add(investment)
        loan.amount_funded = new_total
        if new_total == requested:
            self._mark_funded(loan)

        try:
            await self.db.flush()
        except StaleDataError as e:
            # the failed flush expired `loan`
            raise ConcurrencyConflict(f"Loan request {loan_id} changed while committing an investment") from e
        return new_total

    async def reconcile(self, loan_id: int) -> Decimal:
        """Rewrite the cached ``amount_funded`` from the investment sum"""
        async with self.serialize(loan_id):
            try:
                loan = await self.get_loan(loan_id, for_update=True)
                total = await self.funded_amount(loan_id)
                requested = to_money(loan.amount_requested)

                if total > requested:
                    logger.error(f"Loan {loan_id} investments total {total} exceeds requested {requested}; cache left untouched")
                    await self.db.rollback()
                    return total

                changed = False
                if to_money(loan.amount_funded) != total:
                    logger.warning(f"Loan {loan_id} cached amount_funded {loan.amount_funded} drifted from ledger {total}")
                    loan.amount_funded = total
                    changed = True
                if total == requested and loan.status == LoanStatus.OPEN:
                    self._mark_funded(loan)
                    changed = True

                if changed:
                    await self.db.flush()
                await self.db.commit()
                return total
            except StaleDataError as e:
                await self.db.rollback()
                raise ConcurrencyConflict(f"Loan request {loan_id} changed during reconciliation") from e
            except Exception:
                await self.db.rollback()
                raise

    @staticmethod
    def _mark_funded(loan: LoanRequest) -> None:
        funded_at = datetime.now(timezone.utc)
        loan.status = LoanStatus.FUNDED
        loan.funded_at = funded_at
        loan.due_date = (funded_at + relativedelta(months=loan.repayment_months)).date()

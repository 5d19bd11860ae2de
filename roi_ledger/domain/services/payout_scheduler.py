"""
PAYOUT SCHEDULER

RESPONSIBILITIES:
- Create the Return row for an investment's current payout period
- Promote pending Returns to due once their date arrives

RULES:
- Never touches investment counters (settlement owns them)
- Returns are keyed by (investment_id, payout_date); creation is
  insert-or-ignore so repeated or overlapping ticks are harmless
- Return amounts come from the ROI snapshot, never from the live plan
"""

import logging
from datetime import date
from typing import Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from roi_ledger.core.errors import NotFoundError
from roi_ledger.domain.models import Investment, InvestmentStatus, ReturnRecord, TickSummary
from roi_ledger.infrastructure.db.repositories.investment_repository import InvestmentRepository
from roi_ledger.infrastructure.db.repositories.return_repository import ReturnRepository
from roi_ledger.infrastructure.db.repositories.roi_repository import RoiRepository
from roi_ledger.infrastructure.db.unit_of_work import transactional
from roi_ledger.utils.time import today_utc

logger = logging.getLogger(__name__)


class PayoutScheduler:
    """Creates and promotes scheduled payouts"""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.investment_repo = InvestmentRepository(session)
        self.roi_repo = RoiRepository(session)
        self.return_repo = ReturnRepository(session)

    async def create_return_for_period(
        self,
        investment: Investment,
        payout_date: date,
    ) -> Tuple[ReturnRecord, bool]:
        """Find-or-create the Return for one period; returns (record, created)"""
        async with transactional(self.session):
            roi = await self.roi_repo.get_for(investment.user_id, investment.id)
            if roi is None:
                raise NotFoundError(
                    f"No ROI snapshot for investment {investment.id}",
                    reason="roi_not_found",
                )
            record, created = await self.return_repo.find_or_create(
                user_id=investment.user_id,
                investment_id=investment.id,
                payout_date=payout_date,
                amount=roi.period_return_amount,
            )
            if created:
                logger.info(
                    f"Return scheduled: id={record.id} investment={investment.id} "
                    f"date={payout_date} amount={record.amount}"
                )
            return record, created

    async def create_next_return_if_needed(
        self,
        investment: Investment,
    ) -> Optional[Tuple[ReturnRecord, bool]]:
        """
        Ensure the Return for ``investment.next_payout_date`` exists.

        Returns None when the investment has nothing left to schedule.
        """
        if investment.status != InvestmentStatus.ACTIVE:
            return None
        if investment.next_payout_date is None or investment.remaining_payouts <= 0:
            return None
        return await self.create_return_for_period(investment, investment.next_payout_date)

    async def promote_pending_to_due(self, as_of: Optional[date] = None) -> int:
        as_of = as_of or today_utc()
        async with transactional(self.session):
            promoted = await self.return_repo.promote_pending_to_due(as_of)
        if promoted:
            logger.info(f"Returns promoted to due: count={promoted} as_of={as_of}")
        return promoted

    async def run_tick(self, as_of: Optional[date] = None) -> TickSummary:
        """
        One scheduler pass: make sure every due investment has its Return,
        then flip matured Returns to due. Safe to repeat.
        """
        as_of = as_of or today_utc()
        created = 0
        skipped = 0

        async with transactional(self.session):
            for investment in await self.investment_repo.list_due(as_of):
                try:
                    outcome = await self.create_next_return_if_needed(investment)
                except NotFoundError as exc:
                    skipped += 1
                    logger.warning(f"Skipping investment {investment.id}: {exc.message}")
                    continue
                if outcome is not None and outcome[1]:
                    created += 1

            promoted = await self.promote_pending_to_due(as_of)

        summary = TickSummary(
            run_date=as_of,
            returns_created=created,
            returns_promoted=promoted,
            investments_skipped=skipped,
        )
        logger.info(
            f"Scheduler tick done: date={as_of} created={created} "
            f"promoted={promoted} skipped={skipped}"
        )
        return summary

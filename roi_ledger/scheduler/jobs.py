"""
SCHEDULER JOB DEFINITIONS

Jobs are thin wrappers that:
- Log execution
- Obtain DB session
- Call the payout scheduler
- Send operator alerts

NO business logic is allowed here.
"""

import asyncio
import logging
from datetime import date
from typing import Optional

from roi_ledger.domain.models import TickSummary
from roi_ledger.domain.services.payout_scheduler import PayoutScheduler
from roi_ledger.infrastructure.db.database import async_session_factory
from roi_ledger.utils.notifications import send_tiered_telegram_message

_logger = logging.getLogger(__name__)

_tick_lock = asyncio.Lock()


async def run_scheduler_tick(as_of: Optional[date] = None) -> Optional[TickSummary]:
    """
    One payout tick in its own session.

    Returns None when a tick is already running in this process; the
    insert-or-ignore Return key keeps ticks from other processes harmless.
    """
    if _tick_lock.locked():
        _logger.info("Payout tick already running; skipping")
        return None

    async with _tick_lock:
        _logger.info("📅 Running payout tick")
        async with async_session_factory() as session:
            summary = await PayoutScheduler(session).run_tick(as_of)

    if summary.returns_created or summary.returns_promoted or summary.investments_skipped:
        await send_tiered_telegram_message(
            tier="INFO",
            title="Payout tick",
            body=(
                f"Date: {summary.run_date.isoformat()}\n"
                f"Returns created: {summary.returns_created}\n"
                f"Returns now due: {summary.returns_promoted}\n"
                f"Investments skipped: {summary.investments_skipped}"
            ),
        )
    return summary


async def payout_tick_job() -> None:
    """APScheduler entry point; errors are logged so the scheduler keeps running"""
    try:
        await run_scheduler_tick()
    except Exception:
        _logger.exception("Payout tick failed")

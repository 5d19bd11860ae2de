"""
Transaction boundary helper.

Services wrap each operation in ``transactional(session)``. The outermost
block commits on success and rolls back on any exception; inner blocks join
the outer transaction, so an operation called from inside another (e.g.
activation during payment confirmation) commits or fails with it.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession

_DEPTH_KEY = "ledger_tx_depth"


@asynccontextmanager
async def transactional(session: AsyncSession) -> AsyncIterator[AsyncSession]:
    depth = session.info.get(_DEPTH_KEY, 0)
    session.info[_DEPTH_KEY] = depth + 1
    try:
        yield session
        if depth == 0:
            await session.commit()
    except BaseException:
        if depth == 0:
            await session.rollback()
        raise
    finally:
        session.info[_DEPTH_KEY] = depth

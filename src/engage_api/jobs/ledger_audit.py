"""Job that replays member ledgers and reports projection drift."""

# meta: job: ledger-audit

from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, List
from uuid import UUID

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from engage_api.models.brand import Member
from engage_api.services.rewards import ConsistencyError, PointsLedger

SessionFactory = Callable[[], AsyncSession] | Callable[[], Awaitable[AsyncSession]]


async def run_ledger_audit(
    *,
    session_factory: SessionFactory,
    brand_id: UUID | None = None,
    batch_size: int = 500,
) -> Dict[str, Any]:
    """Compare every member's stored balance with a replay of its ledger.

    Divergent members are reported, never corrected.
    """

    maybe_session = session_factory()
    session: AsyncSession
    if isinstance(maybe_session, AsyncSession):
        session = maybe_session
    else:
        session = await maybe_session

    async with session as managed_session:
        ledger = PointsLedger(managed_session)
        audited = 0
        divergent: List[Dict[str, Any]] = []
        last_id: UUID | None = None

        while True:
            stmt = select(Member).order_by(Member.id.asc()).limit(batch_size)
            if brand_id is not None:
                stmt = stmt.where(Member.brand_id == brand_id)
            if last_id is not None:
                stmt = stmt.where(Member.id > last_id)
            result = await managed_session.execute(stmt)
            members = list(result.scalars().all())
            if not members:
                break

            for member in members:
                audited += 1
                try:
                    await ledger.audit(member)
                except ConsistencyError as exc:
                    divergent.append(
                        {
                            "member_id": str(exc.member_id),
                            "stored_balance": exc.stored_balance,
                            "replayed_balance": exc.replayed_balance,
                            "stored_total_earned": exc.stored_total_earned,
                            "replayed_total_earned": exc.replayed_total_earned,
                        }
                    )
            last_id = members[-1].id
            managed_session.expunge_all()

        summary = {
            "members_audited": audited,
            "divergent_members": len(divergent),
            "divergences": divergent,
        }
        logger.bind(summary=summary).info("Ledger audit sweep completed")
        return summary

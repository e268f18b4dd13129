"""Tests for the ledger audit sweep."""

from uuid import uuid4

import pytest
from sqlalchemy import update

from engage_api.jobs.ledger_audit import run_ledger_audit
from engage_api.models import LedgerEntryKind, Member
from engage_api.observability.rewards import get_rewards_store
from engage_api.services.rewards import PointsLedger


@pytest.mark.asyncio
async def test_audit_sweep_reports_divergent_members(session_factory, seeded) -> None:
    async with session_factory() as session:
        healthy = await session.get(Member, seeded.member_id)
        drifted = Member(brand_id=seeded.brand_id, external_ref="member-2", current_tier_id=seeded.bronze_id)
        session.add(drifted)
        await session.flush()

        ledger = PointsLedger(session)
        await ledger.append(healthy, amount=40, kind=LedgerEntryKind.EARNED)
        await ledger.append(drifted, amount=90, kind=LedgerEntryKind.EARNED)
        await session.execute(update(Member).where(Member.id == drifted.id).values(points_balance=15))
        await session.commit()
        drifted_id = drifted.id

    summary = await run_ledger_audit(session_factory=session_factory, batch_size=1)

    assert summary["members_audited"] == 2
    assert summary["divergent_members"] == 1
    divergence = summary["divergences"][0]
    assert divergence["member_id"] == str(drifted_id)
    assert divergence["stored_balance"] == 15
    assert divergence["replayed_balance"] == 90

    audits = get_rewards_store().snapshot().audits
    assert audits["runs"] == 2
    assert audits["divergent"] == 1


@pytest.mark.asyncio
async def test_audit_sweep_scopes_to_brand(session_factory, seeded) -> None:
    summary = await run_ledger_audit(session_factory=session_factory, brand_id=uuid4())

    assert summary == {"members_audited": 0, "divergent_members": 0, "divergences": []}


@pytest.mark.asyncio
async def test_audit_sweep_releases_each_batch_from_the_session(session_factory, seeded, monkeypatch) -> None:
    async with session_factory() as session:
        for index in range(2):
            member = Member(brand_id=seeded.brand_id, external_ref=f"member-{index + 2}", current_tier_id=seeded.bronze_id)
            session.add(member)
            await session.flush()
            await PointsLedger(session).append(member, amount=10 * (index + 1), kind=LedgerEntryKind.EARNED)
        await session.commit()

    tracked_sizes = []
    original_audit = PointsLedger.audit

    async def tracking_audit(self, member):
        tracked_sizes.append(len(self._db.identity_map))
        return await original_audit(self, member)

    monkeypatch.setattr(PointsLedger, "audit", tracking_audit)

    summary = await run_ledger_audit(session_factory=session_factory, batch_size=1)

    assert summary["members_audited"] == 3
    assert tracked_sizes == [1, 1, 1]

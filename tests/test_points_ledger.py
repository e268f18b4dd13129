from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select, update

from engage_api.models import LedgerEntry, LedgerEntryKind, Member
from engage_api.services.rewards import (
    ConsistencyError,
    LedgerError,
    PointsLedger,
    decode_sequence_cursor,
)
from engage_api.services.rewards.ledger import apply_movement

BASE_TIME = datetime(2026, 5, 1, 9, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_earning_entries_raise_balance_and_total(session_factory, seeded) -> None:
    async with session_factory() as session:
        member = await session.get(Member, seeded.member_id)
        ledger = PointsLedger(session)

        first = await ledger.append(member, amount=120, kind=LedgerEntryKind.EARNED, reference_id="order-1", reference_kind="order")
        second = await ledger.append(member, amount=30, kind="bonus")
        await session.commit()

    assert first.entry.sequence == 1
    assert second.entry.sequence == 2
    assert first.entry.balance_after == 120
    assert second.balance.points_balance == 150
    assert second.balance.total_points_earned == 150
    assert second.entry.total_earned_after == 150
    assert first.entry.reference_kind == "order"


@pytest.mark.asyncio
async def test_spending_floors_balance_at_zero_without_touching_total(session_factory, seeded) -> None:
    async with session_factory() as session:
        member = await session.get(Member, seeded.member_id)
        ledger = PointsLedger(session)

        await ledger.append(member, amount=50, kind=LedgerEntryKind.EARNED)
        spent = await ledger.append(member, amount=-80, kind=LedgerEntryKind.SPENT)
        replay = await ledger.replay(member)
        await session.commit()

    assert spent.entry.amount == -80
    assert spent.balance.points_balance == 0
    assert spent.balance.total_points_earned == 50
    assert replay.points_balance == 0
    assert replay.total_points_earned == 50


@pytest.mark.asyncio
async def test_neutral_adjustments_move_only_the_balance(session_factory, seeded) -> None:
    async with session_factory() as session:
        member = await session.get(Member, seeded.member_id)
        ledger = PointsLedger(session)

        credited = await ledger.append(member, amount=40, kind=LedgerEntryKind.ADMIN_ADJUSTMENT)
        debited = await ledger.append(member, amount=-15, kind=LedgerEntryKind.ADMIN_ADJUSTMENT)

    assert credited.balance.total_points_earned == 0
    assert debited.balance.points_balance == 25
    assert debited.balance.total_points_earned == 0


@pytest.mark.parametrize(
    ("amount", "kind"),
    [
        (0, LedgerEntryKind.EARNED),
        (25, LedgerEntryKind.SPENT),
        (10, LedgerEntryKind.DEDUCTED),
        (10, LedgerEntryKind.REVERSAL),
    ],
)
@pytest.mark.asyncio
async def test_invalid_appends_are_rejected(session_factory, seeded, amount, kind) -> None:
    async with session_factory() as session:
        member = await session.get(Member, seeded.member_id)

        with pytest.raises(LedgerError):
            await PointsLedger(session).append(member, amount=amount, kind=kind)

        entries = (await session.execute(select(LedgerEntry))).scalars().all()

    assert entries == []


@pytest.mark.asyncio
async def test_reversal_counters_entry_once(session_factory, seeded) -> None:
    async with session_factory() as session:
        member = await session.get(Member, seeded.member_id)
        ledger = PointsLedger(session)

        earned = await ledger.append(member, amount=200, kind=LedgerEntryKind.EARNED)
        reversal = await ledger.reverse(earned.entry.id, reason="chargeback", actor_ref="ops@acme")
        await session.commit()

        with pytest.raises(LedgerError):
            await ledger.reverse(earned.entry.id)
        with pytest.raises(LedgerError):
            await ledger.reverse(reversal.entry.id)

    assert reversal.entry.kind == LedgerEntryKind.REVERSAL
    assert reversal.entry.amount == -200
    assert reversal.entry.reversal_of_id == earned.entry.id
    assert reversal.entry.description == "chargeback"
    assert reversal.entry.metadata_json["actor_ref"] == "ops@acme"
    assert reversal.balance.points_balance == 0
    assert reversal.balance.total_points_earned == 200


@pytest.mark.asyncio
async def test_reversal_of_floored_spend_restores_only_the_points_removed(session_factory, seeded) -> None:
    async with session_factory() as session:
        member = await session.get(Member, seeded.member_id)
        ledger = PointsLedger(session)

        await ledger.append(member, amount=50, kind=LedgerEntryKind.EARNED)
        spent = await ledger.append(member, amount=-100, kind=LedgerEntryKind.SPENT)
        reversal = await ledger.reverse(spent.entry.id, reason="refund")
        replayed = await ledger.replay(member)
        await session.commit()

    assert spent.entry.balance_after == 0
    assert reversal.entry.amount == 50
    assert reversal.entry.metadata_json["original_amount"] == -100
    assert reversal.balance.points_balance == 50
    assert reversal.balance.total_points_earned == 50
    assert replayed.points_balance == 50


@pytest.mark.asyncio
async def test_reversal_of_entry_that_moved_nothing_is_rejected(session_factory, seeded) -> None:
    async with session_factory() as session:
        member = await session.get(Member, seeded.member_id)
        ledger = PointsLedger(session)

        spent = await ledger.append(member, amount=-40, kind=LedgerEntryKind.DEDUCTED)

        with pytest.raises(LedgerError):
            await ledger.reverse(spent.entry.id)


@pytest.mark.asyncio
async def test_replay_reproduces_projection(session_factory, seeded) -> None:
    movements = [
        (300, LedgerEntryKind.EARNED),
        (-120, LedgerEntryKind.SPENT),
        (75, LedgerEntryKind.WHEEL_WIN),
        (-500, LedgerEntryKind.DEDUCTED),
        (20, LedgerEntryKind.ADMIN_ADJUSTMENT),
        (40, LedgerEntryKind.REFERRAL),
    ]
    async with session_factory() as session:
        member = await session.get(Member, seeded.member_id)
        ledger = PointsLedger(session)
        for amount, kind in movements:
            await ledger.append(member, amount=amount, kind=kind)
        await session.commit()

        replay = await ledger.replay(member)
        report = await ledger.audit(member)

    expected_balance, expected_total = 0, 0
    for amount, kind in movements:
        expected_balance, expected_total = apply_movement(expected_balance, expected_total, kind, amount)

    assert replay.points_balance == expected_balance == 60
    assert replay.total_points_earned == expected_total == 415
    assert replay.entry_count == len(movements)
    assert report.is_consistent


@pytest.mark.asyncio
async def test_audit_flags_divergent_projection(session_factory, seeded) -> None:
    async with session_factory() as session:
        member = await session.get(Member, seeded.member_id)
        ledger = PointsLedger(session)
        await ledger.append(member, amount=100, kind=LedgerEntryKind.EARNED)
        await session.execute(update(Member).where(Member.id == member.id).values(points_balance=999))
        await session.commit()

        with pytest.raises(ConsistencyError) as excinfo:
            await ledger.audit(member)

    assert excinfo.value.stored_balance == 999
    assert excinfo.value.replayed_balance == 100


@pytest.mark.asyncio
async def test_list_entries_paginates_newest_first(session_factory, seeded) -> None:
    async with session_factory() as session:
        member = await session.get(Member, seeded.member_id)
        ledger = PointsLedger(session)
        for index in range(5):
            await ledger.append(
                member,
                amount=10 + index,
                kind=LedgerEntryKind.EARNED if index % 2 == 0 else LedgerEntryKind.BONUS,
                now=BASE_TIME + timedelta(hours=index),
            )
        await session.commit()

        first_page = await ledger.list_entries(member, limit=2)
        second_page = await ledger.list_entries(member, limit=2, cursor=first_page.next_cursor)
        last_page = await ledger.list_entries(member, limit=2, cursor=second_page.next_cursor)
        bonuses = await ledger.list_entries(member, kinds=[LedgerEntryKind.BONUS])
        windowed = await ledger.list_entries(
            member,
            start=BASE_TIME + timedelta(hours=1),
            end=BASE_TIME + timedelta(hours=3),
        )

    assert [entry.sequence for entry in first_page.entries] == [5, 4]
    assert decode_sequence_cursor(first_page.next_cursor)[0] == 4
    assert [entry.sequence for entry in second_page.entries] == [3, 2]
    assert [entry.sequence for entry in last_page.entries] == [1]
    assert last_page.next_cursor is None
    assert [entry.sequence for entry in bonuses.entries] == [4, 2]
    assert [entry.sequence for entry in windowed.entries] == [3, 2]


def test_malformed_cursor_is_rejected() -> None:
    with pytest.raises(ValueError):
        decode_sequence_cursor("not-a-cursor")

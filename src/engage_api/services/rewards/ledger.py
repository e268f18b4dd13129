"""Append-only points ledger and the member balance projection it drives."""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Sequence, Tuple
from uuid import UUID, uuid4

from loguru import logger
from sqlalchemy import case, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from engage_api.core.settings import settings
from engage_api.models.brand import Member
from engage_api.models.ledger import LedgerEntry, LedgerEntryKind
from engage_api.observability.rewards import get_rewards_store
from engage_api.services.rewards.eligibility import as_utc
from engage_api.services.rewards.errors import ConsistencyError, LedgerError, RewardNotFoundError
from engage_api.services.rewards.tiers import TierChange, TierProgression


@dataclass(slots=True)
class MemberBalance:
    member_id: UUID
    points_balance: int
    total_points_earned: int
    current_tier_id: UUID | None = None


@dataclass(slots=True)
class LedgerAppendResult:
    entry: LedgerEntry
    balance: MemberBalance
    tier_change: TierChange | None = None


@dataclass(slots=True)
class LedgerPage:
    entries: list[LedgerEntry] = field(default_factory=list)
    next_cursor: str | None = None


@dataclass(slots=True)
class ReplayResult:
    member_id: UUID
    points_balance: int
    total_points_earned: int
    entry_count: int
    last_sequence: int


@dataclass(slots=True)
class AuditReport:
    member_id: UUID
    stored_balance: int
    replayed_balance: int
    stored_total_earned: int
    replayed_total_earned: int
    entry_count: int

    @property
    def is_consistent(self) -> bool:
        return (
            self.stored_balance == self.replayed_balance
            and self.stored_total_earned == self.replayed_total_earned
        )


def encode_sequence_cursor(sequence: int, identifier: UUID) -> str:
    """Encode pagination cursor for ledger history."""

    payload = f"{sequence}|{identifier}".encode("utf-8")
    return base64.urlsafe_b64encode(payload).decode("utf-8")


def decode_sequence_cursor(cursor: str) -> Tuple[int, UUID]:
    """Decode a ledger history cursor; raises ``ValueError`` when malformed."""

    try:
        raw = base64.urlsafe_b64decode(cursor.encode("utf-8")).decode("utf-8")
        sequence_str, identifier_str = raw.split("|", 1)
        return int(sequence_str), UUID(identifier_str)
    except (binascii.Error, UnicodeDecodeError) as exc:
        raise ValueError("Invalid ledger cursor") from exc


def apply_movement(balance: int, total_earned: int, kind: LedgerEntryKind, amount: int) -> tuple[int, int]:
    """Balance arithmetic shared by appends and replays."""

    new_balance = max(0, balance + amount)
    new_total = total_earned + max(0, amount) if kind.is_earning else total_earned
    return new_balance, new_total


class PointsLedger:
    """The only sanctioned writer of member balances."""

    def __init__(self, db_session: AsyncSession, *, tiers: TierProgression | None = None) -> None:
        self._db = db_session
        self._tiers = tiers or TierProgression(db_session)
        self._store = get_rewards_store()

    async def append(
        self,
        member: Member,
        *,
        amount: int,
        kind: LedgerEntryKind | str,
        reference_id: str | None = None,
        reference_kind: str | None = None,
        description: str | None = None,
        metadata: dict[str, Any] | None = None,
        reversal_of_id: UUID | None = None,
        now: datetime | None = None,
    ) -> LedgerAppendResult:
        """Record a ledger entry and update balances in the caller's unit of work.

        The balance moves by a single SQL expression floored at zero while the
        member row is locked; the tier is recomputed from the new total.
        """

        kind = LedgerEntryKind(kind)
        amount = int(amount)
        if amount == 0:
            raise LedgerError("Ledger entries require a non-zero amount")
        if kind.is_spending and amount > 0:
            raise LedgerError(f"{kind.value} entries require a negative amount")
        if kind == LedgerEntryKind.REVERSAL and reversal_of_id is None:
            raise LedgerError("Reversal entries must reference the reversed entry")

        timestamp = as_utc(now) if now else datetime.now(timezone.utc)
        await self._lock_member(member.id)

        moved_balance = Member.points_balance + amount
        values: dict[str, Any] = {
            "points_balance": case((moved_balance < 0, 0), else_=moved_balance),
        }
        if kind.is_earning and amount > 0:
            values["total_points_earned"] = Member.total_points_earned + amount
        await self._db.execute(
            update(Member)
            .where(Member.id == member.id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await self._db.refresh(member, attribute_names=["points_balance", "total_points_earned"])

        balance_after = int(member.points_balance)
        total_after = int(member.total_points_earned)
        entry = LedgerEntry(
            id=uuid4(),
            member_id=member.id,
            sequence=await self._next_sequence(member.id),
            kind=kind,
            amount=amount,
            balance_after=balance_after,
            total_earned_after=total_after,
            reference_id=reference_id,
            reference_kind=reference_kind,
            reversal_of_id=reversal_of_id,
            description=description,
            metadata_json=metadata or {},
            created_at=timestamp,
        )
        self._db.add(entry)

        tier_change = await self._tiers.recompute(member, total_after, now=timestamp)
        await self._db.flush()

        self._store.record_ledger_entry(kind.value, amount)
        logger.info(
            "Recorded ledger entry",
            member_id=str(member.id),
            entry_kind=kind.value,
            amount=amount,
            balance_after=balance_after,
            sequence=entry.sequence,
        )
        return LedgerAppendResult(
            entry=entry,
            balance=MemberBalance(
                member_id=member.id,
                points_balance=balance_after,
                total_points_earned=total_after,
                current_tier_id=member.current_tier_id,
            ),
            tier_change=tier_change,
        )

    async def reverse(
        self,
        entry_id: UUID,
        *,
        reason: str | None = None,
        actor_ref: str | None = None,
        brand_id: UUID | None = None,
        now: datetime | None = None,
    ) -> LedgerAppendResult:
        """Counter an entry with a ``reversal`` of the balance movement it caused.

        A spend clipped by the zero floor moved the balance by less than its
        recorded amount; only the movement that actually happened is undone.
        """

        original = await self._db.get(LedgerEntry, entry_id)
        if original is None:
            raise RewardNotFoundError(f"Ledger entry {entry_id} not found")
        member = await self._db.get(Member, original.member_id)
        if member is None or (brand_id is not None and member.brand_id != brand_id):
            raise RewardNotFoundError(f"Ledger entry {entry_id} not found")
        if original.kind == LedgerEntryKind.REVERSAL:
            raise LedgerError("Reversal entries cannot be reversed")

        existing = await self._db.execute(
            select(LedgerEntry.id).where(LedgerEntry.reversal_of_id == original.id)
        )
        if existing.scalar_one_or_none() is not None:
            raise LedgerError(f"Ledger entry {entry_id} has already been reversed")

        previous = await self._db.execute(
            select(LedgerEntry.balance_after).where(
                LedgerEntry.member_id == original.member_id,
                LedgerEntry.sequence == original.sequence - 1,
            )
        )
        effective = int(original.balance_after) - int(previous.scalar_one_or_none() or 0)
        if effective == 0:
            raise LedgerError(f"Ledger entry {entry_id} did not move the balance")

        metadata: dict[str, Any] = {
            "reversed_kind": LedgerEntryKind(original.kind).value,
            "original_amount": int(original.amount),
        }
        if actor_ref:
            metadata["actor_ref"] = actor_ref
        try:
            return await self.append(
                member,
                amount=-effective,
                kind=LedgerEntryKind.REVERSAL,
                reference_id=str(original.id),
                reference_kind="ledger_entry",
                reversal_of_id=original.id,
                description=reason,
                metadata=metadata,
                now=now,
            )
        except IntegrityError as exc:
            await self._db.rollback()
            raise LedgerError(f"Ledger entry {entry_id} has already been reversed") from exc

    async def list_entries(
        self,
        member: Member,
        *,
        limit: int | None = None,
        cursor: str | None = None,
        kinds: Sequence[LedgerEntryKind] | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> LedgerPage:
        """Return a newest-first slice of the member's ledger."""

        requested = limit or settings.ledger_history_default_page_size
        bounded_limit = max(1, min(requested, settings.ledger_history_max_page_size))
        stmt = (
            select(LedgerEntry)
            .where(LedgerEntry.member_id == member.id)
            .order_by(LedgerEntry.sequence.desc())
        )
        if kinds:
            stmt = stmt.where(LedgerEntry.kind.in_(list(kinds)))
        if start is not None:
            stmt = stmt.where(LedgerEntry.created_at >= as_utc(start))
        if end is not None:
            stmt = stmt.where(LedgerEntry.created_at < as_utc(end))
        if cursor:
            cursor_sequence, _ = decode_sequence_cursor(cursor)
            stmt = stmt.where(LedgerEntry.sequence < cursor_sequence)

        result = await self._db.execute(stmt.limit(bounded_limit + 1))
        rows = list(result.scalars().all())
        entries = rows[:bounded_limit]
        next_cursor = None
        if len(rows) > bounded_limit and entries:
            tail = entries[-1]
            next_cursor = encode_sequence_cursor(tail.sequence, tail.id)
        return LedgerPage(entries=entries, next_cursor=next_cursor)

    async def balance(self, member: Member) -> MemberBalance:
        await self._db.flush()
        await self._db.refresh(member, attribute_names=["points_balance", "total_points_earned", "current_tier_id"])
        return MemberBalance(
            member_id=member.id,
            points_balance=int(member.points_balance or 0),
            total_points_earned=int(member.total_points_earned or 0),
            current_tier_id=member.current_tier_id,
        )

    async def replay(self, member: Member) -> ReplayResult:
        """Fold the member's entries in sequence order from a zero balance."""

        stmt = (
            select(LedgerEntry.kind, LedgerEntry.amount, LedgerEntry.sequence)
            .where(LedgerEntry.member_id == member.id)
            .order_by(LedgerEntry.sequence.asc())
        )
        result = await self._db.execute(stmt)
        balance = 0
        total = 0
        count = 0
        last_sequence = 0
        for kind, amount, sequence in result.all():
            balance, total = apply_movement(balance, total, LedgerEntryKind(kind), int(amount))
            count += 1
            last_sequence = int(sequence)
        return ReplayResult(
            member_id=member.id,
            points_balance=balance,
            total_points_earned=total,
            entry_count=count,
            last_sequence=last_sequence,
        )

    async def audit(self, member: Member) -> AuditReport:
        """Compare the stored projection with a replay; raise on divergence."""

        snapshot = await self.balance(member)
        replayed = await self.replay(member)
        report = AuditReport(
            member_id=member.id,
            stored_balance=snapshot.points_balance,
            replayed_balance=replayed.points_balance,
            stored_total_earned=snapshot.total_points_earned,
            replayed_total_earned=replayed.total_points_earned,
            entry_count=replayed.entry_count,
        )
        self._store.record_audit(consistent=report.is_consistent)
        if not report.is_consistent:
            logger.error(
                "Ledger projection diverged from replay",
                member_id=str(member.id),
                stored_balance=report.stored_balance,
                replayed_balance=report.replayed_balance,
                stored_total_earned=report.stored_total_earned,
                replayed_total_earned=report.replayed_total_earned,
            )
            raise ConsistencyError(
                member.id,
                stored_balance=report.stored_balance,
                replayed_balance=report.replayed_balance,
                stored_total_earned=report.stored_total_earned,
                replayed_total_earned=report.replayed_total_earned,
            )
        return report

    async def _lock_member(self, member_id: UUID) -> None:
        stmt = select(Member.id).where(Member.id == member_id).with_for_update()
        result = await self._db.execute(stmt)
        if result.scalar_one_or_none() is None:
            raise RewardNotFoundError(f"Member {member_id} not found")

    async def _next_sequence(self, member_id: UUID) -> int:
        stmt = select(func.coalesce(func.max(LedgerEntry.sequence), 0)).where(LedgerEntry.member_id == member_id)
        result = await self._db.execute(stmt)
        return int(result.scalar_one()) + 1


__all__ = [
    "AuditReport",
    "LedgerAppendResult",
    "LedgerPage",
    "MemberBalance",
    "PointsLedger",
    "ReplayResult",
    "apply_movement",
    "decode_sequence_cursor",
    "encode_sequence_cursor",
]

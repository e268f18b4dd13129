"""Reward issuance: eligibility, draw, ledger credit, tier and outcome in one unit of work."""

from __future__ import annotations

import asyncio
import weakref
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any
from uuid import UUID, uuid4

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from engage_api.models.brand import Member
from engage_api.models.ledger import LedgerEntry, LedgerEntryKind
from engage_api.models.reward import (
    MissionType,
    RewardItemKind,
    RewardOutcome,
    RewardSource,
    RewardSourceKind,
)
from engage_api.observability.rewards import get_rewards_store
from engage_api.observability.tracing import get_tracer
from engage_api.services.rewards.eligibility import EligibilityDecision, EligibilityGate, as_utc, reward_day
from engage_api.services.rewards.errors import (
    IneligibleReason,
    IssuanceConflictError,
    RewardValidationError,
)
from engage_api.services.rewards.ledger import LedgerAppendResult, PointsLedger
from engage_api.services.rewards.probability import ProbabilityItem, require_valid_table
from engage_api.services.rewards.resolver import RandomSource, RewardResolver
from engage_api.services.rewards.sources import RewardCatalog
from engage_api.services.rewards.tiers import TierChange

# Entries vanish once no in-flight issuance holds a reference to the lock.
_ISSUANCE_LOCKS: "weakref.WeakValueDictionary[tuple[UUID, UUID], asyncio.Lock]" = weakref.WeakValueDictionary()


def _issuance_lock(member_id: UUID, source_id: UUID) -> asyncio.Lock:
    key = (member_id, source_id)
    lock = _ISSUANCE_LOCKS.get(key)
    if lock is None:
        lock = asyncio.Lock()
        _ISSUANCE_LOCKS[key] = lock
    return lock


@dataclass(slots=True)
class IssuanceResult:
    success: bool
    reason: IneligibleReason | None = None
    next_eligible_at: datetime | None = None
    outcome: RewardOutcome | None = None
    item: ProbabilityItem | None = None
    source: RewardSource | None = None
    ledger_entry: LedgerEntry | None = None
    balance_after: int | None = None
    tier_change: TierChange | None = None


def validate_completion_evidence(source: RewardSource, action_context: dict[str, Any]) -> None:
    """Check the evidence a mission type requires before it can be rewarded."""

    mission_type = MissionType(source.mission_type) if source.mission_type else MissionType.CUSTOM
    target = int(source.target_value or 0)

    if mission_type in {MissionType.POINTS_EARNED, MissionType.SPINS_COMPLETED}:
        try:
            progress = int(action_context.get("progress") or 0)
        except (TypeError, ValueError) as exc:
            raise RewardValidationError("Mission progress must be an integer") from exc
        if progress < max(target, 1):
            unit = "points" if mission_type == MissionType.POINTS_EARNED else "spins"
            raise RewardValidationError(f"Minimum {target} {unit} required")
    elif mission_type == MissionType.PROFILE_COMPLETION:
        data = action_context.get("data") or {}
        if not isinstance(data, dict) or not data.get("profile_completion"):
            raise RewardValidationError("Profile completion data required")


class RewardIssuanceOrchestrator:
    """Runs one member action through the reward pipeline and commits once."""

    def __init__(self, db_session: AsyncSession, rng: RandomSource | None = None) -> None:
        self._db = db_session
        self._catalog = RewardCatalog(db_session)
        self._gate = EligibilityGate(db_session)
        self._ledger = PointsLedger(db_session)
        self._resolver = RewardResolver(rng)
        self._store = get_rewards_store()
        self._tracer = get_tracer()

    async def check(
        self,
        *,
        member_id: UUID,
        brand_id: UUID,
        source_id: UUID,
        now: datetime | None = None,
    ) -> EligibilityDecision:
        member = await self._catalog.get_member(member_id, brand_id)
        source = await self._catalog.get_source(source_id, brand_id)
        return await self._gate.check(member, source, as_utc(now) if now else datetime.now(timezone.utc))

    async def issue(
        self,
        *,
        member_id: UUID,
        brand_id: UUID,
        source_id: UUID,
        now: datetime | None = None,
        action_context: dict[str, Any] | None = None,
    ) -> IssuanceResult:
        """Issue a reward for one member action.

        Ineligible actions return an unsuccessful result without writing. A
        concurrent writer that claimed the same daily slot surfaces as
        ``IssuanceConflictError`` after a full rollback.
        """

        timestamp = as_utc(now) if now else datetime.now(timezone.utc)
        context = dict(action_context or {})

        async with _issuance_lock(member_id, source_id):
            with self._tracer.start_as_current_span("rewards.issue") as span:
                span.set_attribute("reward.member_id", str(member_id))
                span.set_attribute("reward.source_id", str(source_id))
                try:
                    member = await self._catalog.get_member(member_id, brand_id, for_update=True)
                    source = await self._catalog.get_source(source_id, brand_id)
                    decision = await self._gate.check(member, source, timestamp)
                    if not decision.eligible and decision.reason is not None:
                        await self._db.commit()
                        self._store.record_ineligible(decision.reason.value)
                        span.set_attribute("reward.ineligible_reason", decision.reason.value)
                        return IssuanceResult(
                            success=False,
                            reason=decision.reason,
                            next_eligible_at=decision.next_eligible_at,
                            source=source,
                        )

                    result = await self._write(member, source, decision, timestamp, context)
                    await self._db.commit()
                except IntegrityError as exc:
                    await self._db.rollback()
                    self._store.record_conflict()
                    logger.warning(
                        "Reward issuance lost a concurrent race",
                        member_id=str(member_id),
                        source_id=str(source_id),
                    )
                    raise IssuanceConflictError(member_id, source_id) from exc
                except Exception:
                    await self._db.rollback()
                    raise

                span.set_attribute("reward.is_winner", bool(result.outcome and result.outcome.is_winner))

        self._store.record_issuance(RewardSourceKind(source.kind).value, is_winner=bool(result.outcome.is_winner))
        logger.info(
            "Issued reward",
            member_id=str(member_id),
            source_id=str(source_id),
            outcome_id=str(result.outcome.id),
            result_kind=result.outcome.result_kind,
            balance_after=result.balance_after,
        )
        return result

    async def _write(
        self,
        member: Member,
        source: RewardSource,
        decision: EligibilityDecision,
        timestamp: datetime,
        context: dict[str, Any],
    ) -> IssuanceResult:
        outcome_id = uuid4()
        item: ProbabilityItem | None = None
        appended: LedgerAppendResult | None = None

        if source.kind == RewardSourceKind.WHEEL:
            valid_set = require_valid_table([ProbabilityItem.from_model(entry) for entry in source.items])
            item = self._resolver.resolve(valid_set)
            result_kind = item.kind.value
            result_value = item.value
            is_winner = item.kind.is_winning
            if item.kind == RewardItemKind.POINTS and item.value > 0:
                appended = await self._ledger.append(
                    member,
                    amount=item.value,
                    kind=LedgerEntryKind.WHEEL_WIN,
                    reference_id=str(outcome_id),
                    reference_kind="reward_outcome",
                    description=f"Wheel reward: {item.name}",
                    now=timestamp,
                )
        else:
            validate_completion_evidence(source, context)
            reward_points = int(source.reward_points or 0)
            result_kind = RewardItemKind.POINTS.value if reward_points > 0 else RewardItemKind.NOTHING.value
            result_value = reward_points
            is_winner = reward_points > 0
            if reward_points > 0:
                appended = await self._ledger.append(
                    member,
                    amount=reward_points,
                    kind=LedgerEntryKind.MISSION_REWARD,
                    reference_id=str(outcome_id),
                    reference_kind="reward_outcome",
                    description=f"Mission completion reward: {source.name}",
                    now=timestamp,
                )

        outcome = RewardOutcome(
            id=outcome_id,
            member_id=member.id,
            source_id=source.id,
            result_item_id=item.id if item else None,
            result_kind=result_kind,
            result_value=result_value,
            is_winner=is_winner,
            ledger_entry_id=appended.entry.id if appended else None,
            action_date=reward_day(timestamp),
            daily_sequence=decision.daily_count + 1,
            metadata_json={"action_context": context} if context else {},
            created_at=timestamp,
        )
        self._db.add(outcome)
        await self._db.flush()

        return IssuanceResult(
            success=True,
            outcome=outcome,
            item=item,
            source=source,
            ledger_entry=appended.entry if appended else None,
            balance_after=appended.balance.points_balance if appended else int(member.points_balance or 0),
            tier_change=appended.tier_change if appended else None,
        )


__all__ = ["IssuanceResult", "RewardIssuanceOrchestrator", "validate_completion_evidence"]

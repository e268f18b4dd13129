"""Tier progression state machine driven by lifetime points."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Sequence
from uuid import UUID

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from engage_api.models.brand import Member
from engage_api.models.tier import MemberTierEvent, MemberTierEventReason, MembershipTier
from engage_api.observability.rewards import get_rewards_store
from engage_api.services.rewards.errors import RewardNotFoundError, RewardValidationError


@dataclass(slots=True)
class TierChange:
    member_id: UUID
    from_tier_id: UUID | None
    to_tier_id: UUID | None
    to_tier_slug: str | None
    total_points_earned: int
    reason: MemberTierEventReason


def select_tier(tiers: Sequence[MembershipTier], total_points_earned: int) -> MembershipTier | None:
    """Pick the tier whose ``[min_points, max_points]`` range holds the total.

    ``max_points`` is inclusive and ``None`` means unbounded. When ranges
    overlap (or touch at a shared boundary) the tier with the greatest
    ``min_points`` wins.
    """

    selected: MembershipTier | None = None
    for tier in tiers:
        minimum = int(tier.min_points or 0)
        if minimum > total_points_earned:
            continue
        if tier.max_points is not None and total_points_earned > int(tier.max_points):
            continue
        if selected is None or minimum > int(selected.min_points or 0):
            selected = tier
    return selected


class TierProgression:
    """Recomputes membership tier after ledger appends and records manual overrides."""

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session
        self._store = get_rewards_store()

    async def list_active_tiers(self, brand_id: UUID) -> list[MembershipTier]:
        stmt = (
            select(MembershipTier)
            .where(MembershipTier.brand_id == brand_id, MembershipTier.is_active.is_(True))
            .order_by(MembershipTier.min_points.asc(), MembershipTier.sort_order.asc())
        )
        result = await self._db.execute(stmt)
        return list(result.scalars().all())

    async def recompute(
        self,
        member: Member,
        total_points_earned: int,
        *,
        now: datetime | None = None,
    ) -> TierChange | None:
        """Move the member to the tier matching ``total_points_earned``.

        A held manual override survives until the total crosses a tier
        boundary relative to the points recorded when it was assigned.
        """

        tiers = await self.list_active_tiers(member.brand_id)
        if not tiers:
            return None

        total = int(total_points_earned)
        target = select_tier(tiers, total)
        if target is None:
            logger.warning(
                "No membership tier covers member total",
                member_id=str(member.id),
                total_points_earned=total,
            )
            return None

        reason = MemberTierEventReason.PROGRESSION
        baseline = member.tier_override_baseline_points
        if baseline is not None:
            baseline_tier = select_tier(tiers, int(baseline))
            if baseline_tier is not None and baseline_tier.id == target.id:
                return None
            member.tier_override_baseline_points = None
            reason = MemberTierEventReason.OVERRIDE_RELEASED
            logger.info(
                "Released manual tier override",
                member_id=str(member.id),
                baseline_points=int(baseline),
                total_points_earned=total,
            )

        if member.current_tier_id == target.id:
            return None

        return self._apply(
            member,
            target,
            total_points_earned=total,
            reason=reason,
            now=now,
        )

    async def assign_tier(
        self,
        member: Member,
        tier_id: UUID,
        *,
        actor_ref: str | None = None,
        note: str | None = None,
        now: datetime | None = None,
    ) -> TierChange:
        """Manually place a member in a tier and hold it against progression."""

        tier = await self._db.get(MembershipTier, tier_id)
        if tier is None or tier.brand_id != member.brand_id:
            raise RewardNotFoundError(f"Membership tier {tier_id} not found")
        if not tier.is_active:
            raise RewardValidationError(f"Membership tier {tier.slug} is not active")

        member.tier_override_baseline_points = int(member.total_points_earned or 0)
        return self._apply(
            member,
            tier,
            total_points_earned=int(member.total_points_earned or 0),
            reason=MemberTierEventReason.MANUAL_OVERRIDE,
            actor_ref=actor_ref,
            note=note,
            now=now,
        )

    def _apply(
        self,
        member: Member,
        tier: MembershipTier,
        *,
        total_points_earned: int,
        reason: MemberTierEventReason,
        actor_ref: str | None = None,
        note: str | None = None,
        now: datetime | None = None,
    ) -> TierChange:
        timestamp = now or datetime.now(timezone.utc)
        previous_tier_id = member.current_tier_id
        member.current_tier_id = tier.id
        member.last_tier_change_at = timestamp

        self._db.add(
            MemberTierEvent(
                member_id=member.id,
                from_tier_id=previous_tier_id,
                to_tier_id=tier.id,
                total_points_earned=total_points_earned,
                reason=reason,
                actor_ref=actor_ref,
                note=note,
                created_at=timestamp,
            )
        )
        self._store.record_tier_change(reason.value)
        logger.info(
            "Changed membership tier",
            member_id=str(member.id),
            from_tier_id=str(previous_tier_id) if previous_tier_id else None,
            tier_slug=tier.slug,
            reason=reason.value,
            total_points_earned=total_points_earned,
        )
        return TierChange(
            member_id=member.id,
            from_tier_id=previous_tier_id,
            to_tier_id=tier.id,
            to_tier_slug=tier.slug,
            total_points_earned=total_points_earned,
            reason=reason,
        )


__all__ = ["TierChange", "TierProgression", "select_tier"]

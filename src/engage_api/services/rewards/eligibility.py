"""Eligibility gate deciding whether a member may trigger a reward source now."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from uuid import UUID
from zoneinfo import ZoneInfo

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from engage_api.core.settings import settings
from engage_api.models.brand import Member
from engage_api.models.reward import RewardOutcome, RewardSource, RewardSourceKind
from engage_api.models.tier import MembershipTier
from engage_api.services.rewards.errors import IneligibleError, IneligibleReason


def as_utc(value: datetime) -> datetime:
    """Treat naive timestamps (as returned by SQLite) as UTC."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def reward_day(now: datetime) -> date:
    """Calendar day bucket used for daily caps."""

    return as_utc(now).astimezone(ZoneInfo(settings.reward_day_timezone)).date()


def next_reward_day_start(now: datetime) -> datetime:
    zone = ZoneInfo(settings.reward_day_timezone)
    tomorrow = reward_day(now) + timedelta(days=1)
    return datetime.combine(tomorrow, time.min, tzinfo=zone).astimezone(timezone.utc)


@dataclass(slots=True)
class EligibilityDecision:
    """Outcome of an eligibility check."""

    eligible: bool
    reason: IneligibleReason | None = None
    next_eligible_at: datetime | None = None
    daily_count: int = 0

    def ensure(self) -> "EligibilityDecision":
        if not self.eligible and self.reason is not None:
            raise IneligibleError(self.reason, next_eligible_at=self.next_eligible_at)
        return self


class EligibilityGate:
    """Read-only checks over the durable outcome log."""

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    async def check(self, member: Member, source: RewardSource, now: datetime) -> EligibilityDecision:
        """Evaluate ineligibility reasons in priority order; first hit wins."""

        now = as_utc(now)

        if not source.is_active:
            return self._deny(member, source, IneligibleReason.SOURCE_INACTIVE)

        if source.starts_at is not None and now < as_utc(source.starts_at):
            return self._deny(
                member,
                source,
                IneligibleReason.NOT_YET_ACTIVE,
                next_eligible_at=as_utc(source.starts_at),
            )
        if source.ends_at is not None and now > as_utc(source.ends_at):
            return self._deny(member, source, IneligibleReason.WINDOW_CLOSED)

        daily_count = await self.count_daily_outcomes(member.id, source.id, reward_day(now))
        cap = int(source.daily_action_cap or 0)
        if cap > 0 and daily_count >= cap:
            return self._deny(
                member,
                source,
                IneligibleReason.DAILY_CAP_REACHED,
                next_eligible_at=next_reward_day_start(now),
                daily_count=daily_count,
            )

        cooldown = int(source.cooldown_minutes or 0)
        if cooldown > 0:
            last_at = await self.last_outcome_at(member.id, source.id)
            if last_at is not None:
                cooldown_end = as_utc(last_at) + timedelta(minutes=cooldown)
                if now < cooldown_end:
                    return self._deny(
                        member,
                        source,
                        IneligibleReason.COOLDOWN_ACTIVE,
                        next_eligible_at=cooldown_end,
                        daily_count=daily_count,
                    )

        if source.kind == RewardSourceKind.MISSION:
            reason = await self._mission_requirement_failure(member, source)
            if reason is not None:
                return self._deny(member, source, reason, daily_count=daily_count)

        return EligibilityDecision(eligible=True, daily_count=daily_count)

    async def count_daily_outcomes(self, member_id: UUID, source_id: UUID, day: date) -> int:
        stmt = select(func.count(RewardOutcome.id)).where(
            RewardOutcome.member_id == member_id,
            RewardOutcome.source_id == source_id,
            RewardOutcome.action_date == day,
        )
        result = await self._db.execute(stmt)
        return int(result.scalar_one() or 0)

    async def last_outcome_at(self, member_id: UUID, source_id: UUID) -> datetime | None:
        stmt = select(func.max(RewardOutcome.created_at)).where(
            RewardOutcome.member_id == member_id,
            RewardOutcome.source_id == source_id,
        )
        result = await self._db.execute(stmt)
        return result.scalar_one_or_none()

    async def has_outcome(self, member_id: UUID, source_id: UUID) -> bool:
        stmt = (
            select(RewardOutcome.id)
            .where(
                RewardOutcome.member_id == member_id,
                RewardOutcome.source_id == source_id,
            )
            .limit(1)
        )
        result = await self._db.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def _mission_requirement_failure(
        self,
        member: Member,
        source: RewardSource,
    ) -> IneligibleReason | None:
        if not source.is_repeatable and await self.has_outcome(member.id, source.id):
            return IneligibleReason.ALREADY_COMPLETED

        if source.required_tier_id is not None and member.current_tier_id != source.required_tier_id:
            if not await self._tier_at_least(member.current_tier_id, source.required_tier_id):
                return IneligibleReason.TIER_REQUIREMENT_NOT_MET

        minimum = source.min_points_required
        if minimum and int(member.total_points_earned or 0) < int(minimum):
            return IneligibleReason.POINTS_REQUIREMENT_NOT_MET

        return None

    async def _tier_at_least(self, member_tier_id: UUID | None, required_tier_id: UUID) -> bool:
        """A member in a higher tier than required satisfies the requirement."""

        if member_tier_id is None:
            return False
        stmt = select(MembershipTier.id, MembershipTier.min_points).where(
            MembershipTier.id.in_([member_tier_id, required_tier_id])
        )
        result = await self._db.execute(stmt)
        thresholds = {tier_id: int(min_points or 0) for tier_id, min_points in result.all()}
        if required_tier_id not in thresholds or member_tier_id not in thresholds:
            return False
        return thresholds[member_tier_id] >= thresholds[required_tier_id]

    @staticmethod
    def _deny(
        member: Member,
        source: RewardSource,
        reason: IneligibleReason,
        *,
        next_eligible_at: datetime | None = None,
        daily_count: int = 0,
    ) -> EligibilityDecision:
        logger.info(
            "Reward action ineligible",
            member_id=str(member.id),
            source_id=str(source.id),
            reason=reason.value,
        )
        return EligibilityDecision(
            eligible=False,
            reason=reason,
            next_eligible_at=next_eligible_at,
            daily_count=daily_count,
        )


__all__ = [
    "EligibilityDecision",
    "EligibilityGate",
    "as_utc",
    "next_reward_day_start",
    "reward_day",
]

"""Typed failures raised by the reward engine."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Sequence
from uuid import UUID


class IneligibleReason(str, Enum):
    """Why a member may not trigger a reward-producing action right now.

    Declaration order is the order the eligibility gate evaluates them in.
    """

    SOURCE_INACTIVE = "source_inactive"
    NOT_YET_ACTIVE = "not_yet_active"
    WINDOW_CLOSED = "window_closed"
    DAILY_CAP_REACHED = "daily_cap_reached"
    COOLDOWN_ACTIVE = "cooldown_active"
    ALREADY_COMPLETED = "already_completed"
    TIER_REQUIREMENT_NOT_MET = "tier_requirement_not_met"
    POINTS_REQUIREMENT_NOT_MET = "points_requirement_not_met"

    @property
    def message(self) -> str:
        return _REASON_MESSAGES[self]


_REASON_MESSAGES: dict[IneligibleReason, str] = {
    IneligibleReason.SOURCE_INACTIVE: "reward source is not active",
    IneligibleReason.NOT_YET_ACTIVE: "reward source is not yet available",
    IneligibleReason.WINDOW_CLOSED: "reward source is no longer available",
    IneligibleReason.DAILY_CAP_REACHED: "daily cap reached",
    IneligibleReason.COOLDOWN_ACTIVE: "cooldown active",
    IneligibleReason.ALREADY_COMPLETED: "mission already completed",
    IneligibleReason.TIER_REQUIREMENT_NOT_MET: "member tier requirement not met",
    IneligibleReason.POINTS_REQUIREMENT_NOT_MET: "minimum points requirement not met",
}


class RewardEngineError(RuntimeError):
    """Base exception for reward engine failures."""


class RewardValidationError(RewardEngineError):
    """Raised when reward configuration or completion evidence is malformed."""

    def __init__(self, message: str, *, errors: Sequence[str] | None = None) -> None:
        super().__init__(message)
        self.errors = list(errors or [message])


class ProbabilityTableError(RewardValidationError):
    """Raised when a weighted item set fails validation."""

    def __init__(self, errors: Sequence[str], *, total_probability: float) -> None:
        super().__init__("Invalid probability table: " + "; ".join(errors), errors=errors)
        self.total_probability = total_probability


class IneligibleError(RewardEngineError):
    """Raised when the eligibility gate rejects an action. Expected and user-facing."""

    def __init__(self, reason: IneligibleReason, *, next_eligible_at: datetime | None = None) -> None:
        super().__init__(reason.message)
        self.reason = reason
        self.next_eligible_at = next_eligible_at


class IssuanceConflictError(RewardEngineError):
    """Raised when a concurrent issuance claimed the slot first.

    The slot is genuinely exhausted; callers must re-run the eligibility check
    rather than retry the same request.
    """

    def __init__(self, member_id: UUID, source_id: UUID) -> None:
        super().__init__(f"Concurrent issuance already claimed the slot for member {member_id} on source {source_id}")
        self.member_id = member_id
        self.source_id = source_id


class ConsistencyError(RewardEngineError):
    """Raised when a member's stored balance diverges from its ledger replay."""

    def __init__(
        self,
        member_id: UUID,
        *,
        stored_balance: int,
        replayed_balance: int,
        stored_total_earned: int,
        replayed_total_earned: int,
    ) -> None:
        super().__init__(
            f"Ledger divergence for member {member_id}: "
            f"balance stored={stored_balance} replayed={replayed_balance}, "
            f"total earned stored={stored_total_earned} replayed={replayed_total_earned}"
        )
        self.member_id = member_id
        self.stored_balance = stored_balance
        self.replayed_balance = replayed_balance
        self.stored_total_earned = stored_total_earned
        self.replayed_total_earned = replayed_total_earned


class LedgerError(RewardEngineError):
    """Raised when a ledger append or reversal request is invalid."""


class RewardNotFoundError(RewardEngineError):
    """Raised when a member, source, tier, or entry is missing or belongs to another brand."""


__all__ = [
    "ConsistencyError",
    "IneligibleError",
    "IneligibleReason",
    "IssuanceConflictError",
    "LedgerError",
    "ProbabilityTableError",
    "RewardEngineError",
    "RewardNotFoundError",
    "RewardValidationError",
]

"""Immutable point movements and their earning/spending classification."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Integer,
    JSON,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from engage_api.db.base import Base


class LedgerEntryKind(str, Enum):
    """Closed set of ledger movement kinds."""

    EARNED = "earned"
    SPENT = "spent"
    AWARDED = "awarded"
    DEDUCTED = "deducted"
    WHEEL_WIN = "wheel_win"
    MISSION_REWARD = "mission_reward"
    BONUS = "bonus"
    REFERRAL = "referral"
    TIER_BONUS = "tier_bonus"
    ADMIN_ADJUSTMENT = "admin_adjustment"
    REVERSAL = "reversal"

    @property
    def classification(self) -> "LedgerEntryClass":
        return LEDGER_KIND_CLASSIFICATION[self]

    @property
    def is_earning(self) -> bool:
        return self.classification is LedgerEntryClass.EARNING

    @property
    def is_spending(self) -> bool:
        return self.classification is LedgerEntryClass.SPENDING


class LedgerEntryClass(str, Enum):
    """How a ledger kind affects ``total_points_earned``."""

    EARNING = "earning"
    SPENDING = "spending"
    NEUTRAL = "neutral"


LEDGER_KIND_CLASSIFICATION: dict[LedgerEntryKind, LedgerEntryClass] = {
    LedgerEntryKind.EARNED: LedgerEntryClass.EARNING,
    LedgerEntryKind.AWARDED: LedgerEntryClass.EARNING,
    LedgerEntryKind.WHEEL_WIN: LedgerEntryClass.EARNING,
    LedgerEntryKind.MISSION_REWARD: LedgerEntryClass.EARNING,
    LedgerEntryKind.BONUS: LedgerEntryClass.EARNING,
    LedgerEntryKind.REFERRAL: LedgerEntryClass.EARNING,
    LedgerEntryKind.TIER_BONUS: LedgerEntryClass.EARNING,
    LedgerEntryKind.SPENT: LedgerEntryClass.SPENDING,
    LedgerEntryKind.DEDUCTED: LedgerEntryClass.SPENDING,
    LedgerEntryKind.ADMIN_ADJUSTMENT: LedgerEntryClass.NEUTRAL,
    LedgerEntryKind.REVERSAL: LedgerEntryClass.NEUTRAL,
}


class LedgerEntry(Base):
    """Signed point movement for a member; never updated or deleted."""

    __tablename__ = "ledger_entries"
    __table_args__ = (
        UniqueConstraint("member_id", "sequence", name="uq_ledger_entries_member_sequence"),
        UniqueConstraint("reversal_of_id", name="uq_ledger_entries_reversal_of"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    member_id = Column(UUID(as_uuid=True), ForeignKey("members.id", ondelete="CASCADE"), nullable=False, index=True)
    sequence = Column(Integer, nullable=False)
    kind = Column(
        SqlEnum(
            LedgerEntryKind,
            name="ledger_entry_kind",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
    )
    amount = Column(BigInteger, nullable=False)
    balance_after = Column(BigInteger, nullable=False)
    total_earned_after = Column(BigInteger, nullable=False)
    reference_id = Column(String, nullable=True)
    reference_kind = Column(String, nullable=True)
    reversal_of_id = Column(
        UUID(as_uuid=True),
        ForeignKey("ledger_entries.id", ondelete="RESTRICT"),
        nullable=True,
    )
    description = Column(String, nullable=True)
    metadata_json = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    member = relationship("Member", back_populates="ledger_entries")

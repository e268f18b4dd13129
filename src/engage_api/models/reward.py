"""Reward sources (wheels and missions), their weighted items, and issued outcomes."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    Date,
    DateTime,
    Enum as SqlEnum,
    Float,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from engage_api.db.base import Base


class RewardSourceKind(str, Enum):
    """Member actions capable of producing a reward outcome."""

    WHEEL = "wheel"
    MISSION = "mission"


class MissionType(str, Enum):
    """Completion evidence expected by a mission."""

    POINTS_EARNED = "points_earned"
    SPINS_COMPLETED = "spins_completed"
    PROFILE_COMPLETION = "profile_completion"
    CUSTOM = "custom"


class RewardItemKind(str, Enum):
    """What a wheel segment grants when drawn."""

    POINTS = "points"
    DISCOUNT = "discount"
    PRODUCT = "product"
    COUPON = "coupon"
    CASH = "cash"
    BONUS_SPIN = "bonus_spin"
    TIER_UPGRADE = "tier_upgrade"
    NOTHING = "nothing"
    EMPTY = "empty"

    @property
    def is_winning(self) -> bool:
        return self not in {RewardItemKind.NOTHING, RewardItemKind.EMPTY}


class RewardSource(Base):
    """Configured wheel or mission belonging to exactly one brand."""

    __tablename__ = "reward_sources"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    brand_id = Column(UUID(as_uuid=True), ForeignKey("brands.id", ondelete="CASCADE"), nullable=False, index=True)
    kind = Column(
        SqlEnum(
            RewardSourceKind,
            name="reward_source_kind",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
    )
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default="true")
    daily_action_cap = Column(Integer, nullable=False, default=0, server_default="0")
    cooldown_minutes = Column(Integer, nullable=False, default=0, server_default="0")
    starts_at = Column(DateTime(timezone=True), nullable=True)
    ends_at = Column(DateTime(timezone=True), nullable=True)

    mission_type = Column(
        SqlEnum(
            MissionType,
            name="reward_mission_type",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=True,
    )
    target_value = Column(Integer, nullable=True)
    reward_points = Column(BigInteger, nullable=False, default=0, server_default="0")
    is_repeatable = Column(Boolean, nullable=False, default=False, server_default="false")
    required_tier_id = Column(
        UUID(as_uuid=True),
        ForeignKey("membership_tiers.id", ondelete="SET NULL"),
        nullable=True,
    )
    min_points_required = Column(BigInteger, nullable=True)

    metadata_json = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    items = relationship(
        "RewardItem",
        back_populates="source",
        cascade="all, delete-orphan",
        order_by="RewardItem.position",
    )
    outcomes = relationship("RewardOutcome", back_populates="source")


class RewardItem(Base):
    """One weighted possible outcome of a wheel."""

    __tablename__ = "reward_items"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    source_id = Column(
        UUID(as_uuid=True),
        ForeignKey("reward_sources.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = Column(String, nullable=False)
    kind = Column(
        SqlEnum(
            RewardItemKind,
            name="reward_item_kind",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
    )
    value = Column(BigInteger, nullable=False, default=0, server_default="0")
    probability = Column(Float, nullable=False)
    position = Column(Integer, nullable=False, default=0, server_default="0")
    is_active = Column(Boolean, nullable=False, default=True, server_default="true")
    metadata_json = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    source = relationship("RewardSource", back_populates="items")


class RewardOutcome(Base):
    """Write-once receipt of a reward issuance; the durable input to rate limits."""

    __tablename__ = "reward_outcomes"
    __table_args__ = (
        UniqueConstraint(
            "member_id",
            "source_id",
            "action_date",
            "daily_sequence",
            name="uq_reward_outcomes_member_source_day_sequence",
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    member_id = Column(UUID(as_uuid=True), ForeignKey("members.id", ondelete="CASCADE"), nullable=False, index=True)
    source_id = Column(
        UUID(as_uuid=True),
        ForeignKey("reward_sources.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    result_item_id = Column(
        UUID(as_uuid=True),
        ForeignKey("reward_items.id", ondelete="SET NULL"),
        nullable=True,
    )
    result_kind = Column(String, nullable=False)
    result_value = Column(BigInteger, nullable=False, default=0, server_default="0")
    is_winner = Column(Boolean, nullable=False, default=False, server_default="false")
    ledger_entry_id = Column(
        UUID(as_uuid=True),
        ForeignKey("ledger_entries.id", ondelete="SET NULL"),
        nullable=True,
    )
    action_date = Column(Date, nullable=False)
    daily_sequence = Column(Integer, nullable=False)
    metadata_json = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    member = relationship("Member", back_populates="outcomes")
    source = relationship("RewardSource", back_populates="outcomes")
    result_item = relationship("RewardItem")

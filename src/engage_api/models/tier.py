"""Membership tiers and the tier-change audit trail."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Enum as SqlEnum,
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


class MembershipTier(Base):
    """Points range ``[min_points, max_points)`` defining a membership level."""

    __tablename__ = "membership_tiers"
    __table_args__ = (
        UniqueConstraint("brand_id", "slug", name="uq_membership_tiers_brand_slug"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    brand_id = Column(UUID(as_uuid=True), ForeignKey("brands.id", ondelete="CASCADE"), nullable=False, index=True)
    slug = Column(String, nullable=False)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    min_points = Column(BigInteger, nullable=False, default=0, server_default="0")
    max_points = Column(BigInteger, nullable=True)
    benefits = Column(JSON, nullable=False, default=list)
    sort_order = Column(Integer, nullable=False, default=0, server_default="0")
    is_active = Column(Boolean, nullable=False, default=True, server_default="true")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class MemberTierEventReason(str, Enum):
    """Why a member's tier changed."""

    PROGRESSION = "progression"
    MANUAL_OVERRIDE = "manual_override"
    OVERRIDE_RELEASED = "override_released"


class MemberTierEvent(Base):
    """Append-only record of tier transitions."""

    __tablename__ = "member_tier_events"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    member_id = Column(UUID(as_uuid=True), ForeignKey("members.id", ondelete="CASCADE"), nullable=False, index=True)
    from_tier_id = Column(UUID(as_uuid=True), ForeignKey("membership_tiers.id", ondelete="SET NULL"), nullable=True)
    to_tier_id = Column(UUID(as_uuid=True), ForeignKey("membership_tiers.id", ondelete="SET NULL"), nullable=True)
    total_points_earned = Column(BigInteger, nullable=False)
    reason = Column(
        SqlEnum(
            MemberTierEventReason,
            name="member_tier_event_reason",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
    )
    actor_ref = Column(String, nullable=True)
    note = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    member = relationship("Member", back_populates="tier_events")

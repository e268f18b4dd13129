"""Tenant and membership records the reward engine reads and projects onto."""

from __future__ import annotations

from uuid import uuid4

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from engage_api.db.base import Base


class Brand(Base):
    """Tenant owning members, tiers, and reward sources."""

    __tablename__ = "brands"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    slug = Column(String, nullable=False, unique=True, index=True)
    name = Column(String, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True, server_default="true")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    members = relationship("Member", back_populates="brand")


class Member(Base):
    """Brand member carrying the balance and tier projections of its ledger."""

    __tablename__ = "members"
    __table_args__ = (
        UniqueConstraint("brand_id", "external_ref", name="uq_members_brand_external_ref"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    brand_id = Column(UUID(as_uuid=True), ForeignKey("brands.id", ondelete="CASCADE"), nullable=False, index=True)
    external_ref = Column(String, nullable=False)
    display_name = Column(String, nullable=True)
    points_balance = Column(BigInteger, nullable=False, default=0, server_default="0")
    total_points_earned = Column(BigInteger, nullable=False, default=0, server_default="0")
    current_tier_id = Column(
        UUID(as_uuid=True),
        ForeignKey("membership_tiers.id", ondelete="SET NULL"),
        nullable=True,
    )
    # Set while a manual tier assignment is held; total points at assignment time.
    tier_override_baseline_points = Column(BigInteger, nullable=True)
    last_tier_change_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    brand = relationship("Brand", back_populates="members")
    current_tier = relationship("MembershipTier")
    ledger_entries = relationship("LedgerEntry", back_populates="member", cascade="all, delete-orphan")
    outcomes = relationship("RewardOutcome", back_populates="member", cascade="all, delete-orphan")
    tier_events = relationship("MemberTierEvent", back_populates="member", cascade="all, delete-orphan")

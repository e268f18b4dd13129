"""Reward engine core tables.

Revision ID: 20261019_01
Revises:
Create Date: 2026-10-19
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "20261019_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

UUID = postgresql.UUID

REWARD_SOURCE_KINDS = ("wheel", "mission")
MISSION_TYPES = ("points_earned", "spins_completed", "profile_completion", "custom")
REWARD_ITEM_KINDS = (
    "points",
    "discount",
    "product",
    "coupon",
    "cash",
    "bonus_spin",
    "tier_upgrade",
    "nothing",
    "empty",
)
LEDGER_ENTRY_KINDS = (
    "earned",
    "spent",
    "awarded",
    "deducted",
    "wheel_win",
    "mission_reward",
    "bonus",
    "referral",
    "tier_bonus",
    "admin_adjustment",
    "reversal",
)
TIER_EVENT_REASONS = ("progression", "manual_override", "override_released")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "brands",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("slug", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
    )
    op.create_index("ix_brands_slug", "brands", ["slug"], unique=True)

    op.create_table(
        "membership_tiers",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("brand_id", UUID(as_uuid=True), sa.ForeignKey("brands.id", ondelete="CASCADE"), nullable=False),
        sa.Column("slug", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("min_points", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("max_points", sa.BigInteger(), nullable=True),
        sa.Column("benefits", sa.JSON(), nullable=False),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.UniqueConstraint("brand_id", "slug", name="uq_membership_tiers_brand_slug"),
    )
    op.create_index("ix_membership_tiers_brand_id", "membership_tiers", ["brand_id"])

    op.create_table(
        "members",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("brand_id", UUID(as_uuid=True), sa.ForeignKey("brands.id", ondelete="CASCADE"), nullable=False),
        sa.Column("external_ref", sa.String(), nullable=False),
        sa.Column("display_name", sa.String(), nullable=True),
        sa.Column("points_balance", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("total_points_earned", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column(
            "current_tier_id",
            UUID(as_uuid=True),
            sa.ForeignKey("membership_tiers.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("tier_override_baseline_points", sa.BigInteger(), nullable=True),
        sa.Column("last_tier_change_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("brand_id", "external_ref", name="uq_members_brand_external_ref"),
    )
    op.create_index("ix_members_brand_id", "members", ["brand_id"])

    op.create_table(
        "reward_sources",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("brand_id", UUID(as_uuid=True), sa.ForeignKey("brands.id", ondelete="CASCADE"), nullable=False),
        sa.Column("kind", sa.Enum(*REWARD_SOURCE_KINDS, name="reward_source_kind"), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("daily_action_cap", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("cooldown_minutes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ends_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("mission_type", sa.Enum(*MISSION_TYPES, name="reward_mission_type"), nullable=True),
        sa.Column("target_value", sa.Integer(), nullable=True),
        sa.Column("reward_points", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("is_repeatable", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column(
            "required_tier_id",
            UUID(as_uuid=True),
            sa.ForeignKey("membership_tiers.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("min_points_required", sa.BigInteger(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_reward_sources_brand_id", "reward_sources", ["brand_id"])

    op.create_table(
        "reward_items",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "source_id",
            UUID(as_uuid=True),
            sa.ForeignKey("reward_sources.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("kind", sa.Enum(*REWARD_ITEM_KINDS, name="reward_item_kind"), nullable=False),
        sa.Column("value", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("probability", sa.Float(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_reward_items_source_id", "reward_items", ["source_id"])

    op.create_table(
        "ledger_entries",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("member_id", UUID(as_uuid=True), sa.ForeignKey("members.id", ondelete="CASCADE"), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("kind", sa.Enum(*LEDGER_ENTRY_KINDS, name="ledger_entry_kind"), nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("balance_after", sa.BigInteger(), nullable=False),
        sa.Column("total_earned_after", sa.BigInteger(), nullable=False),
        sa.Column("reference_id", sa.String(), nullable=True),
        sa.Column("reference_kind", sa.String(), nullable=True),
        sa.Column(
            "reversal_of_id",
            UUID(as_uuid=True),
            sa.ForeignKey("ledger_entries.id", ondelete="RESTRICT"),
            nullable=True,
        ),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint("member_id", "sequence", name="uq_ledger_entries_member_sequence"),
        sa.UniqueConstraint("reversal_of_id", name="uq_ledger_entries_reversal_of"),
    )
    op.create_index("ix_ledger_entries_member_id", "ledger_entries", ["member_id"])

    op.create_table(
        "reward_outcomes",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("member_id", UUID(as_uuid=True), sa.ForeignKey("members.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "source_id",
            UUID(as_uuid=True),
            sa.ForeignKey("reward_sources.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "result_item_id",
            UUID(as_uuid=True),
            sa.ForeignKey("reward_items.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("result_kind", sa.String(), nullable=False),
        sa.Column("result_value", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("is_winner", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column(
            "ledger_entry_id",
            UUID(as_uuid=True),
            sa.ForeignKey("ledger_entries.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("action_date", sa.Date(), nullable=False),
        sa.Column("daily_sequence", sa.Integer(), nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint(
            "member_id",
            "source_id",
            "action_date",
            "daily_sequence",
            name="uq_reward_outcomes_member_source_day_sequence",
        ),
    )
    op.create_index("ix_reward_outcomes_member_id", "reward_outcomes", ["member_id"])
    op.create_index("ix_reward_outcomes_source_id", "reward_outcomes", ["source_id"])

    op.create_table(
        "member_tier_events",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("member_id", UUID(as_uuid=True), sa.ForeignKey("members.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "from_tier_id",
            UUID(as_uuid=True),
            sa.ForeignKey("membership_tiers.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "to_tier_id",
            UUID(as_uuid=True),
            sa.ForeignKey("membership_tiers.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("total_points_earned", sa.BigInteger(), nullable=False),
        sa.Column("reason", sa.Enum(*TIER_EVENT_REASONS, name="member_tier_event_reason"), nullable=False),
        sa.Column("actor_ref", sa.String(), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_member_tier_events_member_id", "member_tier_events", ["member_id"])


def downgrade() -> None:
    op.drop_index("ix_member_tier_events_member_id", table_name="member_tier_events")
    op.drop_table("member_tier_events")
    op.drop_index("ix_reward_outcomes_source_id", table_name="reward_outcomes")
    op.drop_index("ix_reward_outcomes_member_id", table_name="reward_outcomes")
    op.drop_table("reward_outcomes")
    op.drop_index("ix_ledger_entries_member_id", table_name="ledger_entries")
    op.drop_table("ledger_entries")
    op.drop_index("ix_reward_items_source_id", table_name="reward_items")
    op.drop_table("reward_items")
    op.drop_index("ix_reward_sources_brand_id", table_name="reward_sources")
    op.drop_table("reward_sources")
    op.drop_index("ix_members_brand_id", table_name="members")
    op.drop_table("members")
    op.drop_index("ix_membership_tiers_brand_id", table_name="membership_tiers")
    op.drop_table("membership_tiers")
    op.drop_index("ix_brands_slug", table_name="brands")
    op.drop_table("brands")

    bind = op.get_bind()
    for enum_name in (
        "member_tier_event_reason",
        "ledger_entry_kind",
        "reward_item_kind",
        "reward_mission_type",
        "reward_source_kind",
    ):
        sa.Enum(name=enum_name).drop(bind, checkfirst=True)

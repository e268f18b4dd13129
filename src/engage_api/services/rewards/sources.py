"""Reward source lookups and atomic replacement of a wheel's item set."""

from __future__ import annotations

from typing import Any, Sequence
from uuid import UUID

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from engage_api.models.brand import Member
from engage_api.models.reward import RewardItem, RewardSource, RewardSourceKind
from engage_api.services.rewards.errors import RewardNotFoundError, RewardValidationError
from engage_api.services.rewards.probability import (
    ProbabilityItem,
    ProbabilityTableReport,
    require_valid_table,
    validate_probability_table,
)


class RewardCatalog:
    """Brand-scoped access to members and reward sources."""

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    async def get_member(self, member_id: UUID, brand_id: UUID, *, for_update: bool = False) -> Member:
        stmt = select(Member).where(Member.id == member_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self._db.execute(stmt)
        member = result.scalar_one_or_none()
        if member is None or member.brand_id != brand_id:
            raise RewardNotFoundError(f"Member {member_id} not found")
        return member

    async def get_source(self, source_id: UUID, brand_id: UUID) -> RewardSource:
        stmt = (
            select(RewardSource)
            .options(selectinload(RewardSource.items))
            .where(RewardSource.id == source_id)
        )
        result = await self._db.execute(stmt)
        source = result.scalar_one_or_none()
        if source is None or source.brand_id != brand_id:
            raise RewardNotFoundError(f"Reward source {source_id} not found")
        return source

    def probability_report(self, source: RewardSource) -> ProbabilityTableReport:
        return validate_probability_table([ProbabilityItem.from_model(item) for item in source.items])

    async def replace_items(self, source: RewardSource, payload: Sequence[dict[str, Any]]) -> list[RewardItem]:
        """Swap the whole item set of a wheel once the new table validates.

        Nothing is written when validation fails; the caller commits.
        """

        if source.kind != RewardSourceKind.WHEEL:
            raise RewardValidationError("Only wheel sources carry a probability table")

        candidates = [ProbabilityItem.from_payload(entry, position=index) for index, entry in enumerate(payload)]
        require_valid_table(candidates)

        source.items.clear()
        await self._db.flush()
        replacements = [
            RewardItem(
                name=candidate.name,
                kind=candidate.kind,
                value=candidate.value,
                probability=candidate.probability,
                position=candidate.position,
                is_active=candidate.is_active,
                metadata_json=dict(entry.get("metadata") or {}),
            )
            for candidate, entry in zip(candidates, payload)
        ]
        source.items.extend(replacements)
        await self._db.flush()
        logger.info(
            "Replaced reward item set",
            source_id=str(source.id),
            item_count=len(replacements),
        )
        return replacements


__all__ = ["RewardCatalog"]

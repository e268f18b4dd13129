"""API endpoints for manual membership tier assignment."""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from engage_api.api.dependencies.security import require_admin_api_key, require_brand_scope
from engage_api.api.errors import http_error
from engage_api.api.v1.endpoints.rewards import TierChangeResponse, serialize_tier_change
from engage_api.db.session import get_session
from engage_api.services.rewards import RewardCatalog, RewardEngineError, TierProgression


router = APIRouter(
    prefix="/tiers",
    tags=["tiers"],
    dependencies=[Depends(require_admin_api_key)],
)


class TierOverrideRequest(BaseModel):
    tierId: UUID
    actorRef: Optional[str] = None
    note: Optional[str] = None


@router.post("/members/{member_id}/override", response_model=TierChangeResponse)
async def override_member_tier(
    member_id: UUID,
    payload: TierOverrideRequest,
    brand_id: UUID = Depends(require_brand_scope),
    db: AsyncSession = Depends(get_session),
) -> TierChangeResponse:
    """Place a member in a tier and hold it until progression crosses a boundary."""

    try:
        member = await RewardCatalog(db).get_member(member_id, brand_id, for_update=True)
        change = await TierProgression(db).assign_tier(
            member,
            payload.tierId,
            actor_ref=payload.actorRef,
            note=payload.note,
        )
        await db.commit()
    except RewardEngineError as exc:
        await db.rollback()
        raise http_error(exc) from exc

    return serialize_tier_change(change)

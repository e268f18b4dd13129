"""Observability endpoints for reward engine counters."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from engage_api.api.dependencies.security import require_admin_api_key
from engage_api.observability.rewards import get_rewards_store


router = APIRouter(prefix="/observability", tags=["Observability"])


@router.get(
    "/rewards",
    dependencies=[Depends(require_admin_api_key)],
    summary="Reward engine observability snapshot",
)
async def get_rewards_snapshot() -> dict[str, object]:
    """Retrieve aggregated issuance, ledger, and tier counters."""
    store = get_rewards_store()
    return store.snapshot().as_dict()

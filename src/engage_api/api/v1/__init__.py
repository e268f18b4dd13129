from fastapi import APIRouter

from .endpoints import ledger, observability, rewards, tiers

router = APIRouter()
router.include_router(rewards.router)
router.include_router(ledger.router)
router.include_router(tiers.router)
router.include_router(observability.router)

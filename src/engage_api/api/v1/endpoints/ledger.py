"""API endpoints for member ledger history, balances, audits, and corrections."""

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from engage_api.api.dependencies.security import require_admin_api_key, require_brand_scope
from engage_api.api.errors import http_error
from engage_api.api.v1.endpoints.rewards import TierChangeResponse, serialize_tier_change
from engage_api.core.settings import settings
from engage_api.db.session import get_session
from engage_api.models.ledger import LedgerEntry, LedgerEntryKind
from engage_api.services.rewards import (
    LedgerAppendResult,
    PointsLedger,
    RewardCatalog,
    RewardEngineError,
)


router = APIRouter(
    prefix="/ledger",
    tags=["ledger"],
    dependencies=[Depends(require_admin_api_key)],
)


class LedgerEntryResponse(BaseModel):
    id: UUID
    memberId: UUID
    sequence: int
    kind: str
    classification: str
    amount: int
    balanceAfter: int
    totalEarnedAfter: int
    referenceId: Optional[str]
    referenceKind: Optional[str]
    reversalOfId: Optional[UUID]
    description: Optional[str]
    metadata: dict[str, Any]
    createdAt: datetime


class LedgerWindowResponse(BaseModel):
    entries: List[LedgerEntryResponse]
    nextCursor: Optional[str]


class MemberBalanceResponse(BaseModel):
    memberId: UUID
    pointsBalance: int
    totalPointsEarned: int
    currentTierId: Optional[UUID]


class LedgerAuditResponse(BaseModel):
    memberId: UUID
    consistent: bool
    storedBalance: int
    replayedBalance: int
    storedTotalEarned: int
    replayedTotalEarned: int
    entryCount: int


class LedgerAdjustmentRequest(BaseModel):
    amount: int
    kind: LedgerEntryKind = LedgerEntryKind.ADMIN_ADJUSTMENT
    description: Optional[str] = None
    referenceId: Optional[str] = None
    referenceKind: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("kind")
    @classmethod
    def _reject_reversal(cls, value: LedgerEntryKind) -> LedgerEntryKind:
        if value == LedgerEntryKind.REVERSAL:
            raise ValueError("Use the reversal endpoint to reverse an entry")
        return value


class LedgerReversalRequest(BaseModel):
    reason: Optional[str] = None
    actorRef: Optional[str] = None


class LedgerAppendResponse(BaseModel):
    entry: LedgerEntryResponse
    balance: MemberBalanceResponse
    tierChange: Optional[TierChangeResponse]


def _serialize_entry(entry: LedgerEntry) -> LedgerEntryResponse:
    kind = LedgerEntryKind(entry.kind)
    return LedgerEntryResponse(
        id=entry.id,
        memberId=entry.member_id,
        sequence=entry.sequence,
        kind=kind.value,
        classification=kind.classification.value,
        amount=int(entry.amount),
        balanceAfter=int(entry.balance_after),
        totalEarnedAfter=int(entry.total_earned_after),
        referenceId=entry.reference_id,
        referenceKind=entry.reference_kind,
        reversalOfId=entry.reversal_of_id,
        description=entry.description,
        metadata=entry.metadata_json or {},
        createdAt=entry.created_at,
    )


def _serialize_append(result: LedgerAppendResult) -> LedgerAppendResponse:
    return LedgerAppendResponse(
        entry=_serialize_entry(result.entry),
        balance=MemberBalanceResponse(
            memberId=result.balance.member_id,
            pointsBalance=result.balance.points_balance,
            totalPointsEarned=result.balance.total_points_earned,
            currentTierId=result.balance.current_tier_id,
        ),
        tierChange=serialize_tier_change(result.tier_change),
    )


@router.get("/members/{member_id}/entries", response_model=LedgerWindowResponse)
async def list_member_entries(
    member_id: UUID,
    limit: int = Query(settings.ledger_history_default_page_size, ge=1, le=settings.ledger_history_max_page_size),
    cursor: str | None = Query(None, description="Opaque cursor for pagination"),
    kinds: list[str] | None = Query(None, description="Filter ledger entry kinds"),
    start: datetime | None = Query(None, description="Inclusive lower bound on entry time"),
    end: datetime | None = Query(None, description="Exclusive upper bound on entry time"),
    brand_id: UUID = Depends(require_brand_scope),
    db: AsyncSession = Depends(get_session),
) -> LedgerWindowResponse:
    """Return member ledger entries newest first with pagination."""

    entry_kinds: list[LedgerEntryKind] | None = None
    if kinds:
        entry_kinds = []
        for value in kinds:
            try:
                entry_kinds.append(LedgerEntryKind(value))
            except ValueError as exc:
                raise HTTPException(status_code=400, detail=f"Unsupported ledger kind: {value}") from exc

    try:
        member = await RewardCatalog(db).get_member(member_id, brand_id)
        page = await PointsLedger(db).list_entries(
            member,
            limit=limit,
            cursor=cursor,
            kinds=entry_kinds,
            start=start,
            end=end,
        )
    except RewardEngineError as exc:
        raise http_error(exc) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid ledger cursor") from exc

    return LedgerWindowResponse(
        entries=[_serialize_entry(entry) for entry in page.entries],
        nextCursor=page.next_cursor,
    )


@router.get("/members/{member_id}/balance", response_model=MemberBalanceResponse)
async def get_member_balance(
    member_id: UUID,
    brand_id: UUID = Depends(require_brand_scope),
    db: AsyncSession = Depends(get_session),
) -> MemberBalanceResponse:
    try:
        member = await RewardCatalog(db).get_member(member_id, brand_id)
        snapshot = await PointsLedger(db).balance(member)
    except RewardEngineError as exc:
        raise http_error(exc) from exc

    return MemberBalanceResponse(
        memberId=snapshot.member_id,
        pointsBalance=snapshot.points_balance,
        totalPointsEarned=snapshot.total_points_earned,
        currentTierId=snapshot.current_tier_id,
    )


@router.get("/members/{member_id}/audit", response_model=LedgerAuditResponse)
async def audit_member_ledger(
    member_id: UUID,
    brand_id: UUID = Depends(require_brand_scope),
    db: AsyncSession = Depends(get_session),
) -> LedgerAuditResponse:
    """Replay the member's ledger and compare it with the stored balance."""

    try:
        member = await RewardCatalog(db).get_member(member_id, brand_id)
        report = await PointsLedger(db).audit(member)
    except RewardEngineError as exc:
        raise http_error(exc) from exc

    return LedgerAuditResponse(
        memberId=report.member_id,
        consistent=report.is_consistent,
        storedBalance=report.stored_balance,
        replayedBalance=report.replayed_balance,
        storedTotalEarned=report.stored_total_earned,
        replayedTotalEarned=report.replayed_total_earned,
        entryCount=report.entry_count,
    )


@router.post(
    "/members/{member_id}/adjustments",
    response_model=LedgerAppendResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_adjustment(
    member_id: UUID,
    payload: LedgerAdjustmentRequest,
    brand_id: UUID = Depends(require_brand_scope),
    db: AsyncSession = Depends(get_session),
) -> LedgerAppendResponse:
    """Record a manual point movement for a member."""

    try:
        member = await RewardCatalog(db).get_member(member_id, brand_id, for_update=True)
        result = await PointsLedger(db).append(
            member,
            amount=payload.amount,
            kind=payload.kind,
            reference_id=payload.referenceId,
            reference_kind=payload.referenceKind,
            description=payload.description,
            metadata=payload.metadata,
        )
        await db.commit()
    except RewardEngineError as exc:
        await db.rollback()
        raise http_error(exc) from exc

    return _serialize_append(result)


@router.post(
    "/entries/{entry_id}/reversal",
    response_model=LedgerAppendResponse,
    status_code=status.HTTP_201_CREATED,
)
async def reverse_entry(
    entry_id: UUID,
    payload: LedgerReversalRequest | None = None,
    brand_id: UUID = Depends(require_brand_scope),
    db: AsyncSession = Depends(get_session),
) -> LedgerAppendResponse:
    """Counter a ledger entry with a reversal of the opposite amount."""

    try:
        result = await PointsLedger(db).reverse(
            entry_id,
            reason=payload.reason if payload else None,
            actor_ref=payload.actorRef if payload else None,
            brand_id=brand_id,
        )
        await db.commit()
    except RewardEngineError as exc:
        await db.rollback()
        raise http_error(exc) from exc

    return _serialize_append(result)

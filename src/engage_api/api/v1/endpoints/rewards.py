"""API endpoints for reward issuance, eligibility, and probability tables."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, List, Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from engage_api.api.dependencies.security import require_admin_api_key, require_brand_scope
from engage_api.api.errors import http_error
from engage_api.db.session import get_session
from engage_api.models.reward import RewardItemKind, RewardOutcome
from engage_api.services.rewards import (
    IssuanceResult,
    ProbabilityItem,
    ProbabilityTableReport,
    RewardCatalog,
    RewardEngineError,
    RewardIssuanceOrchestrator,
    TierChange,
    require_valid_table,
    simulate_draws,
    validate_probability_table,
)


router = APIRouter(
    prefix="/rewards",
    tags=["rewards"],
    dependencies=[Depends(require_admin_api_key)],
)

MAX_SIMULATION_DRAWS = 100_000


class IssueRewardRequest(BaseModel):
    memberId: UUID
    sourceId: UUID
    actionContext: dict[str, Any] = Field(default_factory=dict)


class RewardOutcomeResponse(BaseModel):
    id: UUID
    memberId: UUID
    sourceId: UUID
    resultItemId: Optional[UUID]
    resultKind: str
    resultValue: int
    isWinner: bool
    ledgerEntryId: Optional[UUID]
    actionDate: date
    dailySequence: int
    createdAt: datetime


class RewardSummaryResponse(BaseModel):
    type: Literal["item", "mission"]
    id: UUID
    name: str
    kind: str
    value: int


class TierChangeResponse(BaseModel):
    fromTierId: Optional[UUID]
    toTierId: Optional[UUID]
    toTierSlug: Optional[str]
    totalPointsEarned: int
    reason: str


class IssueRewardResponse(BaseModel):
    success: bool
    outcome: Optional[RewardOutcomeResponse] = None
    reward: Optional[RewardSummaryResponse] = None
    balanceAfter: Optional[int] = None
    tierChange: Optional[TierChangeResponse] = None
    ineligibleReason: Optional[str] = None
    nextEligibleAt: Optional[datetime] = None


class EligibilityResponse(BaseModel):
    eligible: bool
    reason: Optional[str] = None
    message: Optional[str] = None
    nextEligibleAt: Optional[datetime] = None
    dailyCount: int = 0


class ProbabilityItemPayload(BaseModel):
    id: Optional[UUID] = None
    name: str
    kind: RewardItemKind = RewardItemKind.NOTHING
    value: int = 0
    probability: float
    position: Optional[int] = None
    isActive: bool = True
    metadata: dict[str, Any] = Field(default_factory=dict)


class ProbabilityTableRequest(BaseModel):
    items: List[ProbabilityItemPayload]


class ProbabilityTableResponse(BaseModel):
    isValid: bool
    errors: List[str]
    totalProbability: float
    expectedValue: float
    itemCount: int
    activeItemCount: int


class RewardItemResponse(BaseModel):
    id: UUID
    name: str
    kind: str
    value: int
    probability: float
    position: int
    isActive: bool


class RewardItemSetResponse(BaseModel):
    sourceId: UUID
    items: List[RewardItemResponse]
    table: ProbabilityTableResponse


class SimulationResponse(BaseModel):
    totalDraws: int
    counts: dict[str, int]
    frequencies: dict[str, float]
    winRate: float


def serialize_tier_change(change: TierChange | None) -> TierChangeResponse | None:
    if change is None:
        return None
    return TierChangeResponse(
        fromTierId=change.from_tier_id,
        toTierId=change.to_tier_id,
        toTierSlug=change.to_tier_slug,
        totalPointsEarned=change.total_points_earned,
        reason=change.reason.value,
    )


def _serialize_outcome(outcome: RewardOutcome) -> RewardOutcomeResponse:
    return RewardOutcomeResponse(
        id=outcome.id,
        memberId=outcome.member_id,
        sourceId=outcome.source_id,
        resultItemId=outcome.result_item_id,
        resultKind=outcome.result_kind,
        resultValue=int(outcome.result_value or 0),
        isWinner=bool(outcome.is_winner),
        ledgerEntryId=outcome.ledger_entry_id,
        actionDate=outcome.action_date,
        dailySequence=outcome.daily_sequence,
        createdAt=outcome.created_at,
    )


def _serialize_reward(result: IssuanceResult) -> RewardSummaryResponse | None:
    if result.item is not None:
        return RewardSummaryResponse(
            type="item",
            id=result.item.id,
            name=result.item.name,
            kind=result.item.kind.value,
            value=result.item.value,
        )
    if result.source is not None and result.outcome is not None:
        return RewardSummaryResponse(
            type="mission",
            id=result.source.id,
            name=result.source.name,
            kind=result.outcome.result_kind,
            value=int(result.source.reward_points or 0),
        )
    return None


def _serialize_report(report: ProbabilityTableReport) -> ProbabilityTableResponse:
    return ProbabilityTableResponse(
        isValid=report.is_valid,
        errors=list(report.errors),
        totalProbability=round(report.total_probability, 6),
        expectedValue=report.expected_value,
        itemCount=report.item_count,
        activeItemCount=report.active_item_count,
    )


def _payload_items(payload: ProbabilityTableRequest) -> list[dict[str, Any]]:
    return [item.model_dump(mode="json") for item in payload.items]


@router.post("/issue", response_model=IssueRewardResponse)
async def issue_reward(
    payload: IssueRewardRequest,
    brand_id: UUID = Depends(require_brand_scope),
    db: AsyncSession = Depends(get_session),
) -> IssueRewardResponse:
    """Run a member action through eligibility, draw, ledger and tier progression."""

    orchestrator = RewardIssuanceOrchestrator(db)
    try:
        result = await orchestrator.issue(
            member_id=payload.memberId,
            brand_id=brand_id,
            source_id=payload.sourceId,
            action_context=payload.actionContext,
        )
    except RewardEngineError as exc:
        raise http_error(exc) from exc

    if not result.success:
        return IssueRewardResponse(
            success=False,
            ineligibleReason=result.reason.value if result.reason else None,
            nextEligibleAt=result.next_eligible_at,
        )

    return IssueRewardResponse(
        success=True,
        outcome=_serialize_outcome(result.outcome) if result.outcome else None,
        reward=_serialize_reward(result),
        balanceAfter=result.balance_after,
        tierChange=serialize_tier_change(result.tier_change),
    )


@router.get("/eligibility", response_model=EligibilityResponse)
async def check_eligibility(
    member_id: UUID = Query(..., alias="memberId"),
    source_id: UUID = Query(..., alias="sourceId"),
    brand_id: UUID = Depends(require_brand_scope),
    db: AsyncSession = Depends(get_session),
) -> EligibilityResponse:
    orchestrator = RewardIssuanceOrchestrator(db)
    try:
        decision = await orchestrator.check(member_id=member_id, brand_id=brand_id, source_id=source_id)
    except RewardEngineError as exc:
        raise http_error(exc) from exc

    return EligibilityResponse(
        eligible=decision.eligible,
        reason=decision.reason.value if decision.reason else None,
        message=decision.reason.message if decision.reason else None,
        nextEligibleAt=decision.next_eligible_at,
        dailyCount=decision.daily_count,
    )


@router.post("/probability-table/validate", response_model=ProbabilityTableResponse)
async def validate_table(payload: ProbabilityTableRequest) -> ProbabilityTableResponse:
    """Dry-run validation of a weighted item set; nothing is stored."""

    items = [
        ProbabilityItem.from_payload(entry, position=index)
        for index, entry in enumerate(_payload_items(payload))
    ]
    return _serialize_report(validate_probability_table(items))


@router.get("/sources/{source_id}/probability-table", response_model=ProbabilityTableResponse)
async def get_source_table(
    source_id: UUID,
    brand_id: UUID = Depends(require_brand_scope),
    db: AsyncSession = Depends(get_session),
) -> ProbabilityTableResponse:
    catalog = RewardCatalog(db)
    try:
        source = await catalog.get_source(source_id, brand_id)
    except RewardEngineError as exc:
        raise http_error(exc) from exc
    return _serialize_report(catalog.probability_report(source))


@router.put("/sources/{source_id}/items", response_model=RewardItemSetResponse)
async def replace_source_items(
    source_id: UUID,
    payload: ProbabilityTableRequest,
    brand_id: UUID = Depends(require_brand_scope),
    db: AsyncSession = Depends(get_session),
) -> RewardItemSetResponse:
    """Atomically replace a wheel's item set once the new table validates."""

    catalog = RewardCatalog(db)
    try:
        source = await catalog.get_source(source_id, brand_id)
        items = await catalog.replace_items(source, _payload_items(payload))
        await db.commit()
    except RewardEngineError as exc:
        await db.rollback()
        raise http_error(exc) from exc

    report = validate_probability_table([ProbabilityItem.from_model(item) for item in items])
    return RewardItemSetResponse(
        sourceId=source_id,
        items=[
            RewardItemResponse(
                id=item.id,
                name=item.name,
                kind=RewardItemKind(item.kind).value,
                value=int(item.value or 0),
                probability=float(item.probability),
                position=int(item.position or 0),
                isActive=bool(item.is_active),
            )
            for item in items
        ],
        table=_serialize_report(report),
    )


@router.post(
    "/sources/{source_id}/simulation",
    response_model=SimulationResponse,
    status_code=status.HTTP_200_OK,
)
async def simulate_source(
    source_id: UUID,
    draws: int = Query(10_000, ge=1, le=MAX_SIMULATION_DRAWS),
    brand_id: UUID = Depends(require_brand_scope),
    db: AsyncSession = Depends(get_session),
) -> SimulationResponse:
    """Draw repeatedly from the stored table and report observed frequencies."""

    catalog = RewardCatalog(db)
    try:
        source = await catalog.get_source(source_id, brand_id)
        valid_set = require_valid_table([ProbabilityItem.from_model(item) for item in source.items])
    except RewardEngineError as exc:
        raise http_error(exc) from exc

    report = simulate_draws(valid_set, draws)
    return SimulationResponse(
        totalDraws=report.total_draws,
        counts={str(item_id): count for item_id, count in report.counts.items()},
        frequencies={str(item_id): round(freq, 6) for item_id, freq in report.frequencies.items()},
        winRate=round(report.win_rate, 6),
    )

"""Probability table validation for weighted reward item sets.

Pure functions only: no session, no logging side effects beyond debug output.
A table is accepted when it has between ``reward_min_items`` active items and
``reward_max_items`` items in total, every probability lies in ``[0, 1]``,
every value is non-negative, and the active probabilities sum to 1.0 within
``reward_probability_tolerance``. Out-of-tolerance tables are rejected, never
normalised.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Iterable, Sequence
from uuid import UUID, uuid4

from loguru import logger

from engage_api.core.settings import settings
from engage_api.models.reward import RewardItem, RewardItemKind
from engage_api.services.rewards.errors import ProbabilityTableError

_VALUE_BEARING_KINDS = {RewardItemKind.POINTS, RewardItemKind.CASH}


@dataclass(frozen=True, slots=True)
class ProbabilityItem:
    """Detached, immutable view of one weighted wheel item."""

    id: UUID
    name: str
    kind: RewardItemKind
    value: int
    probability: float
    position: int = 0
    is_active: bool = True

    @classmethod
    def from_model(cls, item: RewardItem) -> "ProbabilityItem":
        return cls(
            id=item.id,
            name=item.name,
            kind=RewardItemKind(item.kind),
            value=int(item.value or 0),
            probability=float(item.probability),
            position=int(item.position or 0),
            is_active=bool(item.is_active),
        )

    @classmethod
    def from_payload(cls, payload: dict[str, Any], *, position: int) -> "ProbabilityItem":
        raw_id = payload.get("id")
        raw_probability = payload.get("probability")
        raw_position = payload.get("position")
        return cls(
            id=UUID(str(raw_id)) if raw_id else uuid4(),
            name=str(payload.get("name") or f"item-{position}"),
            kind=RewardItemKind(payload.get("kind") or RewardItemKind.NOTHING.value),
            value=int(payload.get("value") or 0),
            probability=float(raw_probability) if raw_probability is not None else float("nan"),
            position=int(raw_position) if raw_position is not None else position,
            is_active=bool(payload.get("isActive", payload.get("is_active", True))),
        )


@dataclass(frozen=True, slots=True)
class ValidItemSet:
    """Active items in draw order whose probabilities passed validation."""

    items: tuple[ProbabilityItem, ...]
    total_probability: float

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self):
        return iter(self.items)


@dataclass(slots=True)
class ProbabilityTableReport:
    """Diagnostics for admin tooling; ``valid_set`` is populated only when valid."""

    is_valid: bool
    total_probability: float
    item_count: int
    active_item_count: int
    expected_value: float
    errors: list[str] = field(default_factory=list)
    valid_set: ValidItemSet | None = None


def validate_probability_table(
    items: Sequence[ProbabilityItem],
    *,
    max_items: int | None = None,
    min_items: int | None = None,
    tolerance: float | None = None,
) -> ProbabilityTableReport:
    """Validate a weighted item set and report every problem found."""

    max_items = settings.reward_max_items if max_items is None else max_items
    min_items = settings.reward_min_items if min_items is None else min_items
    tolerance = settings.reward_probability_tolerance if tolerance is None else tolerance

    errors: list[str] = []
    ordered = sorted(items, key=lambda item: item.position)
    active = [item for item in ordered if item.is_active]

    if len(ordered) > max_items:
        errors.append(f"At most {max_items} items are allowed (got {len(ordered)})")
    if len(active) < min_items:
        errors.append(f"At least {min_items} active items are required (got {len(active)})")

    total = 0.0
    for item in ordered:
        probability = item.probability
        if item.value < 0:
            errors.append(f'Item "{item.name}" has negative value: {item.value}')
        if not math.isfinite(probability):
            errors.append(f'Item "{item.name}" has invalid probability: {probability}')
            continue
        if probability < 0 or probability > 1:
            errors.append(f'Item "{item.name}" has probability outside [0, 1]: {probability}')
        if item.is_active:
            total += probability

    if active and abs(total - 1.0) > tolerance:
        errors.append(f"Total probability must be 1.0 within {tolerance} (got {total:.6f})")

    report = ProbabilityTableReport(
        is_valid=not errors,
        total_probability=total,
        item_count=len(ordered),
        active_item_count=len(active),
        expected_value=expected_value(active),
        errors=errors,
    )
    if report.is_valid:
        report.valid_set = ValidItemSet(items=tuple(active), total_probability=total)

    logger.debug(
        "Validated probability table",
        is_valid=report.is_valid,
        total_probability=total,
        item_count=len(ordered),
    )
    return report


def require_valid_table(items: Sequence[ProbabilityItem], **kwargs: Any) -> ValidItemSet:
    """Return the validated set or raise ``ProbabilityTableError``."""

    report = validate_probability_table(items, **kwargs)
    if not report.is_valid or report.valid_set is None:
        raise ProbabilityTableError(report.errors, total_probability=report.total_probability)
    return report.valid_set


def expected_value(items: Iterable[ProbabilityItem]) -> float:
    """Probability-weighted value of the points/cash items in a set."""

    total = 0.0
    for item in items:
        if item.kind in _VALUE_BEARING_KINDS and math.isfinite(item.probability):
            total += item.probability * item.value
    return round(total, 2)


__all__ = [
    "ProbabilityItem",
    "ProbabilityTableReport",
    "ValidItemSet",
    "expected_value",
    "require_valid_table",
    "validate_probability_table",
]

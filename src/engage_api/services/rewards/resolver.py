"""Weighted draw over a validated probability table."""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Protocol
from uuid import UUID

from loguru import logger

from engage_api.services.rewards.probability import ProbabilityItem, ValidItemSet


class RandomSource(Protocol):
    """Anything exposing ``random() -> float`` in ``[0, 1)``."""

    def random(self) -> float:  # pragma: no cover - protocol
        ...


class RewardResolver:
    """Draws one item from a validated set using an injected random source."""

    def __init__(self, rng: RandomSource | None = None) -> None:
        self._rng: RandomSource = rng or random.SystemRandom()

    def resolve(self, valid_set: ValidItemSet) -> ProbabilityItem:
        """Return the first item whose cumulative probability covers the draw.

        Falls back to the last item with a positive probability when floating
        point slack leaves the draw beyond the final cumulative bound.
        """

        if not valid_set.items:
            raise ValueError("Cannot resolve a reward from an empty item set")
        draw = self._rng.random()
        return self.resolve_draw(valid_set, draw)

    @staticmethod
    def resolve_draw(valid_set: ValidItemSet, draw: float) -> ProbabilityItem:
        cumulative = 0.0
        for item in valid_set.items:
            if item.probability <= 0:
                continue
            cumulative += item.probability
            if draw <= cumulative:
                return item

        drawable = [item for item in valid_set.items if item.probability > 0]
        fallback = drawable[-1] if drawable else valid_set.items[-1]
        logger.warning(
            "Reward draw exceeded cumulative probability; using last drawable item",
            draw=draw,
            cumulative=cumulative,
            item_id=str(fallback.id),
        )
        return fallback


@dataclass(slots=True)
class SimulationReport:
    """Observed draw frequencies for admin tooling."""

    total_draws: int
    counts: dict[UUID, int] = field(default_factory=dict)
    frequencies: dict[UUID, float] = field(default_factory=dict)
    win_rate: float = 0.0


def simulate_draws(valid_set: ValidItemSet, draws: int, rng: RandomSource | None = None) -> SimulationReport:
    """Run ``draws`` resolutions and tally how often each item came up."""

    if draws <= 0:
        raise ValueError("draws must be positive")

    resolver = RewardResolver(rng)
    counts: dict[UUID, int] = {item.id: 0 for item in valid_set.items}
    wins = 0
    for _ in range(draws):
        item = resolver.resolve(valid_set)
        counts[item.id] += 1
        if item.kind.is_winning:
            wins += 1

    return SimulationReport(
        total_draws=draws,
        counts=counts,
        frequencies={item_id: count / draws for item_id, count in counts.items()},
        win_rate=wins / draws,
    )


__all__ = ["RandomSource", "RewardResolver", "SimulationReport", "simulate_draws"]

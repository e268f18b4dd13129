from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from threading import Lock
from typing import Dict


@dataclass
class RewardsSnapshot:
    issuance: Dict[str, int]
    ineligible: Dict[str, int]
    ledger: Dict[str, int]
    tiers: Dict[str, int]
    audits: Dict[str, int]
    jobs: Dict[str, int]

    def as_dict(self) -> Dict[str, object]:
        return {
            "issuance": dict(self.issuance),
            "ineligible": dict(self.ineligible),
            "ledger": dict(self.ledger),
            "tiers": dict(self.tiers),
            "audits": dict(self.audits),
            "jobs": dict(self.jobs),
        }


class RewardsObservabilityStore:
    """Collect reward engine telemetry for dashboards and alerting."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._issuance: Dict[str, int] = defaultdict(int)
        self._ineligible: Dict[str, int] = defaultdict(int)
        self._ledger: Dict[str, int] = defaultdict(int)
        self._tiers: Dict[str, int] = defaultdict(int)
        self._audits: Dict[str, int] = defaultdict(int)
        self._jobs: Dict[str, int] = defaultdict(int)

    def record_issuance(self, source_kind: str, *, is_winner: bool) -> None:
        with self._lock:
            self._issuance["issued"] += 1
            self._issuance[f"kind:{source_kind}"] += 1
            if is_winner:
                self._issuance["winners"] += 1

    def record_ineligible(self, reason: str) -> None:
        with self._lock:
            self._issuance["ineligible"] += 1
            self._ineligible[reason] += 1

    def record_conflict(self) -> None:
        with self._lock:
            self._issuance["conflicts"] += 1

    def record_ledger_entry(self, kind: str, amount: int) -> None:
        with self._lock:
            self._ledger["entries"] += 1
            self._ledger[f"kind:{kind}"] += 1
            self._ledger["points_net"] += amount

    def record_tier_change(self, reason: str) -> None:
        with self._lock:
            self._tiers["changes"] += 1
            self._tiers[f"reason:{reason}"] += 1

    def record_audit(self, *, consistent: bool) -> None:
        with self._lock:
            self._audits["runs"] += 1
            if not consistent:
                self._audits["divergent"] += 1

    def record_job_run(self, job_id: str, *, succeeded: bool) -> None:
        with self._lock:
            self._jobs["runs"] += 1
            self._jobs[f"{job_id}:{'success' if succeeded else 'failure'}"] += 1

    def record_job_retry(self, job_id: str) -> None:
        with self._lock:
            self._jobs["retries"] += 1
            self._jobs[f"{job_id}:retries"] += 1

    def snapshot(self) -> RewardsSnapshot:
        with self._lock:
            return RewardsSnapshot(
                issuance=dict(self._issuance),
                ineligible=dict(self._ineligible),
                ledger=dict(self._ledger),
                tiers=dict(self._tiers),
                audits=dict(self._audits),
                jobs=dict(self._jobs),
            )

    def reset(self) -> None:
        with self._lock:
            self._issuance.clear()
            self._ineligible.clear()
            self._ledger.clear()
            self._tiers.clear()
            self._audits.clear()
            self._jobs.clear()


_STORE = RewardsObservabilityStore()


def get_rewards_store() -> RewardsObservabilityStore:
    return _STORE


__all__ = ["get_rewards_store", "RewardsObservabilityStore", "RewardsSnapshot"]

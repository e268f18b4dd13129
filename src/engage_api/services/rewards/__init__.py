"""Reward resolution and points ledger exports."""

from .eligibility import EligibilityDecision, EligibilityGate, next_reward_day_start, reward_day  # noqa: F401
from .errors import (  # noqa: F401
    ConsistencyError,
    IneligibleError,
    IneligibleReason,
    IssuanceConflictError,
    LedgerError,
    ProbabilityTableError,
    RewardEngineError,
    RewardNotFoundError,
    RewardValidationError,
)
from .ledger import (  # noqa: F401
    AuditReport,
    LedgerAppendResult,
    LedgerPage,
    MemberBalance,
    PointsLedger,
    ReplayResult,
    decode_sequence_cursor,
    encode_sequence_cursor,
)
from .orchestrator import IssuanceResult, RewardIssuanceOrchestrator  # noqa: F401
from .probability import (  # noqa: F401
    ProbabilityItem,
    ProbabilityTableReport,
    ValidItemSet,
    expected_value,
    require_valid_table,
    validate_probability_table,
)
from .resolver import RewardResolver, SimulationReport, simulate_draws  # noqa: F401
from .sources import RewardCatalog  # noqa: F401
from .tiers import TierChange, TierProgression, select_tier  # noqa: F401

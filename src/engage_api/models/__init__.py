"""SQLAlchemy models package."""

from .brand import Brand, Member  # noqa: F401
from .ledger import (  # noqa: F401
    LEDGER_KIND_CLASSIFICATION,
    LedgerEntry,
    LedgerEntryClass,
    LedgerEntryKind,
)
from .reward import (  # noqa: F401
    MissionType,
    RewardItem,
    RewardItemKind,
    RewardOutcome,
    RewardSource,
    RewardSourceKind,
)
from .tier import MemberTierEvent, MemberTierEventReason, MembershipTier  # noqa: F401

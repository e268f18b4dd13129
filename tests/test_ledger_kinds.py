import pytest

from engage_api.models import LEDGER_KIND_CLASSIFICATION, LedgerEntryClass, LedgerEntryKind
from engage_api.services.rewards.ledger import apply_movement


def test_every_kind_is_classified() -> None:
    assert set(LEDGER_KIND_CLASSIFICATION) == set(LedgerEntryKind)


@pytest.mark.parametrize(
    ("kind", "expected"),
    [
        (LedgerEntryKind.EARNED, LedgerEntryClass.EARNING),
        (LedgerEntryKind.AWARDED, LedgerEntryClass.EARNING),
        (LedgerEntryKind.WHEEL_WIN, LedgerEntryClass.EARNING),
        (LedgerEntryKind.MISSION_REWARD, LedgerEntryClass.EARNING),
        (LedgerEntryKind.BONUS, LedgerEntryClass.EARNING),
        (LedgerEntryKind.REFERRAL, LedgerEntryClass.EARNING),
        (LedgerEntryKind.TIER_BONUS, LedgerEntryClass.EARNING),
        (LedgerEntryKind.SPENT, LedgerEntryClass.SPENDING),
        (LedgerEntryKind.DEDUCTED, LedgerEntryClass.SPENDING),
        (LedgerEntryKind.ADMIN_ADJUSTMENT, LedgerEntryClass.NEUTRAL),
        (LedgerEntryKind.REVERSAL, LedgerEntryClass.NEUTRAL),
    ],
)
def test_classification(kind: LedgerEntryKind, expected: LedgerEntryClass) -> None:
    assert kind.classification is expected
    assert kind.is_earning is (expected is LedgerEntryClass.EARNING)
    assert kind.is_spending is (expected is LedgerEntryClass.SPENDING)


def test_movement_arithmetic() -> None:
    assert apply_movement(0, 0, LedgerEntryKind.EARNED, 50) == (50, 50)
    assert apply_movement(50, 50, LedgerEntryKind.SPENT, -80) == (0, 50)
    assert apply_movement(10, 50, LedgerEntryKind.ADMIN_ADJUSTMENT, 5) == (15, 50)
    assert apply_movement(15, 50, LedgerEntryKind.REVERSAL, -15) == (0, 50)

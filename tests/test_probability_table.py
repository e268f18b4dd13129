from uuid import uuid4

import pytest

from engage_api.models.reward import RewardItemKind
from engage_api.services.rewards import (
    ProbabilityItem,
    ProbabilityTableError,
    expected_value,
    require_valid_table,
    validate_probability_table,
)


def _item(name: str, probability: float, *, kind=RewardItemKind.POINTS, value: int = 10, position: int = 0, is_active=True):
    return ProbabilityItem(
        id=uuid4(),
        name=name,
        kind=kind,
        value=value,
        probability=probability,
        position=position,
        is_active=is_active,
    )


def test_accepts_table_summing_to_one() -> None:
    items = [_item("A", 0.2, position=0), _item("B", 0.3, position=1), _item("C", 0.5, position=2)]

    report = validate_probability_table(items)

    assert report.is_valid
    assert report.errors == []
    assert report.valid_set is not None
    assert [item.name for item in report.valid_set] == ["A", "B", "C"]
    assert report.total_probability == pytest.approx(1.0)


def test_accepts_total_within_tolerance() -> None:
    items = [_item("A", 0.5005), _item("B", 0.5)]

    assert validate_probability_table(items).is_valid


@pytest.mark.parametrize("total_offset", [0.0011, -0.002, 0.25])
def test_rejects_total_outside_tolerance(total_offset: float) -> None:
    items = [_item("A", 0.5 + total_offset), _item("B", 0.5)]

    report = validate_probability_table(items)

    assert not report.is_valid
    assert report.valid_set is None
    assert any("Total probability" in error for error in report.errors)


def test_rejects_out_of_tolerance_tables_across_sizes() -> None:
    for size in range(2, 21):
        share = 1.0 / size
        items = [_item(f"item-{index}", share, position=index) for index in range(size)]
        assert validate_probability_table(items).is_valid

        skewed = list(items)
        skewed[0] = _item("item-0", share + 0.01, position=0)
        assert not validate_probability_table(skewed).is_valid


def test_requires_two_active_items() -> None:
    items = [_item("A", 1.0), _item("B", 0.0, is_active=False)]

    report = validate_probability_table(items)

    assert not report.is_valid
    assert any("At least 2 active items" in error for error in report.errors)


def test_rejects_more_than_maximum_items() -> None:
    items = [_item(f"item-{index}", 1.0 / 21, position=index) for index in range(21)]

    report = validate_probability_table(items)

    assert not report.is_valid
    assert any("At most 20 items" in error for error in report.errors)


def test_rejects_probability_outside_unit_interval_and_negative_value() -> None:
    items = [_item("A", 1.2), _item("B", -0.2, value=-5)]

    report = validate_probability_table(items)

    assert not report.is_valid
    assert any("outside [0, 1]" in error and "A" in error for error in report.errors)
    assert any("negative value" in error for error in report.errors)


def test_rejects_missing_probability() -> None:
    items = [
        ProbabilityItem.from_payload({"name": "A", "kind": "points", "value": 5}, position=0),
        ProbabilityItem.from_payload({"name": "B", "kind": "nothing", "probability": 1.0}, position=1),
    ]

    report = validate_probability_table(items)

    assert not report.is_valid
    assert any("invalid probability" in error for error in report.errors)


def test_inactive_items_are_carried_but_not_drawable() -> None:
    items = [
        _item("A", 0.5, position=0),
        _item("retired", 0.9, position=1, is_active=False),
        _item("B", 0.5, position=2),
    ]

    report = validate_probability_table(items)

    assert report.is_valid
    assert report.item_count == 3
    assert report.active_item_count == 2
    assert [item.name for item in report.valid_set] == ["A", "B"]


def test_inactive_items_are_still_checked_for_range_and_value() -> None:
    items = [
        _item("A", 0.5, position=0),
        _item("B", 0.5, position=1),
        _item("retired", 7.0, value=-5, position=2, is_active=False),
    ]

    report = validate_probability_table(items)

    assert not report.is_valid
    assert report.total_probability == pytest.approx(1.0)
    assert any('"retired" has probability outside' in error for error in report.errors)
    assert any('"retired" has negative value' in error for error in report.errors)


def test_orders_valid_set_by_position() -> None:
    items = [_item("late", 0.5, position=5), _item("early", 0.5, position=1)]

    valid_set = require_valid_table(items)

    assert [item.name for item in valid_set] == ["early", "late"]


def test_require_valid_table_raises_with_errors() -> None:
    with pytest.raises(ProbabilityTableError) as excinfo:
        require_valid_table([_item("A", 0.4), _item("B", 0.4)])

    assert excinfo.value.total_probability == pytest.approx(0.8)
    assert excinfo.value.errors


def test_expected_value_counts_points_and_cash_only() -> None:
    items = [
        _item("points", 0.5, value=100),
        _item("cash", 0.25, kind=RewardItemKind.CASH, value=20),
        _item("coupon", 0.25, kind=RewardItemKind.COUPON, value=1000),
    ]

    assert expected_value(items) == 55.0

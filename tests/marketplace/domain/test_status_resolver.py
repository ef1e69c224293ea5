"""Tests for the aggregate status resolver."""

import pytest
from marketplace.order.resolver import UnitSnapshot, resolve_overall_status
from marketplace.order.status import OverallStatus, UnitStatus

P, PR, S, D, C = (
    UnitStatus.PLACED,
    UnitStatus.PROCESSING,
    UnitStatus.SHIPPED,
    UnitStatus.DELIVERED,
    UnitStatus.CANCELLED,
)


def _units(*statuses):
    return [UnitSnapshot(status) for status in statuses]


@pytest.mark.parametrize(
    "statuses,expected",
    [
        ((D, S, PR), OverallStatus.PROCESSING),
        ((P, P), OverallStatus.PLACED),
        ((P, PR), OverallStatus.PROCESSING),
        ((S, D), OverallStatus.SHIPPED),
        ((S, S), OverallStatus.SHIPPED),
        ((D, D), OverallStatus.DELIVERED),
        ((C, C), OverallStatus.CANCELLED),
        ((D, C), OverallStatus.DELIVERED),
        ((S, C), OverallStatus.SHIPPED),
        ((P, C), OverallStatus.PLACED),
        ((PR, C), OverallStatus.PROCESSING),
        ((S, P), OverallStatus.PROCESSING),
        ((D,), OverallStatus.DELIVERED),
    ],
)
def test_resolution_rules(statuses, expected):
    assert resolve_overall_status(_units(*statuses)) == expected


def test_empty_unit_list_is_placed():
    assert resolve_overall_status([]) == OverallStatus.PLACED


def test_customer_cancellation_overrides_everything():
    units = [UnitSnapshot(C, cancelled_by_customer=True), UnitSnapshot(D)]
    assert resolve_overall_status(units) == OverallStatus.CANCELLED_BY_CUSTOMER


def test_accepts_objects_with_legacy_status_strings():
    class LegacyUnit:
        def __init__(self, status):
            self.status = status

    units = [LegacyUnit("Delivered"), LegacyUnit("Shipped"), LegacyUnit("Confirmed")]
    assert resolve_overall_status(units) == OverallStatus.PROCESSING


def test_resolution_is_a_pure_function_of_the_snapshot():
    units = _units(D, S, PR)
    assert resolve_overall_status(units) == resolve_overall_status(list(reversed(units)))

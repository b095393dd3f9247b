"""Tests for the pure order state transition function."""

import pytest

from Orders_module.Order_model import OrderStatus
from Orders_module.order_state import PaymentEvent, PaymentEventType, next_order_state


def event(kind, reference=None):
    return PaymentEvent(kind, payment_reference=reference, source="webhook")


class TestFromPending:
    def test_success_fulfills(self):
        transition = next_order_state(OrderStatus.PENDING, event(PaymentEventType.SUCCEEDED, "cs_1"))
        assert transition.status == OrderStatus.PAID
        assert transition.changed is True
        assert transition.fulfill is True
        assert transition.conflict is False

    @pytest.mark.parametrize("kind, target", [
        (PaymentEventType.FAILED, OrderStatus.FAILED),
        (PaymentEventType.CANCELLED, OrderStatus.CANCELLED),
    ])
    def test_failure_events_are_terminal(self, kind, target):
        transition = next_order_state(OrderStatus.PENDING, event(kind))
        assert transition.status == target
        assert transition.changed is True
        assert transition.fulfill is False


class TestFromPaid:
    @pytest.mark.parametrize("kind", list(PaymentEventType))
    def test_paid_never_changes(self, kind):
        transition = next_order_state(OrderStatus.PAID, event(kind))
        assert transition.status == OrderStatus.PAID
        assert transition.changed is False
        assert transition.fulfill is False
        assert transition.conflict is False

    def test_accepts_raw_status_value(self):
        transition = next_order_state("paid", event(PaymentEventType.SUCCEEDED))
        assert transition.reason == "already paid"


class TestFromTerminal:
    @pytest.mark.parametrize("status", [OrderStatus.FAILED, OrderStatus.CANCELLED])
    def test_success_after_terminal_is_a_conflict(self, status):
        transition = next_order_state(status, event(PaymentEventType.SUCCEEDED, "pay_1"))
        assert transition.status == status
        assert transition.changed is False
        assert transition.fulfill is False
        assert transition.conflict is True

    def test_repeated_cancel_is_a_no_op(self):
        transition = next_order_state(OrderStatus.CANCELLED, event(PaymentEventType.CANCELLED))
        assert transition.changed is False
        assert transition.conflict is False

    def test_failed_then_cancelled_stays_failed(self):
        transition = next_order_state(OrderStatus.FAILED, event(PaymentEventType.CANCELLED))
        assert transition.status == OrderStatus.FAILED
        assert transition.changed is False
        assert transition.conflict is False

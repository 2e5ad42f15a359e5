"""Tests for the order, payment and wallet debit state machines."""

import pytest

from storefront.domain.errors import ConflictError
from storefront.domain.statuses import (
    OrderStatus,
    PaymentStatus,
    WalletDebitState,
    ORDER_TRANSITIONS,
    can_transition_order,
    ensure_debit_transition,
    ensure_order_transition,
    ensure_payment_transition,
    is_terminal,
)


class TestOrderTransitions:
    def test_every_status_has_an_entry(self):
        assert set(ORDER_TRANSITIONS) == set(OrderStatus)

    @pytest.mark.parametrize("source", ["CANCELLED", "REJECTED", "REFUNDED"])
    def test_delivered_unreachable_from_closed_orders(self, source):
        assert can_transition_order(source, "DELIVERED") is False

    def test_only_pending_can_be_rejected(self):
        sources = [s for s in OrderStatus if can_transition_order(s, OrderStatus.REJECTED)]
        assert sources == [OrderStatus.PENDING]

    def test_refunded_is_final(self):
        for target in OrderStatus:
            assert can_transition_order(OrderStatus.REFUNDED, target) is False

    def test_illegal_move_raises_conflict(self):
        with pytest.raises(ConflictError, match="DELIVERED to CANCELLED"):
            ensure_order_transition("DELIVERED", "CANCELLED")


class TestPaymentTransitions:
    def test_failed_payment_can_be_retried(self):
        ensure_payment_transition(PaymentStatus.FAILED, PaymentStatus.PROCESSING)

    def test_succeeded_only_refunds(self):
        with pytest.raises(ConflictError):
            ensure_payment_transition(PaymentStatus.SUCCEEDED, PaymentStatus.FAILED)
        ensure_payment_transition(PaymentStatus.SUCCEEDED, PaymentStatus.REFUNDED)


class TestDebitTransitions:
    def test_reserved_settles_or_releases(self):
        ensure_debit_transition(WalletDebitState.RESERVED, WalletDebitState.CHARGED)
        ensure_debit_transition(WalletDebitState.RESERVED, WalletDebitState.RELEASED)

    def test_released_cannot_be_charged(self):
        with pytest.raises(ConflictError):
            ensure_debit_transition(WalletDebitState.RELEASED, WalletDebitState.CHARGED)

    def test_charged_cannot_be_charged_again(self):
        with pytest.raises(ConflictError):
            ensure_debit_transition(WalletDebitState.CHARGED, WalletDebitState.CHARGED)


class TestTerminal:
    def test_terminal_by_status(self):
        assert is_terminal("CANCELLED", "PENDING") is True

    def test_terminal_by_payment(self):
        assert is_terminal("DELIVERED", "REFUNDED") is True

    def test_open_order(self):
        assert is_terminal("APPROVED", "SUCCEEDED") is False

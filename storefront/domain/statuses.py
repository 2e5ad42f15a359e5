# storefront/domain/statuses.py
from enum import Enum

from storefront.domain.errors import ConflictError


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    CONFIRMED = "CONFIRMED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    REJECTED = "REJECTED"
    REFUNDED = "REFUNDED"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class WalletDebitState(str, Enum):
    NOT_APPLICABLE = "NOT_APPLICABLE"
    UNCHARGED = "UNCHARGED"
    RESERVED = "RESERVED"
    CHARGED = "CHARGED"
    RELEASED = "RELEASED"
    REFUNDED = "REFUNDED"


class TransactionType(str, Enum):
    PURCHASE = "PURCHASE"
    REFUND = "REFUND"
    TOPUP = "TOPUP"


class EmergencyReason(str, Enum):
    COST_GT_PRICE = "cost_gt_price"
    NEEDED = "needed"
    REFUND_RETURNED = "refund_returned"
    MANUAL = "manual"


ORDER_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({
        OrderStatus.APPROVED,
        OrderStatus.CONFIRMED,
        OrderStatus.DELIVERED,
        OrderStatus.CANCELLED,
        OrderStatus.REJECTED,
        OrderStatus.REFUNDED,
    }),
    OrderStatus.APPROVED: frozenset({
        OrderStatus.CONFIRMED,
        OrderStatus.DELIVERED,
        OrderStatus.CANCELLED,
        OrderStatus.REFUNDED,
    }),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.DELIVERED, OrderStatus.REFUNDED}),
    OrderStatus.DELIVERED: frozenset({OrderStatus.REFUNDED}),
    OrderStatus.CANCELLED: frozenset({OrderStatus.REFUNDED}),
    OrderStatus.REJECTED: frozenset({OrderStatus.REFUNDED}),
    OrderStatus.REFUNDED: frozenset(),
}

PAYMENT_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({
        PaymentStatus.PROCESSING,
        PaymentStatus.SUCCEEDED,
        PaymentStatus.FAILED,
        PaymentStatus.REFUNDED,
    }),
    PaymentStatus.PROCESSING: frozenset({
        PaymentStatus.SUCCEEDED,
        PaymentStatus.FAILED,
        PaymentStatus.REFUNDED,
    }),
    PaymentStatus.FAILED: frozenset({
        PaymentStatus.PROCESSING,
        PaymentStatus.SUCCEEDED,
        PaymentStatus.REFUNDED,
    }),
    PaymentStatus.SUCCEEDED: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.REFUNDED: frozenset(),
}

DEBIT_TRANSITIONS: dict[WalletDebitState, frozenset[WalletDebitState]] = {
    WalletDebitState.NOT_APPLICABLE: frozenset(),
    WalletDebitState.UNCHARGED: frozenset({WalletDebitState.RESERVED, WalletDebitState.CHARGED}),
    WalletDebitState.RESERVED: frozenset({WalletDebitState.CHARGED, WalletDebitState.RELEASED}),
    WalletDebitState.CHARGED: frozenset({WalletDebitState.REFUNDED}),
    WalletDebitState.RELEASED: frozenset(),
    WalletDebitState.REFUNDED: frozenset(),
}

TERMINAL_ORDER_STATUSES = frozenset({
    OrderStatus.CANCELLED,
    OrderStatus.REJECTED,
    OrderStatus.REFUNDED,
})


def can_transition_order(current, target) -> bool:
    return OrderStatus(target) in ORDER_TRANSITIONS[OrderStatus(current)]


def ensure_order_transition(current, target):
    if not can_transition_order(current, target):
        raise ConflictError(f"Order cannot move from {OrderStatus(current).value} to {OrderStatus(target).value}")


def ensure_payment_transition(current, target):
    if PaymentStatus(target) not in PAYMENT_TRANSITIONS[PaymentStatus(current)]:
        raise ConflictError(
            f"Payment cannot move from {PaymentStatus(current).value} to {PaymentStatus(target).value}"
        )


def ensure_debit_transition(current, target):
    if WalletDebitState(target) not in DEBIT_TRANSITIONS[WalletDebitState(current)]:
        raise ConflictError(
            f"Wallet debit cannot move from {WalletDebitState(current).value} "
            f"to {WalletDebitState(target).value}"
        )


def is_terminal(status, payment_status) -> bool:
    return OrderStatus(status) in TERMINAL_ORDER_STATUSES or PaymentStatus(payment_status) == PaymentStatus.REFUNDED

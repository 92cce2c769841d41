"""
Payment status to order status mapping.

The provider reports payment statuses such as ``approved`` or
``refunded``. Each rule maps a provider status to a target order status,
limited to the current statuses from which that move is allowed.
"""

from dataclasses import dataclass

from storefront.models.shop import OrderStatus

# Orders outside this set are never touched by payment notifications
UPDATABLE_STATUSES = frozenset({OrderStatus.PENDING_PAYMENT, OrderStatus.PROCESSING})

TERMINAL_STATUSES = frozenset(
    {OrderStatus.FAILED, OrderStatus.CANCELLED, OrderStatus.REFUNDED}
)

_REVERSIBLE = frozenset(
    {
        OrderStatus.PENDING_PAYMENT,
        OrderStatus.PROCESSING,
        OrderStatus.PAID,
        OrderStatus.SHIPPED,
    }
)


@dataclass(frozen=True)
class StatusRule:
    """Target status for a provider status and the statuses it applies to."""

    target: OrderStatus
    allowed_from: frozenset[OrderStatus]
    returns_stock: bool = False
    records_paid_at: bool = False


STATUS_RULES: dict[str, StatusRule] = {
    "approved": StatusRule(
        target=OrderStatus.PROCESSING,
        allowed_from=frozenset({OrderStatus.PENDING_PAYMENT}),
        records_paid_at=True,
    ),
    "refunded": StatusRule(OrderStatus.REFUNDED, _REVERSIBLE, returns_stock=True),
    "cancelled": StatusRule(OrderStatus.CANCELLED, _REVERSIBLE, returns_stock=True),
    "rejected": StatusRule(OrderStatus.FAILED, _REVERSIBLE, returns_stock=True),
    "failed": StatusRule(OrderStatus.FAILED, _REVERSIBLE, returns_stock=True),
    "charged_back": StatusRule(OrderStatus.FAILED, _REVERSIBLE, returns_stock=True),
}


@dataclass(frozen=True)
class Transition:
    """Decision for one (current status, provider status) pair."""

    current: OrderStatus
    new_status: OrderStatus
    needs_stock_return: bool = False
    record_paid_at: bool = False

    @property
    def changed(self) -> bool:
        return self.new_status != self.current


def is_updatable(status: OrderStatus) -> bool:
    """True if payment notifications may change an order in this status."""
    return status in UPDATABLE_STATUSES


def map_payment_status(current: OrderStatus, provider_status: str) -> Transition:
    """
    Compute the order transition for a provider payment status.

    Unknown provider statuses (``pending``, ``in_process``...) and rules
    whose precondition does not hold leave the status unchanged. A failure
    status arriving for an order that is already terminal never returns
    stock a second time.
    """
    rule = STATUS_RULES.get(provider_status.lower())

    if rule is None:
        return Transition(current, current)

    if current in TERMINAL_STATUSES and rule.returns_stock:
        return Transition(current, rule.target)

    if current not in rule.allowed_from:
        return Transition(current, current)

    return Transition(
        current,
        rule.target,
        needs_stock_return=rule.returns_stock,
        record_paid_at=rule.records_paid_at,
    )

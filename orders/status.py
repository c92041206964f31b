"""Order status state machine.

Every status change goes through ``next_status``; pairs missing from
``TRANSITIONS`` are rejected.
"""
from enum import Enum
from typing import Dict, Tuple


class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class OrderEvent(str, Enum):
    APPROVE = "approve"
    SHIP = "ship"
    DELIVER = "deliver"
    CANCEL = "cancel"


TRANSITIONS: Dict[Tuple[OrderStatus, OrderEvent], OrderStatus] = {
    (OrderStatus.PENDING, OrderEvent.APPROVE): OrderStatus.PROCESSING,
    (OrderStatus.PROCESSING, OrderEvent.SHIP): OrderStatus.SHIPPED,
    (OrderStatus.SHIPPED, OrderEvent.DELIVER): OrderStatus.DELIVERED,
    (OrderStatus.PENDING, OrderEvent.CANCEL): OrderStatus.CANCELLED,
    (OrderStatus.PROCESSING, OrderEvent.CANCEL): OrderStatus.CANCELLED,
    (OrderStatus.SHIPPED, OrderEvent.CANCEL): OrderStatus.CANCELLED,
}

# Event a middleman's single "advance" action maps to, per current status
FULFILMENT_EVENTS = {
    OrderStatus.PROCESSING: OrderEvent.SHIP,
    OrderStatus.SHIPPED: OrderEvent.DELIVER,
}

FINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})


class InvalidTransitionError(Exception):
    """Raised when an event is not allowed in the current status."""
    def __init__(self, status, event):
        self.status = OrderStatus(status)
        self.event = OrderEvent(event)
        super().__init__(
            f"Cannot {self.event.value} an order that is {self.status.value}"
        )


def next_status(status, event) -> OrderStatus:
    """Return the status reached by applying event in status.

    Raises:
        InvalidTransitionError: If the transition is not defined
    """
    status, event = OrderStatus(status), OrderEvent(event)
    try:
        return TRANSITIONS[(status, event)]
    except KeyError:
        raise InvalidTransitionError(status, event)


def fulfilment_event(status) -> OrderEvent:
    """Return the event a middleman advance applies in status.

    Raises:
        InvalidTransitionError: If the order is not in a fulfilment status
    """
    status = OrderStatus(status)
    if status not in FULFILMENT_EVENTS:
        event = OrderEvent.DELIVER if status in FINAL_STATUSES else OrderEvent.SHIP
        raise InvalidTransitionError(status, event)
    return FULFILMENT_EVENTS[status]

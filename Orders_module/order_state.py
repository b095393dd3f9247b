"""
Order confirmation state machine.

next_order_state() is pure: it looks at the current status and a verified
payment event and says what should happen. Callers apply the answer
transactionally through Order_crud.mark_order_paid / mark_order_terminal.
"""
from dataclasses import dataclass
from typing import Optional
import enum

from .Order_model import OrderStatus


class PaymentEventType(str, enum.Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class PaymentEvent:
    type: PaymentEventType
    payment_reference: Optional[str] = None
    source: str = "system"  # user id, "system" or "webhook"
    notes: Optional[str] = None


@dataclass(frozen=True)
class Transition:
    status: OrderStatus
    changed: bool = False
    fulfill: bool = False
    conflict: bool = False
    reason: str = ""


_EVENT_TARGETS = {
    PaymentEventType.SUCCEEDED: OrderStatus.PAID,
    PaymentEventType.FAILED: OrderStatus.FAILED,
    PaymentEventType.CANCELLED: OrderStatus.CANCELLED,
}


def next_order_state(current: OrderStatus, event: PaymentEvent) -> Transition:
    current = OrderStatus(current)
    target = _EVENT_TARGETS[event.type]

    if current == OrderStatus.PENDING:
        return Transition(
            status=target,
            changed=True,
            fulfill=target == OrderStatus.PAID,
            reason=f"pending -> {target.value}",
        )

    if current == OrderStatus.PAID:
        if target == OrderStatus.PAID:
            return Transition(status=current, reason="already paid")
        # No transition out of paid
        return Transition(status=current, reason=f"ignored {event.type.value} for a paid order")

    # failed / cancelled are terminal
    if target == current:
        return Transition(status=current, reason=f"already {current.value}")
    return Transition(
        status=current,
        conflict=target == OrderStatus.PAID,
        reason=f"order is {current.value}",
    )

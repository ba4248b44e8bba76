"""
Order lifecycle state machine.

Every status change goes through one table of ``(from, to) -> role`` edges.
Authorization lives in the same table, so buyer-side and traveler-side
clients can never disagree about what is allowed.
"""
from enum import Enum

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from shared.errors import InvalidTransition, Unauthorized, store_call
from shared.observability import jastip_order_transition_total
from .models import Order
from .repository import OrderRepository

logger = structlog.get_logger(__name__)


class OrderStatus(str, Enum):
    PENDING_PAYMENT = "pending_payment"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    PAID_ESCROW = "paid_escrow"
    PURCHASED = "purchased"
    SHIPPED = "shipped"
    COMPLETED = "completed"


class Role(str, Enum):
    TRAVELER = "traveler"
    BUYER = "buyer"


TRANSITIONS: dict[tuple[OrderStatus, OrderStatus], Role] = {
    (OrderStatus.PENDING_PAYMENT, OrderStatus.ACCEPTED): Role.TRAVELER,
    (OrderStatus.PENDING_PAYMENT, OrderStatus.REJECTED): Role.TRAVELER,
    (OrderStatus.ACCEPTED, OrderStatus.PAID_ESCROW): Role.BUYER,
    (OrderStatus.PAID_ESCROW, OrderStatus.PURCHASED): Role.TRAVELER,
    (OrderStatus.PURCHASED, OrderStatus.SHIPPED): Role.TRAVELER,
    (OrderStatus.SHIPPED, OrderStatus.COMPLETED): Role.BUYER,
}

TERMINAL = frozenset({OrderStatus.REJECTED, OrderStatus.COMPLETED})

# Only reachable through the payment proof workflow
PROOF_EDGE = (OrderStatus.ACCEPTED, OrderStatus.PAID_ESCROW)

# Progress steps shown to both parties; 'accepted' is still waiting for payment
TIMELINE_STEPS = (
    OrderStatus.PENDING_PAYMENT,
    OrderStatus.PAID_ESCROW,
    OrderStatus.PURCHASED,
    OrderStatus.SHIPPED,
    OrderStatus.COMPLETED,
)


def resolve_role(order: Order, viewer_id: str) -> Role | None:
    """The viewer's role on this order, or None if they are not a party to it."""
    if viewer_id is None:
        return None
    if viewer_id == order.traveler_id:
        return Role.TRAVELER
    if viewer_id == order.buyer_id:
        return Role.BUYER
    return None


def check_transition(order: Order, requested_to: OrderStatus, actor_id: str) -> OrderStatus:
    """Validate an edge without touching the store. Returns the edge's ``from`` status."""
    current = OrderStatus(order.status)
    requested_to = OrderStatus(requested_to)
    required = TRANSITIONS.get((current, requested_to))
    if required is None:
        raise InvalidTransition(f"Order {order.id} cannot move from {current.value} to {requested_to.value}")
    role = resolve_role(order, actor_id)
    if role is not required:
        raise Unauthorized(f"Only the {required.value} may move order {order.id} to {requested_to.value}")
    return current


def allowed_transitions(order: Order, viewer_id: str) -> list[OrderStatus]:
    """Targets the viewer may request directly from the order's current status."""
    role = resolve_role(order, viewer_id)
    if role is None:
        return []
    current = OrderStatus(order.status)
    return [
        to for (frm, to), required in TRANSITIONS.items()
        if frm is current and required is role and (frm, to) != PROOF_EDGE
    ]


def timeline(status: OrderStatus) -> list[dict]:
    status = OrderStatus(status)
    if status is OrderStatus.REJECTED:
        return [{"status": OrderStatus.REJECTED.value, "done": True, "current": True}]
    anchor = OrderStatus.PENDING_PAYMENT if status is OrderStatus.ACCEPTED else status
    current_index = TIMELINE_STEPS.index(anchor)
    return [
        {"status": step.value, "done": index < current_index or status is OrderStatus.COMPLETED, "current": index == current_index}
        for index, step in enumerate(TIMELINE_STEPS)
    ]


class OrderStateMachine:
    """Validates and applies role-gated status transitions on a single order."""

    def __init__(self, repository=OrderRepository):
        self.repository = repository

    async def transition(self, db: AsyncSession, order: Order, requested_to: OrderStatus, actor_id: str, extra_fields: dict | None = None) -> Order:
        """
        Move ``order`` to ``requested_to`` on behalf of ``actor_id``.

        ``extra_fields`` are written in the same conditional update and are
        opaque to the machine. Raises InvalidTransition when no edge matches
        or the stored status no longer equals the edge's ``from``, and
        Unauthorized when the actor's role does not match the edge.
        """
        requested_to = OrderStatus(requested_to)
        # Read before the store call; a failed write may leave the instance unusable
        order_id = order.id
        labels = {"from_status": order.status, "to_status": requested_to.value}
        try:
            current = check_transition(order, requested_to, actor_id)
        except InvalidTransition:
            jastip_order_transition_total.labels(result="invalid", **labels).inc()
            raise
        except Unauthorized:
            jastip_order_transition_total.labels(result="unauthorized", **labels).inc()
            logger.warning("transition_unauthorized", order_id=order_id, actor_id=actor_id, **labels)
            raise

        with store_call("update_order_status"):
            updated = await self.repository.update_order_status(db, order_id, current.value, requested_to.value, extra_fields)

        if updated is None:
            # Another actor moved the order first; the store refused our precondition
            jastip_order_transition_total.labels(result="conflict", **labels).inc()
            logger.info("transition_conflict", order_id=order_id, actor_id=actor_id, **labels)
            raise InvalidTransition(f"Order {order_id} is no longer {current.value}; refresh and try again")

        jastip_order_transition_total.labels(result="ok", **labels).inc()
        logger.info("order_transitioned", order_id=order_id, actor_id=actor_id, **labels)
        return updated

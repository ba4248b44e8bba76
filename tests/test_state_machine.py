# tests/test_state_machine.py
import itertools

import pytest

from services.order_service.models import Order
from services.order_service.repository import OrderRepository
from services.order_service.service import OrderService, state_machine
from services.order_service.state_machine import (
    TRANSITIONS,
    OrderStatus,
    Role,
    allowed_transitions,
    check_transition,
    resolve_role,
    timeline,
)
from shared.errors import InvalidTransition, Unauthorized, ValidationError
from tests.conftest import BUYER, STRANGER, TRAVELER


def order_in(status: OrderStatus) -> Order:
    return Order(id="order-x", buyer_id=BUYER, traveler_id=TRAVELER, status=status.value)


async def reload(db, order_id):
    return await OrderRepository.get_order(db, order_id)


def test_resolve_role():
    order = order_in(OrderStatus.PENDING_PAYMENT)
    assert resolve_role(order, TRAVELER) is Role.TRAVELER
    assert resolve_role(order, BUYER) is Role.BUYER
    assert resolve_role(order, STRANGER) is None
    assert resolve_role(order, None) is None


@pytest.mark.parametrize(
    "frm,to",
    [pair for pair in itertools.product(OrderStatus, OrderStatus) if pair not in TRANSITIONS],
)
def test_pairs_outside_the_table_are_invalid(frm, to):
    order = order_in(frm)
    for actor in (BUYER, TRAVELER, STRANGER):
        with pytest.raises(InvalidTransition):
            check_transition(order, to, actor)


@pytest.mark.parametrize("edge,role", list(TRANSITIONS.items()))
def test_wrong_role_is_unauthorized(edge, role):
    frm, to = edge
    wrong = BUYER if role is Role.TRAVELER else TRAVELER
    order = order_in(frm)
    with pytest.raises(Unauthorized):
        check_transition(order, to, wrong)
    with pytest.raises(Unauthorized):
        check_transition(order, to, STRANGER)
    right = TRAVELER if role is Role.TRAVELER else BUYER
    assert check_transition(order, to, right) is frm


async def test_total_amount_is_price_plus_fees(make_order):
    order = await make_order(item_price=1500000)
    assert order.jastip_fee == 25000
    assert order.platform_fee == 5000
    assert order.total_amount == 1500000 + 25000 + 5000
    assert order.status == OrderStatus.PENDING_PAYMENT.value
    assert order.payment_proof_url is None


async def test_create_requires_name_and_positive_price(make_order):
    with pytest.raises(ValidationError):
        await make_order(item_name="   ")
    with pytest.raises(ValidationError):
        await make_order(item_price=None)
    with pytest.raises(ValidationError):
        await make_order(item_price=0)
    with pytest.raises(ValidationError):
        await make_order(buyer=TRAVELER, traveler=TRAVELER)


async def test_status_update_cannot_touch_amounts(db, make_order):
    order = await make_order()
    with pytest.raises(ValueError):
        await OrderRepository.update_order_status(
            db, order.id, "pending_payment", "accepted", {"total_amount": 1}
        )


async def test_unauthorized_transition_leaves_status(db, make_order):
    order = await make_order()
    with pytest.raises(Unauthorized):
        await state_machine.transition(db, order, OrderStatus.ACCEPTED, BUYER)
    with pytest.raises(Unauthorized):
        await OrderService.transition(db, order.id, OrderStatus.ACCEPTED, STRANGER)
    assert (await reload(db, order.id)).status == "pending_payment"


async def test_reject_is_terminal(db, make_order):
    order = await make_order()
    order = await OrderService.transition(db, order.id, OrderStatus.REJECTED, TRAVELER)
    assert order.status == "rejected"
    for target in OrderStatus:
        with pytest.raises(InvalidTransition):
            await OrderService.transition(db, order.id, target, TRAVELER)


async def test_paid_escrow_needs_a_proof(db, make_order):
    order = await make_order()
    await OrderService.transition(db, order.id, OrderStatus.ACCEPTED, TRAVELER)
    with pytest.raises(InvalidTransition):
        await OrderService.transition(db, order.id, OrderStatus.PAID_ESCROW, BUYER)
    assert (await reload(db, order.id)).status == "accepted"


async def test_store_conflict_is_invalid_transition(db, make_order):
    order = await make_order()
    stale = Order(id=order.id, buyer_id=BUYER, traveler_id=TRAVELER, status="pending_payment")
    await OrderService.transition(db, order.id, OrderStatus.ACCEPTED, TRAVELER)

    # The stale copy still passes the edge check; the store refuses the precondition
    with pytest.raises(InvalidTransition):
        await state_machine.transition(db, stale, OrderStatus.REJECTED, TRAVELER)
    assert (await reload(db, order.id)).status == "accepted"


async def test_concurrent_move_from_another_session(db, session_factory, make_order):
    created = await make_order()
    order = await OrderService.get_order_for_viewer(db, created.id, TRAVELER)

    # Another device accepts the order while this session still holds it as pending
    async with session_factory() as other:
        assert await OrderRepository.update_order_status(other, created.id, "pending_payment", "accepted") is not None

    with pytest.raises(InvalidTransition) as exc:
        await state_machine.transition(db, order, OrderStatus.REJECTED, TRAVELER)
    assert created.id in exc.value.detail
    # The loaded instance is still readable after the refused write
    assert order.id == created.id
    assert (await reload(db, created.id)).status == "accepted"


async def test_full_lifecycle(db, make_order, workflow):
    order = await make_order()
    order = await OrderService.transition(db, order.id, OrderStatus.ACCEPTED, TRAVELER)
    assert order.status == "accepted"

    order = await workflow.attach_proof(db, order.id, BUYER, b"\x89PNG receipt", "png")
    assert order.status == "paid_escrow"
    assert order.payment_proof_url is not None

    order = await OrderService.transition(db, order.id, OrderStatus.PURCHASED, TRAVELER)
    assert order.status == "purchased"
    order = await OrderService.transition(db, order.id, OrderStatus.SHIPPED, TRAVELER)
    assert order.status == "shipped"
    order = await OrderService.transition(db, order.id, OrderStatus.COMPLETED, BUYER)
    assert order.status == "completed"

    for target in OrderStatus:
        for actor in (BUYER, TRAVELER):
            with pytest.raises(InvalidTransition):
                await OrderService.transition(db, order.id, target, actor)
    assert order.total_amount == order.item_price + order.jastip_fee + order.platform_fee


def test_allowed_transitions_per_role():
    pending = order_in(OrderStatus.PENDING_PAYMENT)
    assert allowed_transitions(pending, TRAVELER) == [OrderStatus.ACCEPTED, OrderStatus.REJECTED]
    assert allowed_transitions(pending, BUYER) == []
    assert allowed_transitions(pending, STRANGER) == []

    # Paying goes through the proof upload, never a plain button
    assert allowed_transitions(order_in(OrderStatus.ACCEPTED), BUYER) == []
    assert allowed_transitions(order_in(OrderStatus.SHIPPED), BUYER) == [OrderStatus.COMPLETED]
    assert allowed_transitions(order_in(OrderStatus.COMPLETED), TRAVELER) == []


def test_timeline():
    steps = timeline(OrderStatus.PURCHASED)
    assert [s["status"] for s in steps] == ["pending_payment", "paid_escrow", "purchased", "shipped", "completed"]
    assert [s["done"] for s in steps] == [True, True, False, False, False]
    assert [s["current"] for s in steps] == [False, False, True, False, False]

    accepted = timeline(OrderStatus.ACCEPTED)
    assert accepted[0]["current"] is True

    assert all(s["done"] for s in timeline(OrderStatus.COMPLETED))
    assert timeline(OrderStatus.REJECTED) == [{"status": "rejected", "done": True, "current": True}]

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from shared.config import settings
from shared.errors import InvalidTransition, NotFound, Unauthorized, ValidationError, store_call
from .models import Order
from .repository import OrderRepository
from .schemas import OrderCreate, OrderDetailResponse, OrderResponse
from .state_machine import PROOF_EDGE, OrderStateMachine, OrderStatus, allowed_transitions, resolve_role, timeline

logger = structlog.get_logger(__name__)

state_machine = OrderStateMachine()

def compute_total(item_price: int, jastip_fee: int, platform_fee: int) -> int:
    return item_price + jastip_fee + platform_fee

class OrderService:
    @staticmethod
    async def create_order(db: AsyncSession, buyer_id: str, data: OrderCreate):
        item_name = (data.item_name or "").strip()
        if not item_name or data.item_price is None:
            raise ValidationError("Item name and estimated price are required.")
        if data.item_price <= 0:
            raise ValidationError("Item price must be a positive amount.")
        if data.traveler_id == buyer_id:
            raise ValidationError("You cannot request an item on your own trip.")

        order = Order(
            trip_id=data.trip_id,
            buyer_id=buyer_id,
            traveler_id=data.traveler_id,
            item_name=item_name,
            item_price=data.item_price,
            jastip_fee=settings.JASTIP_FEE,
            platform_fee=settings.PLATFORM_FEE,
            total_amount=compute_total(data.item_price, settings.JASTIP_FEE, settings.PLATFORM_FEE),
            status=OrderStatus.PENDING_PAYMENT.value,
        )
        with store_call("insert_order"):
            order = await OrderRepository.insert_order(db, order)
        logger.info("order_created", order_id=order.id, trip_id=order.trip_id, buyer_id=buyer_id, total_amount=order.total_amount)
        return order

    @staticmethod
    async def get_order(db: AsyncSession, order_id: str):
        with store_call("get_order"):
            order = await OrderRepository.get_order(db, order_id)
        if order is None:
            raise NotFound(f"Order {order_id} not found")
        return order

    @staticmethod
    async def get_order_for_viewer(db: AsyncSession, order_id: str, viewer_id: str):
        order = await OrderService.get_order(db, order_id)
        if resolve_role(order, viewer_id) is None:
            raise Unauthorized(f"You are not a party to order {order_id}")
        return order

    @staticmethod
    async def list_orders(db: AsyncSession, user_id: str):
        with store_call("get_orders_for_user"):
            return await OrderRepository.get_orders_for_user(db, user_id)

    @staticmethod
    async def transition(db: AsyncSession, order_id: str, requested_to: OrderStatus, actor_id: str):
        order = await OrderService.get_order_for_viewer(db, order_id, actor_id)
        if (OrderStatus(order.status), OrderStatus(requested_to)) == PROOF_EDGE:
            raise InvalidTransition("An order is marked paid by uploading a payment proof.")
        return await state_machine.transition(db, order, requested_to, actor_id)

    @staticmethod
    def detail(order: Order, viewer_id: str) -> OrderDetailResponse:
        base = OrderResponse.model_validate(order)
        return OrderDetailResponse(
            **base.model_dump(),
            viewer_role=resolve_role(order, viewer_id),
            allowed_transitions=allowed_transitions(order, viewer_id),
            timeline=timeline(order.status),
        )

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, or_
from .models import Order

# Fields a status update may carry alongside the new status
MUTABLE_EXTRA_FIELDS = frozenset({"payment_proof_url"})

class OrderRepository:
    @staticmethod
    async def insert_order(db: AsyncSession, order: Order):
        db.add(order)
        await db.commit()
        await db.refresh(order)
        return order

    @staticmethod
    async def get_order(db: AsyncSession, order_id: str):
        result = await db.execute(
            select(Order).where(Order.id == order_id).execution_options(populate_existing=True)
        )
        return result.scalars().first()

    @staticmethod
    async def get_orders_for_user(db: AsyncSession, user_id: str):
        result = await db.execute(
            select(Order)
            .where(or_(Order.buyer_id == user_id, Order.traveler_id == user_id))
            .order_by(Order.created_at.desc(), Order.id)
        )
        return list(result.scalars().all())

    @staticmethod
    async def update_order_status(db: AsyncSession, order_id: str, expected_status: str, new_status: str, extra_fields: dict | None = None):
        """
        Conditional update: only applies while the stored status equals
        ``expected_status``. Returns the updated order, or None on conflict.
        """
        extra_fields = dict(extra_fields or {})
        unknown = set(extra_fields) - MUTABLE_EXTRA_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be changed through a status update: {sorted(unknown)}")

        stmt = (
            update(Order)
            .where(Order.id == order_id, Order.status == expected_status)
            .values(status=new_status, **extra_fields)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        if result.rowcount != 1:
            # Nothing was written; end the transaction without expiring loaded instances
            await db.commit()
            return None

        await db.commit()
        return await OrderRepository.get_order(db, order_id)

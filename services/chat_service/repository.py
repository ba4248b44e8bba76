from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from shared.realtime import ChangeFeed, change_feed
from .models import Message
from .schemas import MessageOut

class MessageRepository:
    @staticmethod
    async def insert_message(db: AsyncSession, order_id: str, sender_id: str, content: str, feed: ChangeFeed = change_feed):
        message = Message(order_id=order_id, sender_id=sender_id, content=content)
        db.add(message)
        await db.commit()
        await db.refresh(message)

        # Subscribers get an immutable snapshot, only once the row is committed
        row = MessageOut.model_validate(message)
        feed.publish(Message.__tablename__, row)
        return row

    @staticmethod
    async def get_messages(db: AsyncSession, order_id: str):
        result = await db.execute(
            select(Message)
            .where(Message.order_id == order_id)
            .order_by(Message.created_at.asc(), Message.id.asc())
        )
        return [MessageOut.model_validate(m) for m in result.scalars().all()]

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from shared.errors import CoreError, ValidationError, store_call
from shared.observability import jastip_chat_messages_total
from shared.realtime import ChangeFeed, change_feed
from services.order_service.service import OrderService
from .repository import MessageRepository

logger = structlog.get_logger(__name__)

class ChatService:
    @staticmethod
    async def authorize(db: AsyncSession, order_id: str, viewer_id: str):
        """Only the order's buyer and traveler may read or write its thread."""
        return await OrderService.get_order_for_viewer(db, order_id, viewer_id)

    @staticmethod
    async def history(db: AsyncSession, order_id: str, viewer_id: str):
        await ChatService.authorize(db, order_id, viewer_id)
        with store_call("get_messages"):
            return await MessageRepository.get_messages(db, order_id)

    @staticmethod
    async def send_message(db: AsyncSession, order_id: str, sender_id: str, content: str, feed: ChangeFeed = change_feed):
        try:
            if not content or not content.strip():
                raise ValidationError("Message cannot be empty.")
            await ChatService.authorize(db, order_id, sender_id)
            with store_call("insert_message"):
                message = await MessageRepository.insert_message(db, order_id, sender_id, content, feed)
        except CoreError as e:
            jastip_chat_messages_total.labels(status="failed").inc()
            logger.info("chat_send_failed", order_id=order_id, sender_id=sender_id, error=e.code)
            raise

        jastip_chat_messages_total.labels(status="sent").inc()
        logger.info("chat_message_sent", order_id=order_id, sender_id=sender_id, message_id=message.id)
        return message

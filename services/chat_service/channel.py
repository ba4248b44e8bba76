"""
Per-order chat channel.

A ``ChatHandle`` holds one party's view of an order's thread: the stored
history plus everything that arrives afterwards, either from the change feed
or from the handle's own confirmed sends. All arrivals go through ``merge``,
which keeps the list sorted by ``(created_at, id)`` and drops ids it already
holds. Consumers read ``ChatEvent``s from ``events()`` and fold them into
their own list; they never see raw feed rows.
"""
import asyncio
import bisect
from dataclasses import dataclass

import structlog

from shared.observability import jastip_open_chat_channels
from shared.errors import ValidationError
from shared.realtime import ChangeFeed, Subscription, change_feed
from .models import Message
from .schemas import MessageOut
from .service import ChatService

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ChatEvent:
    message: MessageOut
    position: int # index of the message in the merged sequence when it was inserted


class ChatHandle:
    def __init__(self, channel: "OrderChatChannel", order_id: str, viewer_id: str, subscription: Subscription, history: list[MessageOut]):
        self.order_id = order_id
        self.viewer_id = viewer_id
        self.messages: list[MessageOut] = []
        self.draft = ""
        self.closed = False
        self._channel = channel
        self._ids: set[str] = set()
        self._subscription = subscription
        self._events: asyncio.Queue = asyncio.Queue()
        for message in history:
            self.merge(message, emit=False)
        self._pump = asyncio.create_task(self._pump_feed())

    def merge(self, message: MessageOut, emit: bool = True) -> ChatEvent | None:
        """Insert ``message`` in order. Returns None if its id is already present."""
        if message.id in self._ids:
            return None
        position = bisect.bisect_right(self.messages, message.sort_key(), key=MessageOut.sort_key)
        self.messages.insert(position, message)
        self._ids.add(message.id)
        event = ChatEvent(message, position)
        if emit:
            self._events.put_nowait(event)
        return event

    async def send(self, content: str, sender_id: str | None = None) -> MessageOut:
        """
        Clear the draft, write the message, and merge it once the store has
        confirmed it. On failure the draft is restored and nothing is merged.
        """
        if self.closed:
            raise ValidationError("This chat is closed.")
        sender_id = sender_id or self.viewer_id
        self.draft = ""
        try:
            async with self._channel.session_factory() as db:
                message = await ChatService.send_message(db, self.order_id, sender_id, content, self._channel.feed)
        except Exception:
            self.draft = content
            raise
        # The write completes even if the view closed meanwhile; its result is just not shown
        if not self.closed:
            self.merge(message)
        return message

    async def events(self):
        while True:
            event = await self._events.get()
            if event is None:
                return
            yield event

    async def close(self):
        if self.closed:
            return
        self.closed = True
        self._subscription.close()
        await self._pump
        self._events.put_nowait(None)
        self._channel._release(self)

    async def _pump_feed(self):
        async for row in self._subscription:
            self.merge(row)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()


class OrderChatChannel:
    def __init__(self, session_factory, feed: ChangeFeed = change_feed):
        self.session_factory = session_factory
        self.feed = feed
        self.open_handles = 0

    async def open(self, order_id: str, viewer_id: str) -> ChatHandle:
        # Subscribe before reading history so nothing inserted in between is missed
        subscription = self.feed.subscribe(Message.__tablename__, {"order_id": order_id})
        try:
            async with self.session_factory() as db:
                history = await ChatService.history(db, order_id, viewer_id)
        except Exception:
            subscription.close()
            raise

        handle = ChatHandle(self, order_id, viewer_id, subscription, history)
        self.open_handles += 1
        jastip_open_chat_channels.inc()
        logger.info("chat_opened", order_id=order_id, viewer_id=viewer_id, history=len(history))
        return handle

    def _release(self, handle: ChatHandle):
        self.open_handles -= 1
        jastip_open_chat_channels.dec()
        logger.info("chat_closed", order_id=handle.order_id, viewer_id=handle.viewer_id)

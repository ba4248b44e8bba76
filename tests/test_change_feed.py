# tests/test_change_feed.py
import asyncio
from types import SimpleNamespace

from services.chat_service.repository import MessageRepository
from tests.conftest import BUYER


async def test_publish_reaches_matching_subscribers_only(feed):
    mine = feed.subscribe("messages", {"order_id": "o-1"})
    other = feed.subscribe("messages", {"order_id": "o-2"})

    delivered = feed.publish("messages", SimpleNamespace(id="m", order_id="o-1"))
    assert delivered == 1

    row = await asyncio.wait_for(mine.__anext__(), timeout=1)
    assert row.id == "m"
    mine.close()
    other.close()
    assert feed.subscriber_count("messages") == 0


async def test_closed_subscription_stops_iteration(feed):
    sub = feed.subscribe("messages", {"order_id": "o-1"})
    feed.publish("messages", SimpleNamespace(id="queued", order_id="o-1"))
    sub.close()
    sub.close()

    rows = [row async for row in sub]
    assert rows == []
    assert feed.publish("messages", SimpleNamespace(id="late", order_id="o-1")) == 0


async def test_insert_publishes_after_commit(db, make_order, feed):
    order = await make_order()
    sub = feed.subscribe("messages", {"order_id": order.id})

    stored = await MessageRepository.insert_message(db, order.id, BUYER, "Sudah sampai bandara", feed)
    row = await asyncio.wait_for(sub.__anext__(), timeout=1)
    assert row == stored
    assert row.created_at.tzinfo is not None
    assert [m.id for m in await MessageRepository.get_messages(db, order.id)] == [stored.id]
    sub.close()

import asyncio
import contextlib
from typing import List
from fastapi import APIRouter, Depends, Request, WebSocket, WebSocketDisconnect, status
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config import settings
from shared.config.database import AsyncSessionLocal, get_db
from shared.errors import CoreError, RateLimited
from shared.security import get_current_user, get_websocket_user, limiter, socket_hit_allowed
from .channel import ChatHandle, OrderChatChannel
from .schemas import MessageCreate, MessageOut
from .service import ChatService

router = APIRouter(prefix="/chat", tags=["chat"])

chat_channel = OrderChatChannel(AsyncSessionLocal)

def get_chat_channel() -> OrderChatChannel:
    return chat_channel

@router.get("/{order_id}/messages", response_model=List[MessageOut])
async def list_messages(order_id: str, db: AsyncSession = Depends(get_db), user_id: str = Depends(get_current_user)):
    return await ChatService.history(db, order_id, user_id)

@router.post("/{order_id}/messages", response_model=MessageOut, status_code=201)
@limiter.limit(settings.CHAT_SEND_RATE_LIMIT)
async def send_message(
    request: Request,                          # slowapi needs this to key the limit
    order_id: str,
    payload: MessageCreate,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user),
):
    return await ChatService.send_message(db, order_id, user_id, payload.content)

async def forward_events(websocket: WebSocket, handle: ChatHandle):
    async for event in handle.events():
        await websocket.send_json({
            "type": "message",
            "position": event.position,
            "message": event.message.model_dump(mode="json"),
        })

@router.websocket("/{order_id}/ws")
async def chat_socket(
    websocket: WebSocket,
    order_id: str,
    user_id: str = Depends(get_websocket_user),
    channel: OrderChatChannel = Depends(get_chat_channel),
):
    try:
        handle = await channel.open(order_id, user_id)
    except CoreError as e:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=e.detail[:120])
        return

    await websocket.accept()
    async with handle:
        await websocket.send_json({
            "type": "history",
            "messages": [m.model_dump(mode="json") for m in handle.messages],
        })
        forwarder = asyncio.create_task(forward_events(websocket, handle))
        try:
            while True:
                data = await websocket.receive_json()
                content = str(data.get("content", "")) if isinstance(data, dict) else ""
                try:
                    # Same per-user budget as the REST send
                    if not socket_hit_allowed(settings.CHAT_SEND_RATE_LIMIT, "chat_send", user_id):
                        raise RateLimited(f"Too many messages; the limit is {settings.CHAT_SEND_RATE_LIMIT}.")
                    await handle.send(content, user_id)
                except CoreError as e:
                    await websocket.send_json({"type": "send_failed", "draft": content, **e.to_dict()})
        except WebSocketDisconnect:
            pass
        finally:
            forwarder.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await forwarder

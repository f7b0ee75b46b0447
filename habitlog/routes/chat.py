from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect

from habitlog.auth import resolve_identity
from habitlog.errors import HabitlogError
from habitlog.schemas import ChatRequestAccept, ChatRequestCreate, MessageCreate, ProfilePayload
from habitlog.session import get_messaging
from habitlog.stores.messaging import MessagingCoordinator

logger = logging.getLogger(__name__)

router = APIRouter()


@router.put("/v1/profile")
async def save_profile(payload: ProfilePayload, messaging: MessagingCoordinator = Depends(get_messaging)):
    profile = await messaging.upsert_profile(payload.display_name, payload.avatar_url)
    return profile.to_dict()


@router.get("/v1/users/search")
async def search_users(q: str = Query(""), messaging: MessagingCoordinator = Depends(get_messaging)):
    results = await messaging.search_users(q)
    return {"items": [profile.to_dict() for profile in results]}


@router.get("/v1/chat/requests")
async def received_requests(messaging: MessagingCoordinator = Depends(get_messaging)):
    return {"items": [request.to_dict() for request in await messaging.fetch_chat_requests()]}


@router.get("/v1/chat/requests/sent")
async def sent_requests(messaging: MessagingCoordinator = Depends(get_messaging)):
    return {"items": [request.to_dict() for request in await messaging.fetch_sent_requests()]}


@router.post("/v1/chat/requests")
async def send_request(payload: ChatRequestCreate, messaging: MessagingCoordinator = Depends(get_messaging)):
    request = await messaging.send_chat_request(payload.to_user_id)
    return request.to_dict()


@router.post("/v1/chat/requests/{request_id}/accept")
async def accept_request(
    request_id: str,
    payload: ChatRequestAccept,
    messaging: MessagingCoordinator = Depends(get_messaging),
):
    conversation = await messaging.accept_chat_request(request_id, payload.from_user_id)
    return conversation.to_dict()


@router.post("/v1/chat/requests/{request_id}/reject")
async def reject_request(request_id: str, messaging: MessagingCoordinator = Depends(get_messaging)):
    await messaging.reject_chat_request(request_id)
    return {"ok": True}


@router.post("/v1/chat/requests/{request_id}/repair")
async def repair_request(request_id: str, messaging: MessagingCoordinator = Depends(get_messaging)):
    conversation = await messaging.repair_conversation(request_id)
    return conversation.to_dict()


@router.get("/v1/conversations")
async def list_conversations(messaging: MessagingCoordinator = Depends(get_messaging)):
    return {"items": [c.to_dict() for c in await messaging.fetch_conversations()]}


@router.get("/v1/conversations/{conversation_id}/messages")
async def list_messages(conversation_id: str, messaging: MessagingCoordinator = Depends(get_messaging)):
    return {"items": [m.to_dict() for m in await messaging.fetch_messages(conversation_id)]}


@router.post("/v1/conversations/{conversation_id}/messages")
async def send_message(
    conversation_id: str,
    payload: MessageCreate,
    messaging: MessagingCoordinator = Depends(get_messaging),
):
    message = await messaging.send_message(conversation_id, payload.content)
    return {"message": message.to_dict() if message else None}


@router.websocket("/v1/conversations/{conversation_id}/stream")
async def stream_messages(websocket: WebSocket, conversation_id: str):
    try:
        identity = resolve_identity(
            websocket.headers.get("x-user-id"),
            websocket.headers.get("x-user-email"),
            websocket.headers.get("x-backend-token"),
        )
    except HTTPException:
        await websocket.close(code=1008)
        return
    messaging = MessagingCoordinator(identity)
    try:
        await messaging.fetch_messages(conversation_id)
    except HabitlogError:
        await websocket.close(code=1008)
        return

    await serve_stream(websocket, messaging, conversation_id)


async def serve_stream(websocket, messaging: MessagingCoordinator, conversation_id: str) -> None:
    """Relay live messages to the socket and store the text the client sends.

    Returns once the client disconnects or the socket can no longer be
    written to; the subscription is stopped either way.
    """
    outbound: asyncio.Queue = asyncio.Queue()
    subscription = messaging.subscribe_to_messages(conversation_id, outbound.put_nowait)
    await websocket.accept()

    async def _pump():
        while True:
            message = await outbound.get()
            await websocket.send_json(message.to_dict())

    async def _receive():
        try:
            while True:
                content = await websocket.receive_text()
                try:
                    message = await messaging.send_message(conversation_id, content)
                except HabitlogError as exc:
                    await websocket.send_json({"error": exc.to_detail()})
                    continue
                # The feed skips messages this coordinator already holds; echo the stored copy.
                if message is not None:
                    outbound.put_nowait(message)
        except WebSocketDisconnect:
            logger.debug("Stream for %s closed by client", conversation_id)

    tasks = [asyncio.create_task(_pump()), asyncio.create_task(_receive())]
    try:
        await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
    finally:
        subscription.stop()
        for task in tasks:
            task.cancel()
        results = await asyncio.gather(*tasks, return_exceptions=True)
    for result in results:
        if isinstance(result, Exception):
            logger.warning("Stream for %s ended: %r", conversation_id, result)

import json
import logging
from typing import List

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from marketchat.errors import ChatError, PartialFailureError, UnauthenticatedError
from marketchat.schemas.chat import MarkReadRequest, MessageOut, SendMessageRequest, SendMessageResponse
from marketchat.services.chat_service import ChatService
from marketchat.services.read_state import ReadStateTracker
from marketchat.utils.dependencies import (
    get_chat_service,
    get_read_state_tracker,
    get_session,
    session_from_token,
)
from marketchat.utils.session import Session


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/messages", tags=["chat"])


async def mark_read_quietly(tracker: ReadStateTracker, session: Session, sender_id: str, receiver_id: str) -> int:
    # read-state failures never block reading the conversation
    try:
        return await tracker.mark_read(session, sender_id, receiver_id)
    except PartialFailureError as exc:
        logger.warning("Partial read-state update %s -> %s: %s", sender_id, receiver_id, exc.message)
        return exc.updated
    except ChatError as exc:
        logger.warning("Read-state update %s -> %s failed: %s", sender_id, receiver_id, exc.message)
        return 0


@router.post("", response_model=SendMessageResponse)
async def send_message(payload: SendMessageRequest, session: Session = Depends(get_session), service: ChatService = Depends(get_chat_service)):
    message_id = await service.send(session, payload.receiver_id, payload.text)
    return SendMessageResponse(message_id=message_id)


@router.get("/thread/{counterparty_id}")
async def get_thread(counterparty_id: str, session: Session = Depends(get_session), service: ChatService = Depends(get_chat_service)):
    items = await service.get_thread(session, counterparty_id)
    return {"items": items}


@router.post("/mark_read")
async def mark_read(payload: MarkReadRequest, session: Session = Depends(get_session), tracker: ReadStateTracker = Depends(get_read_state_tracker)):
    receiver_id = session.require_user()
    count = await mark_read_quietly(tracker, session, payload.from_user_id, receiver_id)
    return {"updated": count}


@router.websocket("/ws/{counterparty_id}")
async def thread_socket(
    websocket: WebSocket,
    counterparty_id: str,
    service: ChatService = Depends(get_chat_service),
    tracker: ReadStateTracker = Depends(get_read_state_tracker),
):
    # JWT comes in the query string: ?token=...
    try:
        session = session_from_token(websocket.query_params.get("token"))
        user_id = session.require_user()
    except UnauthenticatedError:
        await websocket.close(code=4401)
        return

    await websocket.accept()

    async def push(messages: List[MessageOut]) -> None:
        await websocket.send_text(json.dumps({
            "type": "thread",
            "items": [m.model_dump(mode="json") for m in messages],
        }))

    subscription = await service.subscribe_thread(session, counterparty_id, push)
    try:
        await mark_read_quietly(tracker, session, counterparty_id, user_id)
        while True:
            data = await websocket.receive_text()
            try:
                msg = json.loads(data)
            except ValueError:
                msg = None
            if not isinstance(msg, dict):
                await websocket.send_text(json.dumps({"type": "error", "error": "invalid_json"}))
                continue
            # {"type": "read"} or {"type": "message", "text": str}
            if msg.get("type") == "read":
                await mark_read_quietly(tracker, session, counterparty_id, user_id)
                continue
            text = msg.get("text")
            if text is not None and not isinstance(text, str):
                await websocket.send_text(json.dumps({"type": "error", "error": "invalid_text"}))
                continue
            try:
                message_id = await service.send(session, counterparty_id, text or "")
            except ChatError as exc:
                await websocket.send_text(json.dumps({"type": "error", "error": exc.code, "detail": exc.message}))
                continue
            await websocket.send_text(json.dumps({"type": "ack", "message_id": message_id}))
    except WebSocketDisconnect:
        logger.debug("Thread socket %s/%s disconnected", user_id, counterparty_id)
    finally:
        await subscription.close()

import json
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect

from marketchat.errors import UnauthenticatedError
from marketchat.schemas.chat import ChatSummaryOut, Conversation
from marketchat.services.chat_service import ChatService
from marketchat.services.conversation_aggregator import ConversationAggregator
from marketchat.utils.dependencies import (
    get_chat_service,
    get_conversation_aggregator,
    get_session,
    session_from_token,
)
from marketchat.utils.session import Session


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/conversations", tags=["chat"])


@router.get("")
async def list_conversations(session: Session = Depends(get_session), aggregator: ConversationAggregator = Depends(get_conversation_aggregator)):
    items = await aggregator.list_conversations(session)
    return {"items": items}


@router.get("/summaries")
async def list_summaries(limit: int = Query(50, ge=1, le=200), session: Session = Depends(get_session), service: ChatService = Depends(get_chat_service)):
    docs = await service.list_summaries(session, limit=limit)
    items = [
        ChatSummaryOut(
            id=str(d["_id"]),
            last_message=d.get("last_message"),
            timestamp=d.get("timestamp"),
            participants=d.get("participants", []),
        )
        for d in docs
    ]
    return {"items": items}


@router.delete("/{chat_id}")
async def delete_conversation(chat_id: str, session: Session = Depends(get_session), service: ChatService = Depends(get_chat_service)):
    deleted = await service.delete_summary(session, chat_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Chat not found")
    return {"deleted": True}


@router.websocket("/ws")
async def conversations_socket(websocket: WebSocket, aggregator: ConversationAggregator = Depends(get_conversation_aggregator)):
    try:
        session = session_from_token(websocket.query_params.get("token"))
        user_id = session.require_user()
    except UnauthenticatedError:
        await websocket.close(code=4401)
        return

    await websocket.accept()

    async def push(conversations: List[Conversation]) -> None:
        await websocket.send_text(json.dumps({
            "type": "conversations",
            "items": [c.model_dump(mode="json") for c in conversations],
        }))

    subscription = await aggregator.subscribe(session, push)
    try:
        while True:
            # nothing is expected from the client; this only waits for the disconnect
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.debug("Conversation socket for %s disconnected", user_id)
    finally:
        await subscription.close()

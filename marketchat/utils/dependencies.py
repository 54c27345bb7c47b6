from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from marketchat.config import get_settings
from marketchat.database.connection import mongo_db_dependency
from marketchat.repositories.chat_repository import ChatRepository
from marketchat.repositories.message_repository import MessageRepository
from marketchat.repositories.user_repository import UserRepository
from marketchat.services.chat_service import ChatService
from marketchat.services.conversation_aggregator import ConversationAggregator, resolve_timezone
from marketchat.services.read_state import ReadStateTracker
from marketchat.utils.realtime_bus import get_bus
from marketchat.utils.security import decode_access_token
from marketchat.utils.session import ANONYMOUS, Session


bearer_scheme = HTTPBearer(auto_error=False)


async def get_session(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)) -> Session:
    # anonymous sessions are rejected by the services that need an identity
    if credentials is None:
        return ANONYMOUS
    payload = decode_access_token(credentials.credentials)
    return Session(user_id=payload["sub"])


def session_from_token(token: Optional[str]) -> Session:
    if not token:
        return ANONYMOUS
    payload = decode_access_token(token)
    return Session(user_id=payload["sub"])


async def get_bus_dependency():
    return await get_bus()


def get_chat_service(db=Depends(mongo_db_dependency), bus=Depends(get_bus_dependency)) -> ChatService:
    return ChatService(
        MessageRepository(db),
        ChatRepository(db),
        bus,
        summary_key_mode=get_settings().chat_summary_key_mode,
    )


def get_conversation_aggregator(db=Depends(mongo_db_dependency), bus=Depends(get_bus_dependency)) -> ConversationAggregator:
    tz = resolve_timezone(get_settings().display_timezone)
    return ConversationAggregator(MessageRepository(db), bus, display_tz=tz)


def get_read_state_tracker(db=Depends(mongo_db_dependency), bus=Depends(get_bus_dependency)) -> ReadStateTracker:
    return ReadStateTracker(MessageRepository(db), bus)


def get_user_repository(db=Depends(mongo_db_dependency)) -> UserRepository:
    return UserRepository(db)

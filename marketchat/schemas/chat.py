from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class SendMessageRequest(BaseModel):

    receiver_id: str = Field(min_length=1)
    text: str


class SendMessageResponse(BaseModel):

    message_id: str


class MarkReadRequest(BaseModel):

    from_user_id: str = Field(min_length=1)


class MessageOut(BaseModel):

    id: str
    text: str
    sender_id: str
    receiver_id: str
    timestamp: datetime
    is_read: bool = False


class Conversation(BaseModel):
    """One row of the conversation list, keyed by the other participant."""

    counterparty_id: str
    last_message: str
    last_message_id: str
    last_message_at: datetime
    # MM-DD HH:MM in the display time zone
    timestamp: str
    has_unread: bool = False


class ChatSummaryOut(BaseModel):

    id: str
    last_message: Optional[str] = None
    timestamp: Optional[datetime] = None
    participants: List[str] = []


class UserNameOut(BaseModel):

    id: str
    name: str

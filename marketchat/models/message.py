from datetime import datetime
from typing import List, TypedDict


class MessageDocument(TypedDict, total=False):
    _id: str
    text: str
    sender_id: str
    receiver_id: str
    # [sender_id, receiver_id]; membership only, order carries no meaning
    participants: List[str]
    timestamp: datetime
    is_read: bool

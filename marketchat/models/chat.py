from datetime import datetime
from typing import List, TypedDict


class ChatSummaryDocument(TypedDict, total=False):
    # "{sender_id}_{receiver_id}" unless canonical keys are configured
    _id: str
    last_message: str
    timestamp: datetime
    participants: List[str]

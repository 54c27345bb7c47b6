from datetime import datetime
from typing import List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING

from marketchat.models.chat import ChatSummaryDocument


class ChatRepository:
    """Denormalized per-pair summaries in the ``chats`` collection."""

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["chats"]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index([("participants", ASCENDING)])
        await self.collection.create_index([("timestamp", DESCENDING)])

    async def upsert_summary(self, chat_id: str, last_message: str, timestamp: datetime, participants: List[str]) -> None:
        await self.collection.update_one(
            {"_id": chat_id},
            {
                "$set": {
                    "last_message": last_message,
                    "timestamp": timestamp,
                    "participants": participants,
                }
            },
            upsert=True,
        )

    async def get_summary(self, chat_id: str) -> Optional[ChatSummaryDocument]:
        return await self.collection.find_one({"_id": chat_id})

    async def delete_summary(self, chat_id: str) -> bool:
        result = await self.collection.delete_one({"_id": chat_id})
        return result.deleted_count > 0

    async def list_for_user(self, user_id: str, limit: int = 50) -> List[ChatSummaryDocument]:
        cur = self.collection.find({"participants": user_id}).sort("timestamp", DESCENDING).limit(limit)
        return await cur.to_list(length=limit)

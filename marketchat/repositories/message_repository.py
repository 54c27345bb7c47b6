from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING

from marketchat.models.message import MessageDocument


class MessageRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["messages"]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index([("participants", ASCENDING)])
        await self.collection.create_index(
            [("sender_id", ASCENDING), ("receiver_id", ASCENDING), ("is_read", ASCENDING)]
        )

    async def append(
        self,
        sender_id: str,
        receiver_id: str,
        text: str,
        timestamp: Optional[datetime] = None,
    ) -> MessageDocument:
        doc: Dict[str, Any] = {
            "text": text,
            "sender_id": sender_id,
            "receiver_id": receiver_id,
            "participants": [sender_id, receiver_id],
            "timestamp": timestamp or datetime.now(timezone.utc),
            "is_read": False,
        }
        result = await self.collection.insert_one(doc)
        doc["_id"] = str(result.inserted_id)
        return doc

    async def find_for_participant(self, user_id: str) -> List[MessageDocument]:
        # ObjectId order == insertion order, used as the timestamp tie-break
        cur = self.collection.find({"participants": user_id}).sort("_id", ASCENDING)
        items = await cur.to_list(length=None)
        for it in items:
            it["_id"] = str(it.get("_id"))
        return items

    async def find_between(self, user_a: str, user_b: str) -> List[MessageDocument]:
        query = {"participants": {"$all": [user_a, user_b]}}
        cur = self.collection.find(query).sort([("timestamp", ASCENDING), ("_id", ASCENDING)])
        items = await cur.to_list(length=None)
        for it in items:
            it["_id"] = str(it.get("_id"))
        return items

    async def find_unread(self, sender_id: str, receiver_id: str) -> List[Dict[str, Any]]:
        query = {"sender_id": sender_id, "receiver_id": receiver_id, "is_read": False}
        cur = self.collection.find(query, {"_id": 1})
        items = await cur.to_list(length=None)
        for it in items:
            it["_id"] = str(it.get("_id"))
        return items

    async def set_read(self, message_id: str) -> bool:
        result = await self.collection.update_one(
            {"_id": ObjectId(message_id)},
            {"$set": {"is_read": True}},
        )
        return bool(result.matched_count)

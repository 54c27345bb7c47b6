from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from marketchat.models.user import UserDocument


UNKNOWN_NAME = "Unknown"


class UserRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._collection = db.get_collection("users")

    async def get_user_by_id(self, user_id: str) -> Optional[UserDocument]:
        return await self._collection.find_one({"_id": user_id})

    async def get_display_name(self, user_id: str) -> str:
        user = await self.get_user_by_id(user_id)
        if not user:
            return UNKNOWN_NAME
        return user.get("name") or UNKNOWN_NAME

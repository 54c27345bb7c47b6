"""
Shared fixtures: in-memory repositories standing in for the MongoDB
collections, plus an in-process bus.
"""

import asyncio
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest
from pymongo.errors import AutoReconnect, OperationFailure

os.environ["JWT_SECRET_KEY"] = "test-secret"
os.environ["DISPLAY_TIMEZONE"] = "UTC"
os.environ.pop("REDIS_URL", None)

from marketchat.utils.realtime_bus import LocalBus  # noqa: E402
from marketchat.utils.session import Session  # noqa: E402


BASE_TIME = datetime(2023, 4, 24, 9, 0, tzinfo=timezone.utc)


class FakeMessageRepository:

    def __init__(self) -> None:
        self.docs: List[Dict[str, Any]] = []
        self.down = False
        self.fail_set_read: set = set()
        self._seq = 0

    async def append(self, sender_id: str, receiver_id: str, text: str, timestamp: Optional[datetime] = None) -> Dict[str, Any]:
        if self.down:
            raise AutoReconnect("connection refused")
        self._seq += 1
        doc = {
            "_id": f"m{self._seq:04d}",
            "text": text,
            "sender_id": sender_id,
            "receiver_id": receiver_id,
            "participants": [sender_id, receiver_id],
            "timestamp": timestamp or BASE_TIME + timedelta(minutes=self._seq),
            "is_read": False,
        }
        self.docs.append(doc)
        return dict(doc)

    async def find_for_participant(self, user_id: str) -> List[Dict[str, Any]]:
        if self.down:
            raise AutoReconnect("connection refused")
        return [dict(d) for d in self.docs if user_id in d["participants"]]

    async def find_between(self, user_a: str, user_b: str) -> List[Dict[str, Any]]:
        if self.down:
            raise AutoReconnect("connection refused")
        items = [dict(d) for d in self.docs if {user_a, user_b} <= set(d["participants"])]
        return sorted(items, key=lambda d: d["timestamp"])

    async def find_unread(self, sender_id: str, receiver_id: str) -> List[Dict[str, Any]]:
        if self.down:
            raise AutoReconnect("connection refused")
        return [
            {"_id": d["_id"]}
            for d in self.docs
            if d["sender_id"] == sender_id and d["receiver_id"] == receiver_id and not d["is_read"]
        ]

    async def set_read(self, message_id: str) -> bool:
        if message_id in self.fail_set_read:
            raise OperationFailure("write conflict")
        for d in self.docs:
            if d["_id"] == message_id:
                d["is_read"] = True
                return True
        return False

    def get(self, message_id: str) -> Dict[str, Any]:
        return next(d for d in self.docs if d["_id"] == message_id)


class FakeChatRepository:

    def __init__(self) -> None:
        self.summaries: Dict[str, Dict[str, Any]] = {}
        self.down = False

    async def upsert_summary(self, chat_id: str, last_message: str, timestamp: datetime, participants: List[str]) -> None:
        if self.down:
            raise AutoReconnect("connection refused")
        doc = self.summaries.setdefault(chat_id, {"_id": chat_id})
        doc.update({"last_message": last_message, "timestamp": timestamp, "participants": participants})

    async def get_summary(self, chat_id: str) -> Optional[Dict[str, Any]]:
        return self.summaries.get(chat_id)

    async def delete_summary(self, chat_id: str) -> bool:
        return self.summaries.pop(chat_id, None) is not None

    async def list_for_user(self, user_id: str, limit: int = 50) -> List[Dict[str, Any]]:
        items = [d for d in self.summaries.values() if user_id in d["participants"]]
        return sorted(items, key=lambda d: d["timestamp"], reverse=True)[:limit]


async def wait_for(predicate, timeout: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


@pytest.fixture
def message_repo() -> FakeMessageRepository:
    return FakeMessageRepository()


@pytest.fixture
def chat_repo() -> FakeChatRepository:
    return FakeChatRepository()


@pytest.fixture
def bus() -> LocalBus:
    return LocalBus()


@pytest.fixture
def alice() -> Session:
    return Session(user_id="alice")


@pytest.fixture
def bob() -> Session:
    return Session(user_id="bob")


@pytest.fixture
def anonymous() -> Session:
    return Session()

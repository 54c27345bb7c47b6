import json
import logging
from typing import Any, Callable, Dict, List

from pymongo.errors import PyMongoError

from marketchat.errors import ValidationError, translate_store_errors
from marketchat.repositories.chat_repository import ChatRepository
from marketchat.repositories.message_repository import MessageRepository
from marketchat.schemas.chat import MessageOut
from marketchat.services.subscriptions import SnapshotSubscription
from marketchat.utils.realtime_bus import messages_channel
from marketchat.utils.session import Session


logger = logging.getLogger(__name__)

DIRECTIONAL = "directional"
CANONICAL = "canonical"


def summary_key(sender_id: str, receiver_id: str, mode: str = DIRECTIONAL) -> str:
    """Id of the ``chats`` summary for a send from ``sender_id``.

    Directional keys mean A->B and B->A keep two separate summaries; stored
    data depends on that, so it stays the default.
    """
    if mode == CANONICAL:
        first, second = sorted([sender_id, receiver_id])
        return f"{first}_{second}"
    return f"{sender_id}_{receiver_id}"


async def notify_participants(bus, event: str, user_ids: List[str], **data: Any) -> None:
    payload = json.dumps({"type": event, **data})
    for user_id in dict.fromkeys(user_ids):
        try:
            await bus.publish(messages_channel(user_id), payload)
        except Exception:
            # the write already committed; subscribers catch up on their next snapshot
            logger.warning("Could not publish %s for user %s", event, user_id, exc_info=True)


class ChatService:

    def __init__(
        self,
        message_repo: MessageRepository,
        chat_repo: ChatRepository,
        bus,
        summary_key_mode: str = DIRECTIONAL,
    ) -> None:
        self._message_repo = message_repo
        self._chat_repo = chat_repo
        self._bus = bus
        self._summary_key_mode = summary_key_mode

    async def send(self, session: Session, receiver_id: str, body: str) -> str:
        sender_id = session.require_user()
        if not body:
            raise ValidationError("Message body cannot be empty")
        if not receiver_id or not receiver_id.strip():
            raise ValidationError("Receiver id is required")
        if receiver_id == sender_id:
            raise ValidationError("Cannot send a message to yourself")

        with translate_store_errors("append message"):
            saved = await self._message_repo.append(sender_id, receiver_id, body)
        chat_id = summary_key(sender_id, receiver_id, self._summary_key_mode)
        try:
            await self._chat_repo.upsert_summary(
                chat_id,
                last_message=body,
                timestamp=saved["timestamp"],
                participants=[sender_id, receiver_id],
            )
        except PyMongoError as exc:
            # message already stored, the summary is best effort
            logger.error("Could not update chat summary %s for message %s: %s", chat_id, saved["_id"], exc)
        logger.info("Message %s sent from %s to %s", saved["_id"], sender_id, receiver_id)
        await notify_participants(self._bus, "message", [sender_id, receiver_id], message_id=saved["_id"])
        return saved["_id"]

    async def _thread(self, user_id: str, counterparty_id: str) -> List[MessageOut]:
        with translate_store_errors("thread query"):
            docs = await self._message_repo.find_between(user_id, counterparty_id)
        return [
            MessageOut(
                id=d["_id"],
                text=d.get("text", ""),
                sender_id=d["sender_id"],
                receiver_id=d["receiver_id"],
                timestamp=d["timestamp"],
                is_read=d.get("is_read", False),
            )
            for d in docs
        ]

    async def get_thread(self, session: Session, counterparty_id: str) -> List[MessageOut]:
        return await self._thread(session.require_user(), counterparty_id)

    async def subscribe_thread(
        self,
        session: Session,
        counterparty_id: str,
        on_update: Callable[[List[MessageOut]], Any],
    ) -> SnapshotSubscription[List[MessageOut]]:
        user_id = session.require_user()
        subscription = SnapshotSubscription(
            self._bus,
            messages_channel(user_id),
            lambda: self._thread(user_id, counterparty_id),
            on_update,
        )
        return await subscription.start()

    async def list_summaries(self, session: Session, limit: int = 50) -> List[Dict[str, Any]]:
        user_id = session.require_user()
        with translate_store_errors("list chat summaries"):
            return await self._chat_repo.list_for_user(user_id, limit=limit)

    async def delete_summary(self, session: Session, chat_id: str) -> bool:
        """Remove the ``chats`` summary only; the messages themselves stay."""
        user_id = session.require_user()
        with translate_store_errors("delete chat summary"):
            summary = await self._chat_repo.get_summary(chat_id)
            if not summary or user_id not in summary.get("participants", []):
                # other users' summaries look the same as missing ones
                return False
            deleted = await self._chat_repo.delete_summary(chat_id)
        logger.info("Chat summary %s deleted by %s", chat_id, user_id)
        return deleted

import logging

from pymongo.errors import PyMongoError

from marketchat.errors import PartialFailureError, translate_store_errors
from marketchat.repositories.message_repository import MessageRepository
from marketchat.services.chat_service import notify_participants
from marketchat.utils.session import Session


logger = logging.getLogger(__name__)


class ReadStateTracker:

    def __init__(self, message_repo: MessageRepository, bus) -> None:
        self._message_repo = message_repo
        self._bus = bus

    async def mark_read(self, session: Session, sender_id: str, receiver_id: str) -> int:
        """Flag every unread sender -> receiver message as read.

        Each message is updated on its own and nothing is rolled back, so a
        failure part way leaves the earlier updates in place and raises
        ``PartialFailureError``.
        """
        session.require_user()
        with translate_store_errors("unread query"):
            unread = await self._message_repo.find_unread(sender_id, receiver_id)
        if not unread:
            return 0

        updated = failed = 0
        for doc in unread:
            try:
                if await self._message_repo.set_read(doc["_id"]):
                    updated += 1
            except PyMongoError as exc:
                failed += 1
                logger.warning("Could not mark message %s read: %s", doc["_id"], exc)

        if updated:
            await notify_participants(self._bus, "read", [sender_id, receiver_id], sender_id=sender_id)
        if failed:
            raise PartialFailureError(updated=updated, failed=failed)
        logger.debug("Marked %d messages from %s to %s read", updated, sender_id, receiver_id)
        return updated

import logging
from datetime import datetime, timezone, tzinfo
from typing import Any, Callable, Dict, Iterable, List, Optional
from zoneinfo import ZoneInfo

from marketchat.errors import translate_store_errors
from marketchat.repositories.message_repository import MessageRepository
from marketchat.schemas.chat import Conversation
from marketchat.services.subscriptions import SnapshotSubscription
from marketchat.utils.realtime_bus import messages_channel
from marketchat.utils.session import Session


logger = logging.getLogger(__name__)

DISPLAY_FORMAT = "%m-%d %H:%M"


def resolve_timezone(name: str) -> tzinfo:
    if not name or name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


def _as_utc(value: datetime) -> datetime:
    # naive datetimes from the driver are UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def format_timestamp(value: datetime, tz: tzinfo = timezone.utc) -> str:
    return _as_utc(value).astimezone(tz).strftime(DISPLAY_FORMAT)


def _is_valid(doc: Dict[str, Any]) -> bool:
    return (
        isinstance(doc.get("text"), str)
        and isinstance(doc.get("timestamp"), datetime)
        and isinstance(doc.get("receiver_id"), str)
        and isinstance(doc.get("participants"), (list, tuple))
    )


def counterparty_of(participants: Iterable[str], current_user_id: str) -> Optional[str]:
    participants = list(participants)
    if current_user_id not in participants:
        return None
    return next((p for p in participants if p != current_user_id), None)


def aggregate_conversations(
    messages: Iterable[Dict[str, Any]],
    current_user_id: str,
    tz: tzinfo = timezone.utc,
) -> List[Conversation]:
    """Collapse a message snapshot into one conversation per counterparty.

    ``messages`` must be in store insertion order. The sort below is stable,
    so among messages with equal timestamps the earliest inserted one is
    visited first and wins. Unread state is taken from the winning message
    only; an older unread message in the same thread does not count.
    """
    valid = [m for m in messages if _is_valid(m)]
    ordered = sorted(valid, key=lambda m: _as_utc(m["timestamp"]), reverse=True)

    grouped: Dict[str, Conversation] = {}
    for msg in ordered:
        counterparty_id = counterparty_of(msg["participants"], current_user_id)
        if counterparty_id is None or counterparty_id in grouped:
            continue
        grouped[counterparty_id] = Conversation(
            counterparty_id=counterparty_id,
            last_message=msg["text"],
            last_message_id=str(msg.get("_id", "")),
            last_message_at=_as_utc(msg["timestamp"]),
            timestamp=format_timestamp(msg["timestamp"], tz),
            has_unread=(not msg.get("is_read", False)) and msg["receiver_id"] == current_user_id,
        )
    # dicts keep insertion order, which is the descending-timestamp scan
    return list(grouped.values())


class ConversationAggregator:

    def __init__(self, message_repo: MessageRepository, bus, display_tz: tzinfo = timezone.utc) -> None:
        self._message_repo = message_repo
        self._bus = bus
        self._tz = display_tz

    async def _snapshot(self, user_id: str) -> List[Conversation]:
        with translate_store_errors("conversation snapshot"):
            messages = await self._message_repo.find_for_participant(user_id)
        return aggregate_conversations(messages, user_id, self._tz)

    async def list_conversations(self, session: Session) -> List[Conversation]:
        return await self._snapshot(session.require_user())

    async def subscribe(
        self,
        session: Session,
        on_update: Callable[[List[Conversation]], Any],
    ) -> SnapshotSubscription[List[Conversation]]:
        user_id = session.require_user()
        subscription = SnapshotSubscription(
            self._bus,
            messages_channel(user_id),
            lambda: self._snapshot(user_id),
            on_update,
        )
        logger.info("User %s subscribed to conversations", user_id)
        return await subscription.start()

import asyncio

import pytest

from marketchat.services.chat_service import ChatService
from marketchat.services.conversation_aggregator import ConversationAggregator
from marketchat.services.read_state import ReadStateTracker
from marketchat.services.subscriptions import SnapshotSubscription
from marketchat.utils.realtime_bus import messages_channel

from conftest import wait_for


@pytest.fixture
def aggregator(message_repo, bus):
    return ConversationAggregator(message_repo, bus)


@pytest.fixture
def service(message_repo, chat_repo, bus):
    return ChatService(message_repo, chat_repo, bus)


class TestConversationSubscription:

    async def test_initial_snapshot_then_update_on_send(self, aggregator, service, alice, bob):
        await service.send(bob, "alice", "is this still for sale?")
        updates = []

        subscription = await aggregator.subscribe(alice, updates.append)
        await wait_for(lambda: len(updates) >= 1)
        assert updates[0][0].counterparty_id == "bob"
        assert updates[0][0].has_unread is True

        await service.send(alice, "bob", "yes it is")
        await wait_for(lambda: any(u and u[0].last_message == "yes it is" for u in updates))
        latest = updates[-1]
        assert len(latest) == 1
        assert latest[0].has_unread is False
        await subscription.close()

    async def test_read_state_change_triggers_snapshot(self, aggregator, message_repo, bus, alice, bob, service):
        await service.send(bob, "alice", "hi")
        updates = []
        subscription = await aggregator.subscribe(alice, updates.append)
        await wait_for(lambda: len(updates) >= 1)

        await ReadStateTracker(message_repo, bus).mark_read(alice, "bob", "alice")

        await wait_for(lambda: updates[-1][0].has_unread is False)
        await subscription.close()

    async def test_close_stops_updates_and_is_idempotent(self, aggregator, service, bus, alice, bob):
        updates = []
        subscription = await aggregator.subscribe(alice, updates.append)
        await wait_for(lambda: len(updates) == 1)
        assert updates[0] == []

        await subscription.close()
        await subscription.close()
        assert subscription.closed
        assert bus.subscriber_count(messages_channel("alice")) == 0

        await service.send(bob, "alice", "anyone there?")
        await asyncio.sleep(0.05)
        assert len(updates) == 1

    async def test_async_callback(self, aggregator, service, alice, bob):
        seen = []

        async def on_update(conversations):
            await asyncio.sleep(0)
            seen.append([c.counterparty_id for c in conversations])

        await service.send(bob, "alice", "hi")
        subscription = await aggregator.subscribe(alice, on_update)
        await wait_for(lambda: seen == [["bob"]])
        await subscription.close()

    async def test_callback_may_close_its_own_subscription(self, aggregator, alice):
        holder = {}
        calls = []

        async def on_update(conversations):
            calls.append(conversations)
            await holder["sub"].close()

        holder["sub"] = await aggregator.subscribe(alice, on_update)
        await wait_for(lambda: holder["sub"].closed)
        assert len(calls) == 1


class TestSnapshotSubscription:

    async def test_snapshots_never_overlap_and_notifications_coalesce(self, bus):
        active = 0
        max_active = 0
        started = asyncio.Event()
        fetches = 0
        results = []

        async def fetch():
            nonlocal active, max_active, fetches
            fetches += 1
            active += 1
            max_active = max(max_active, active)
            started.set()
            await asyncio.sleep(0.05)
            active -= 1
            return fetches

        subscription = await SnapshotSubscription(bus, "chan", fetch, results.append).start()
        await started.wait()
        for _ in range(5):
            await bus.publish("chan", "changed")

        await wait_for(lambda: len(results) == 2)
        await asyncio.sleep(0.1)

        assert results == [1, 2]
        assert max_active == 1
        await subscription.close()

    async def test_failed_fetch_is_logged_and_subscription_survives(self, bus, caplog):
        attempts = []
        results = []

        async def fetch():
            attempts.append(1)
            if len(attempts) == 1:
                raise RuntimeError("boom")
            return "ok"

        subscription = await SnapshotSubscription(bus, "chan", fetch, results.append).start()
        await wait_for(lambda: len(attempts) == 1)
        await bus.publish("chan", "changed")
        await wait_for(lambda: results == ["ok"])

        assert "Snapshot query for chan failed" in caplog.text
        assert subscription.latest == "ok"
        await subscription.close()
        assert subscription.latest is None

"""Tests for the per-user session wiring."""
import asyncio
from dataclasses import replace

import pytest
import pytest_asyncio

from chatr.config import DeliveryConfig
from chatr.delivery import PersistentQueue, Profile
from chatr.errors import NotAuthenticatedError
from chatr.notify import NotificationPresenter
from chatr.session import ChatSession

from conftest import (
    CONVERSATION_ID,
    OTHER_CONVERSATION_ID,
    OTHER_USER_ID,
    USER_ID,
    FakeFocus,
    RecordingOSNotifier,
    RecordingSound,
    RecordingToasts,
    server_error,
)


@pytest.fixture
def toasts():
    return RecordingToasts()


@pytest.fixture
def os_notifier():
    return RecordingOSNotifier(state="default", answer="granted")


@pytest.fixture
def presenter(toasts, os_notifier):
    return NotificationPresenter(toasts, RecordingSound(), os_notifier, FakeFocus())


@pytest_asyncio.fixture
async def session(client_config, db, backend, feed, presenter, monitor, sleep):
    s = ChatSession(client_config, USER_ID, db, backend, feed, presenter, monitor=monitor, sleep=sleep)
    await s.start()
    yield s
    await s.close()


def _inbound(conversation_id: str) -> dict:
    return {
        "id": "66666666-6666-4666-8666-666666666666",
        "conversation_id": conversation_id,
        "sender_id": OTHER_USER_ID,
        "content": "ping",
    }


class TestLifecycle:
    def test_requires_user(self, client_config, db, backend, feed, presenter):
        with pytest.raises(NotAuthenticatedError):
            ChatSession(client_config, "", db, backend, feed, presenter)

    @pytest.mark.asyncio
    async def test_start_subscribes_and_asks_permission(self, session, feed, os_notifier):
        assert len(feed.handlers) == 4
        assert os_notifier.requests == 1
        assert session.listener.user_id == USER_ID

    @pytest.mark.asyncio
    async def test_close_tears_down(self, client_config, db, backend, feed, presenter, monitor):
        async with ChatSession(client_config, USER_ID, db, backend, feed, presenter, monitor=monitor) as s:
            assert feed.handlers
        assert feed.handlers == {}
        await s.queue.enqueue(CONVERSATION_ID, "after logout")
        assert s.processor.kick() is None

    @pytest.mark.asyncio
    async def test_start_drains_restored_queue(self, client_config, db, backend, feed, presenter, monitor):
        leftover = PersistentQueue(db, USER_ID)
        await leftover.load()
        await leftover.enqueue(CONVERSATION_ID, "from last run")

        async with ChatSession(client_config, USER_ID, db, backend, feed, presenter, monitor=monitor) as s:
            await s.processor.wait_idle()

        assert [r["content"] for r in backend.rows] == ["from last run"]


class TestDeliveryToasts:
    @pytest.mark.asyncio
    async def test_sent(self, session, toasts, backend):
        await session.send(CONVERSATION_ID, "hi")
        await session.processor.wait_idle()
        assert backend.rows[0]["content"] == "hi"
        assert "Message sent" in toasts.titles()

    @pytest.mark.asyncio
    async def test_queued_while_offline(self, session, toasts, monitor, backend):
        await monitor.set_online(False)
        await session.send(CONVERSATION_ID, "later")

        assert toasts.titles() == ["You are offline - messages will be queued", "Message queued"]
        assert "back online" in toasts.shown[-1].description
        assert backend.calls == 0

    @pytest.mark.asyncio
    async def test_reconnect_syncs_queue(self, session, toasts, monitor, backend):
        await monitor.set_online(False)
        await session.send(CONVERSATION_ID, "one")
        await session.send(CONVERSATION_ID, "two")

        await monitor.set_online(True)
        await session.processor.wait_idle()

        assert [r["content"] for r in backend.rows] == ["one", "two"]
        titles = toasts.titles()
        assert "Back online - syncing messages..." in titles
        assert titles.count("Message sent") == 2
        assert titles[-1] == "Synced 2 messages"

    @pytest.mark.asyncio
    async def test_failure_offers_retry(self, session, toasts, backend, sleep):
        backend.failures = [server_error()] * 3
        await session.send(CONVERSATION_ID, "doomed")
        await session.processor.wait_idle()

        failed = next(t for t in toasts.shown if t.title == "Message failed to send")
        assert failed.variant == "destructive"
        assert failed.duration is None
        assert failed.action.label == "Retry"
        assert sleep.delays == [2.0, 2.0]
        assert len(session.queue) == 0

        await failed.action.invoke()
        await session.processor.wait_idle()

        assert [r["content"] for r in backend.rows] == ["doomed"]
        assert toasts.titles()[-1] == "Message sent"

    @pytest.mark.asyncio
    async def test_flush(self, session, backend):
        await session.queue.enqueue(CONVERSATION_ID, "manual")
        result = await session.flush()
        assert result.sent == 1
        assert backend.rows[0]["content"] == "manual"


class TestInbound:
    @pytest.mark.asyncio
    async def test_message_is_presented(self, session, feed, backend, toasts):
        backend.participants.add((CONVERSATION_ID, USER_ID))
        backend.profiles[OTHER_USER_ID] = Profile(user_id=OTHER_USER_ID, username="dana")

        await feed.emit(f"messages:{USER_ID}", "INSERT", "messages", _inbound(CONVERSATION_ID))

        assert toasts.titles()[-1] == "dana"

    @pytest.mark.asyncio
    async def test_open_conversation_is_not_presented(self, session, feed, backend, toasts):
        backend.participants.add((CONVERSATION_ID, USER_ID))
        backend.participants.add((OTHER_CONVERSATION_ID, USER_ID))
        session.set_active_conversation(CONVERSATION_ID)

        await feed.emit(f"messages:{USER_ID}", "INSERT", "messages", _inbound(CONVERSATION_ID))
        assert toasts.shown == []

        await feed.emit(f"messages:{USER_ID}", "INSERT", "messages", _inbound(OTHER_CONVERSATION_ID))
        assert len(toasts.shown) == 1


class TestPeriodicSync:
    @pytest.mark.asyncio
    async def test_interval_drains_queue(self, client_config, db, backend, feed, presenter, monitor):
        config = replace(client_config, delivery=DeliveryConfig(sync_interval=0.01))
        async with ChatSession(config, USER_ID, db, backend, feed, presenter, monitor=monitor) as s:
            await s.queue.enqueue(CONVERSATION_ID, "picked up later")
            for _ in range(50):
                if backend.rows:
                    break
                await asyncio.sleep(0.01)
            await s.processor.wait_idle()

        assert [r["content"] for r in backend.rows] == ["picked up later"]

    @pytest.mark.asyncio
    async def test_interval_picks_up_messages_queued_elsewhere(
        self, client_config, db, backend, feed, presenter, monitor,
    ):
        config = replace(client_config, delivery=DeliveryConfig(sync_interval=0.01))
        async with ChatSession(config, USER_ID, db, backend, feed, presenter, monitor=monitor) as s:
            other_process = PersistentQueue(db, USER_ID)
            await other_process.load()
            await other_process.enqueue(CONVERSATION_ID, "from the cli")
            for _ in range(50):
                if backend.rows:
                    break
                await asyncio.sleep(0.01)
            await s.processor.wait_idle()

        assert [r["content"] for r in backend.rows] == ["from the cli"]
        assert await other_process.peek() == []

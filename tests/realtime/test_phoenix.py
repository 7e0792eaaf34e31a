"""Tests for the Phoenix-channel change feed."""
import asyncio
import json
import logging

import pytest
import pytest_asyncio

from chatr.errors import SubscriptionError
from chatr.realtime import ChangeFilter, PresenceTracker, RealtimeChangeFeed
from chatr.realtime import phoenix

from conftest import USER_ID


class FakeSocket:
    """Server side of the websocket: answers joins through the read loop."""

    def __init__(self, reply_status: str | None = "ok") -> None:
        self.reply_status = reply_status
        self.sent: list[dict] = []
        self.incoming: asyncio.Queue = asyncio.Queue()
        self.closed = False

    async def send(self, raw: str) -> None:
        frame = json.loads(raw)
        self.sent.append(frame)
        if frame["event"] == "phx_join" and self.reply_status is not None:
            await self.push({
                "topic": frame["topic"],
                "event": "phx_reply",
                "ref": frame["ref"],
                "payload": {"status": self.reply_status, "response": {}},
            })

    async def push(self, frame: dict) -> None:
        await self.incoming.put(json.dumps(frame))

    def __aiter__(self):
        return self

    async def __anext__(self) -> str:
        return await self.incoming.get()

    async def close(self) -> None:
        self.closed = True

    def events(self, name: str) -> list[dict]:
        return [f for f in self.sent if f["event"] == name]


@pytest.fixture
def socket():
    return FakeSocket()


@pytest.fixture
def urls(monkeypatch, socket):
    seen = []

    async def fake_connect(url):
        seen.append(url)
        return socket

    monkeypatch.setattr(phoenix.websockets, "connect", fake_connect)
    return seen


@pytest_asyncio.fixture
async def feed(urls):
    async with RealtimeChangeFeed(
        "wss://proj.supabase.co/realtime/v1/websocket", "anon-key", "user-jwt", join_timeout=0.5,
    ) as f:
        yield f


def _change(topic: str, event_type: str, record: dict) -> str:
    return json.dumps({
        "topic": topic,
        "event": "postgres_changes",
        "ref": None,
        "payload": {"data": {"type": event_type, "table": "messages", "schema": "public",
                             "record": record, "old_record": {}}},
    })


class TestConnection:
    @pytest.mark.asyncio
    async def test_connect_url_carries_key_and_protocol(self, feed, urls):
        assert urls == ["wss://proj.supabase.co/realtime/v1/websocket?apikey=anon-key&vsn=1.0.0"]
        assert feed.connected

    @pytest.mark.asyncio
    async def test_close_closes_socket(self, urls, socket):
        feed = RealtimeChangeFeed("wss://x/realtime/v1/websocket", "k", "t")
        await feed.connect()
        await feed.close()
        assert socket.closed
        assert not feed.connected

    @pytest.mark.asyncio
    async def test_subscribe_requires_connection(self):
        feed = RealtimeChangeFeed("wss://x/realtime/v1/websocket", "k", "t")

        async def handler(change):
            pass

        with pytest.raises(SubscriptionError, match="not connected"):
            await feed.subscribe("messages:u", ChangeFilter(table="messages"), handler)


class TestSubscribe:
    @pytest.mark.asyncio
    async def test_join_frame(self, feed, socket):
        async def handler(change):
            pass

        change_filter = ChangeFilter(table="notifications", filter=f"user_id=eq.{USER_ID}")
        sub = await feed.subscribe(f"notifications:{USER_ID}", change_filter, handler)

        join = socket.events("phx_join")[0]
        assert join["topic"] == f"realtime:notifications:{USER_ID}"
        assert join["join_ref"] == join["ref"] == sub.id
        assert join["payload"]["access_token"] == "user-jwt"
        assert join["payload"]["config"]["postgres_changes"] == [{
            "event": "INSERT", "schema": "public", "table": "notifications",
            "filter": f"user_id=eq.{USER_ID}",
        }]
        assert sub.channel == f"notifications:{USER_ID}"
        assert sub.filter == change_filter

    @pytest.mark.asyncio
    async def test_duplicate_channel_rejected(self, feed):
        async def handler(change):
            pass

        await feed.subscribe("messages:u", ChangeFilter(table="messages"), handler)
        with pytest.raises(SubscriptionError, match="Already subscribed"):
            await feed.subscribe("messages:u", ChangeFilter(table="messages"), handler)

    @pytest.mark.asyncio
    async def test_rejected_join_raises(self, feed, socket):
        socket.reply_status = "error"

        async def handler(change):
            pass

        with pytest.raises(SubscriptionError, match="rejected"):
            await feed.subscribe("messages:u", ChangeFilter(table="messages"), handler)

        socket.reply_status = "ok"
        await feed.subscribe("messages:u", ChangeFilter(table="messages"), handler)

    @pytest.mark.asyncio
    async def test_unanswered_join_times_out(self, feed, socket):
        socket.reply_status = None

        async def handler(change):
            pass

        with pytest.raises(SubscriptionError):
            await feed.subscribe("messages:u", ChangeFilter(table="messages"), handler)

    @pytest.mark.asyncio
    async def test_unsubscribe_sends_leave(self, feed, socket):
        received = []

        async def handler(change):
            received.append(change)

        sub = await feed.subscribe("messages:u", ChangeFilter(table="messages"), handler)
        await feed.unsubscribe(sub)
        await feed.dispatch(_change("realtime:messages:u", "INSERT", {"id": "m1"}))

        assert socket.events("phx_leave")[0]["topic"] == "realtime:messages:u"
        assert received == []


class TestDispatch:
    @pytest.mark.asyncio
    async def test_routes_change_to_handler(self, feed):
        received = []

        async def handler(change):
            received.append(change)

        await feed.subscribe("messages:u", ChangeFilter(table="messages"), handler)
        await feed.dispatch(_change("realtime:messages:u", "INSERT", {"id": "m1", "content": "hi"}))

        assert len(received) == 1
        assert received[0].event_type == "INSERT"
        assert received[0].table == "messages"
        assert received[0].new == {"id": "m1", "content": "hi"}

    @pytest.mark.asyncio
    async def test_handler_failure_is_logged(self, feed, caplog):
        async def handler(change):
            raise RuntimeError("boom")

        await feed.subscribe("messages:u", ChangeFilter(table="messages"), handler)
        with caplog.at_level(logging.ERROR, logger="chatr.realtime.phoenix"):
            await feed.dispatch(_change("realtime:messages:u", "INSERT", {"id": "m1"}))

        assert "Change handler for realtime:messages:u failed" in caplog.text

    @pytest.mark.asyncio
    async def test_unparsable_and_unknown_frames_are_dropped(self, feed):
        await feed.dispatch("not json")
        await feed.dispatch(_change("realtime:nobody", "INSERT", {"id": "m1"}))

    @pytest.mark.asyncio
    async def test_channel_close_drops_subscription(self, feed):
        received = []

        async def handler(change):
            received.append(change)

        await feed.subscribe("messages:u", ChangeFilter(table="messages"), handler)
        await feed.dispatch(json.dumps({"topic": "realtime:messages:u", "event": "phx_close",
                                        "ref": None, "payload": {}}))
        await feed.dispatch(_change("realtime:messages:u", "INSERT", {"id": "m1"}))

        assert received == []


class TestPresence:
    @pytest.mark.asyncio
    async def test_presence_events_reach_tracker(self, feed, socket):
        tracker = PresenceTracker(grace=0)
        topic = await feed.subscribe_presence("online-users", USER_ID, tracker.handle_event)

        await feed.dispatch(json.dumps({
            "topic": topic, "event": "presence_state", "ref": None,
            "payload": {"alice": {"metas": []}, "bob": {"metas": []}},
        }))
        await feed.dispatch(json.dumps({
            "topic": topic, "event": "presence_diff", "ref": None,
            "payload": {"joins": {"carol": {}}, "leaves": {"bob": {}}},
        }))

        assert tracker.snapshot() == frozenset({"alice", "carol"})
        join = socket.events("phx_join")[0]
        assert join["payload"]["config"] == {"presence": {"key": USER_ID}}

    @pytest.mark.asyncio
    async def test_track_requires_join(self, feed, socket):
        with pytest.raises(SubscriptionError):
            await feed.track("online-users", {"user_id": USER_ID})

        async def handler(event, payload):
            pass

        await feed.subscribe_presence("online-users", USER_ID, handler)
        await feed.track("online-users", {"user_id": USER_ID})

        frame = socket.events("presence")[0]
        assert frame["payload"] == {"type": "presence", "event": "track",
                                    "payload": {"user_id": USER_ID}}

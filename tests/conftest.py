"""Shared fixtures and in-memory fakes for the delivery pipeline."""
import asyncio
from pathlib import Path
from typing import Any, Optional

import pytest
import pytest_asyncio

from chatr.config import BackendConfig, ClientConfig, DeliveryConfig
from chatr.delivery import DrainResult, NetworkMonitor, PersistentQueue, Profile
from chatr.errors import DeliveryError, SubscriptionError
from chatr.notify.models import OSNotification, Toast
from chatr.realtime.feed import ChangeEvent, ChangeFilter, ChangeHandler, Subscription
from chatr.state import DatabaseManager, QueuedMessage

USER_ID = "11111111-1111-4111-8111-111111111111"
OTHER_USER_ID = "22222222-2222-4222-8222-222222222222"
CONVERSATION_ID = "33333333-3333-4333-8333-333333333333"
OTHER_CONVERSATION_ID = "44444444-4444-4444-8444-444444444444"


class FakeBackend:
    """Records inserted rows; ``failures`` are raised one per insert call."""

    def __init__(self) -> None:
        self.rows: list[dict[str, Any]] = []
        self.failures: list[Optional[Exception]] = []
        self.calls = 0
        self.on_insert = None
        self.gate: Optional[asyncio.Event] = None
        self.participants: set[tuple[str, str]] = set()
        self.participant_lookups = 0
        self.lookup_error: Optional[Exception] = None
        self.profiles: dict[str, Profile] = {}

    async def insert_message(self, row: dict[str, Any]) -> dict[str, Any]:
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.on_insert is not None:
            await self.on_insert(row)
        if self.failures:
            err = self.failures.pop(0)
            if err is not None:
                raise err
        self.rows.append(row)
        return {**row, "id": f"srv-{len(self.rows)}"}

    async def is_participant(self, conversation_id: str, user_id: str) -> bool:
        self.participant_lookups += 1
        if self.lookup_error is not None:
            raise self.lookup_error
        return (conversation_id, user_id) in self.participants

    async def get_profile(self, user_id: str) -> Optional[Profile]:
        return self.profiles.get(user_id)


class FakeChangeFeed:
    def __init__(self) -> None:
        self.handlers: dict[str, ChangeHandler] = {}
        self.filters: dict[str, ChangeFilter] = {}
        self.failing: set[str] = set()
        self.unsubscribed: list[str] = []
        self._next = 0

    async def subscribe(self, channel: str, change_filter: ChangeFilter,
                        handler: ChangeHandler) -> Subscription:
        if channel in self.failing:
            raise SubscriptionError(f"join of {channel} rejected")
        self._next += 1
        self.handlers[channel] = handler
        self.filters[channel] = change_filter
        return Subscription(id=str(self._next), channel=channel, filter=change_filter)

    async def unsubscribe(self, subscription: Subscription) -> None:
        self.handlers.pop(subscription.channel, None)
        self.filters.pop(subscription.channel, None)
        self.unsubscribed.append(subscription.channel)

    async def emit(self, channel: str, event_type: str, table: str,
                   new: dict[str, Any]) -> None:
        await self.handlers[channel](ChangeEvent(event_type=event_type, table=table, new=new))


class RecordingNotifier:
    def __init__(self) -> None:
        self.sent: list[QueuedMessage] = []
        self.queued: list[QueuedMessage] = []
        self.exhausted: list[tuple[QueuedMessage, Any]] = []
        self.drains: list[DrainResult] = []

    async def message_sent(self, message: QueuedMessage) -> None:
        self.sent.append(message)

    async def message_queued(self, message: QueuedMessage) -> None:
        self.queued.append(message)

    async def message_exhausted(self, message: QueuedMessage, retry) -> None:
        self.exhausted.append((message, retry))

    async def drain_finished(self, result: DrainResult) -> None:
        self.drains.append(result)


class RecordingSleep:
    """Stands in for asyncio.sleep so retry delays are observable and instant."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


class RecordingToasts:
    def __init__(self) -> None:
        self.shown: list[Toast] = []
        self.dismissed: list[str] = []
        self.fail = False

    async def show(self, toast: Toast) -> None:
        if self.fail:
            raise RuntimeError("toast surface gone")
        self.shown.append(toast)

    async def dismiss(self, toast_id: str) -> None:
        self.dismissed.append(toast_id)

    def titles(self) -> list[str]:
        return [t.title for t in self.shown]


class RecordingSound:
    def __init__(self, missing: tuple[str, ...] = ()) -> None:
        self.played: list[str] = []
        self.missing = set(missing)

    async def play(self, sound: str) -> None:
        if sound in self.missing:
            raise FileNotFoundError(f"/sounds/{sound}.mp3")
        self.played.append(sound)


class RecordingOSNotifier:
    def __init__(self, state: str = "granted", answer: str = "granted") -> None:
        self.state = state
        self.answer = answer
        self.requests = 0
        self.shown: list[OSNotification] = []
        self.closed: list[OSNotification] = []

    def permission(self) -> str:
        return self.state

    async def request_permission(self) -> str:
        self.requests += 1
        self.state = self.answer
        return self.state

    async def show(self, notification: OSNotification) -> None:
        self.shown.append(notification)

    async def close(self, notification: OSNotification) -> None:
        self.closed.append(notification)


class FakeFocus:
    def __init__(self, focused: bool = False) -> None:
        self.focused = focused
        self.focus_calls = 0

    def is_focused(self) -> bool:
        return self.focused

    async def focus(self) -> None:
        self.focus_calls += 1
        self.focused = True


@pytest_asyncio.fixture
async def db(tmp_path: Path):
    manager = DatabaseManager(tmp_path / "chatr.db")
    await manager.initialize()
    yield manager
    await manager.close()


@pytest_asyncio.fixture
async def queue(db):
    q = PersistentQueue(db, USER_ID)
    await q.load()
    return q


@pytest.fixture
def monitor() -> NetworkMonitor:
    return NetworkMonitor()


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def feed() -> FakeChangeFeed:
    return FakeChangeFeed()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def client_config(tmp_path: Path) -> ClientConfig:
    return ClientConfig(
        backend=BackendConfig(url="https://proj.supabase.co", api_key="anon-key"),
        delivery=DeliveryConfig(sync_interval=0),
        db_path=tmp_path / "chatr.db",
    )


def server_error(status: int = 500) -> DeliveryError:
    return DeliveryError(f"backend returned {status}", status)

"""One signed-in user's delivery and notification pipeline.

``ChatSession`` owns the persistent queue, the delivery processor and the
inbound listener, and routes their outcomes to the presenter. Closing the
session (logout) tears all of it down.
"""
import asyncio
import logging
from typing import Optional

from chatr.config import ClientConfig
from chatr.delivery.backend import MessageBackend
from chatr.delivery.network import NetworkMonitor
from chatr.delivery.processor import DeliveryProcessor, DrainResult, RetryAction, Sleep
from chatr.delivery.queue import PersistentQueue
from chatr.errors import NotAuthenticatedError, SubscriptionError
from chatr.notify.models import Toast, ToastAction
from chatr.notify.presenter import NotificationPresenter
from chatr.realtime.events import InboundEvent
from chatr.realtime.feed import ChangeFeed
from chatr.realtime.listener import InboundListener
from chatr.realtime.phoenix import RealtimeChangeFeed
from chatr.realtime.presence import PresenceTracker
from chatr.state.database import DatabaseManager
from chatr.state.models.queued import QueuedMessage

logger = logging.getLogger(__name__)

PRESENCE_CHANNEL = "online-users"


class ChatSession:
    """Delivery and notification pipeline for ``user_id``.

    Usage:
        async with ChatSession(config, user_id, db, backend, feed, presenter) as session:
            await session.send(conversation_id, "hello")
    """

    def __init__(
        self,
        config: ClientConfig,
        user_id: str,
        db: DatabaseManager,
        backend: MessageBackend,
        feed: ChangeFeed,
        presenter: NotificationPresenter,
        monitor: Optional[NetworkMonitor] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if not user_id:
            raise NotAuthenticatedError("A signed-in user is required")
        self._config = config
        self._user_id = user_id
        self._feed = feed
        self._presenter = presenter
        self._monitor = monitor or NetworkMonitor()
        self._queue = PersistentQueue(db, user_id)
        self._processor = DeliveryProcessor(
            self._queue, self._monitor, backend, user_id,
            notifier=self, config=config.delivery, sleep=sleep,
        )
        self._listener = InboundListener(feed, backend, self._on_inbound)
        self._presence = PresenceTracker(config.presence.offline_grace)
        self._presence_topic: Optional[str] = None
        self._active_conversation: Optional[str] = None
        self._sync_task: Optional[asyncio.Task] = None
        self._started = False

    async def __aenter__(self) -> "ChatSession":
        await self.start()
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()

    @property
    def user_id(self) -> str:
        return self._user_id

    @property
    def queue(self) -> PersistentQueue:
        return self._queue

    @property
    def processor(self) -> DeliveryProcessor:
        return self._processor

    @property
    def listener(self) -> InboundListener:
        return self._listener

    @property
    def monitor(self) -> NetworkMonitor:
        return self._monitor

    @property
    def presence(self) -> PresenceTracker:
        return self._presence

    @property
    def active_conversation(self) -> Optional[str]:
        return self._active_conversation

    def set_active_conversation(self, conversation_id: Optional[str]) -> None:
        """Messages for the open conversation are not notified."""
        self._active_conversation = conversation_id

    async def start(self) -> None:
        if self._started:
            return
        self._started = True
        pending = await self._queue.load()
        if pending:
            logger.info("Restored %d queued message(s) for %s", len(pending), self._user_id)
        self._monitor.add_listener(self._on_connectivity)
        await self._presenter.ensure_permission()
        await self._listener.set_identity(self._user_id)
        if isinstance(self._feed, RealtimeChangeFeed):
            await self._join_presence(self._feed)
        interval = self._config.delivery.sync_interval
        if interval > 0:
            self._sync_task = asyncio.create_task(self._periodic_sync(interval))
        self._processor.kick()

    async def close(self) -> None:
        """Stop delivery, drop subscriptions and cancel timers."""
        if not self._started:
            return
        self._started = False
        if self._sync_task is not None:
            self._sync_task.cancel()
            try:
                await self._sync_task
            except asyncio.CancelledError:
                pass
            self._sync_task = None
        self._monitor.remove_listener(self._on_connectivity)
        await self._processor.stop()
        await self._listener.stop()
        if self._presence_topic is not None and isinstance(self._feed, RealtimeChangeFeed):
            await self._feed.leave(self._presence_topic)
            self._presence_topic = None
        self._presence.close()
        await self._presenter.close()
        logger.info("Session for %s closed", self._user_id)

    async def send(
        self,
        conversation_id: str,
        content: str,
        message_type: str = "text",
        media_url: Optional[str] = None,
    ) -> QueuedMessage:
        return await self._processor.send(conversation_id, content, message_type, media_url)

    async def flush(self) -> DrainResult:
        """Run a drain pass now, waiting for any scheduled one first."""
        await self._processor.wait_idle()
        return await self._processor.drain()

    # DeliveryNotifier

    async def message_sent(self, message: QueuedMessage) -> None:
        await self._presenter.toast(Toast(title="Message sent", variant="success",
                                          data={"message_id": message.id}))

    async def message_queued(self, message: QueuedMessage) -> None:
        await self._presenter.toast(Toast(
            title="Message queued",
            description="Your message will send when you are back online.",
            data={"message_id": message.id},
        ))

    async def message_exhausted(self, message: QueuedMessage, retry: RetryAction) -> None:
        await self._presenter.toast(Toast(
            title="Message failed to send",
            description=f"Gave up after {message.retry_count} attempts.",
            variant="destructive",
            duration=None,
            action=ToastAction(label="Retry", callback=retry),
            data={"message_id": message.id, "conversation_id": message.conversation_id},
        ))

    async def drain_finished(self, result: DrainResult) -> None:
        if result.sent > 1:
            await self._presenter.toast(Toast(title=f"Synced {result.sent} messages", variant="success"))

    async def _on_inbound(self, event: InboundEvent) -> None:
        await self._presenter.present(event, self._active_conversation)

    async def _on_connectivity(self, online: bool) -> None:
        if online:
            await self._presenter.toast(Toast(title="Back online - syncing messages..."))
        else:
            await self._presenter.toast(Toast(
                title="You are offline - messages will be queued", variant="warning",
            ))

    async def _join_presence(self, feed: RealtimeChangeFeed) -> None:
        try:
            self._presence_topic = await feed.subscribe_presence(
                PRESENCE_CHANNEL, self._user_id, self._presence.handle_event,
            )
            await feed.track(PRESENCE_CHANNEL, {"user_id": self._user_id})
        except SubscriptionError as e:
            logger.error("Presence unavailable: %s", e)

    async def _periodic_sync(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            if not self._monitor.online:
                continue
            # Another process may have queued or delivered messages meanwhile.
            await self._queue.load()
            if len(self._queue):
                self._processor.kick()

"""Short-lived delivery pipeline for one CLI invocation."""

from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator

from chatr.cli.utils.config import CliConfig
from chatr.delivery import DeliveryProcessor, DrainResult, NetworkMonitor, PersistentQueue, RestMessageBackend
from chatr.delivery.processor import RetryAction
from chatr.state import DatabaseManager, QueuedMessage


@dataclass
class CollectingNotifier:
    """Records delivery outcomes so a command can report them on exit."""

    sent: list[QueuedMessage] = field(default_factory=list)
    queued: list[QueuedMessage] = field(default_factory=list)
    exhausted: list[QueuedMessage] = field(default_factory=list)
    drains: list[DrainResult] = field(default_factory=list)

    async def message_sent(self, message: QueuedMessage) -> None:
        self.sent.append(message)

    async def message_queued(self, message: QueuedMessage) -> None:
        self.queued.append(message)

    async def message_exhausted(self, message: QueuedMessage, retry: RetryAction) -> None:
        self.exhausted.append(message)

    async def drain_finished(self, result: DrainResult) -> None:
        self.drains.append(result)


@dataclass
class Pipeline:
    queue: PersistentQueue
    processor: DeliveryProcessor
    notifier: CollectingNotifier


@asynccontextmanager
async def delivery_pipeline(config: CliConfig, online: bool = True) -> AsyncIterator[Pipeline]:
    """Open the local queue and, when *online*, the backend for delivery."""
    token = config.require_token() if online else (config.access_token or "")
    client_config = config.to_client_config()
    db = DatabaseManager(config.db_path)
    await db.initialize()
    try:
        queue = PersistentQueue(db, config.user_id)
        await queue.load()
        monitor = NetworkMonitor(initially_online=online)
        notifier = CollectingNotifier()
        async with RestMessageBackend(client_config.backend, token) as backend:
            processor = DeliveryProcessor(
                queue, monitor, backend, config.user_id, notifier, client_config.delivery,
            )
            try:
                yield Pipeline(queue=queue, processor=processor, notifier=notifier)
            finally:
                await processor.stop()
    finally:
        await db.close()

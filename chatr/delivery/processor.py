"""Delivery processor: drains the persistent queue to the backend.

Only one drain pass runs at a time. Messages are attempted in enqueue
order; a failing message is retried after a fixed delay until it either
succeeds or reaches ``max_retries``, so later messages wait behind it.
Exhausted messages move to the failed list and are reported with a retry
action. Each attempt first claims the message in storage, so processes
sharing a queue never deliver the same message twice.
"""
import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Protocol

from chatr.config import DeliveryConfig
from chatr.delivery.backend import MessageBackend, build_message_row
from chatr.delivery.network import NetworkMonitor
from chatr.delivery.queue import PersistentQueue
from chatr.errors import DeliveryError
from chatr.state.models.queued import QueuedMessage

logger = logging.getLogger(__name__)

RetryAction = Callable[[], Awaitable[QueuedMessage]]
Sleep = Callable[[float], Awaitable[Any]]


class ProcessorState(Enum):
    IDLE = "idle"
    DRAINING = "draining"
    BACKOFF = "backoff"
    EXHAUSTED = "exhausted"


class _Outcome(Enum):
    SENT = "sent"
    EXHAUSTED = "exhausted"
    DEFERRED = "deferred"
    DROPPED = "dropped"


@dataclass(frozen=True)
class DrainResult:
    sent: int = 0
    exhausted: int = 0
    remaining: int = 0
    skipped: bool = False


def _log_drain_failure(task: asyncio.Task) -> None:
    if not task.cancelled() and task.exception() is not None:
        logger.error("Drain pass failed: %s", task.exception())


class DeliveryNotifier(Protocol):
    async def message_sent(self, message: QueuedMessage) -> None: ...

    async def message_queued(self, message: QueuedMessage) -> None: ...

    async def message_exhausted(self, message: QueuedMessage, retry: RetryAction) -> None: ...

    async def drain_finished(self, result: DrainResult) -> None: ...


class DeliveryProcessor:
    """Moves queued messages to the backend while the network is up."""

    def __init__(
        self,
        queue: PersistentQueue,
        monitor: NetworkMonitor,
        backend: MessageBackend,
        sender_id: str,
        notifier: DeliveryNotifier,
        config: Optional[DeliveryConfig] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._queue = queue
        self._monitor = monitor
        self._backend = backend
        self._sender_id = sender_id
        self._notifier = notifier
        self._config = config or DeliveryConfig()
        self._sleep = sleep
        self._state = ProcessorState.IDLE
        self._backoff_attempt = 0
        self._draining = False
        self._rerun = False
        self._stopping = False
        self._task: Optional[asyncio.Task] = None
        self._owner = uuid.uuid4().hex
        monitor.add_listener(self._on_connectivity)

    @property
    def state(self) -> ProcessorState:
        return self._state

    @property
    def backoff_attempt(self) -> int:
        """Retry count of the message currently waiting out its delay."""
        return self._backoff_attempt

    @property
    def is_draining(self) -> bool:
        return self._draining

    async def send(
        self,
        conversation_id: str,
        content: str,
        message_type: str = "text",
        media_url: Optional[str] = None,
    ) -> QueuedMessage:
        """Queue a message and start delivery if the network allows."""
        message = await self._queue.enqueue(conversation_id, content, message_type, media_url)
        if self._monitor.online:
            self.kick()
        else:
            await self._notifier.message_queued(message)
        return message

    def kick(self) -> Optional[asyncio.Task]:
        """Schedule a drain pass unless one is already pending or running.

        A kick that lands while the scheduled task is busy asks it for one
        more pass instead of starting a second task.
        """
        if self._task is not None and not self._task.done():
            self._rerun = True
            return self._task
        if self._stopping or not self._monitor.online or not len(self._queue):
            return None
        self._task = asyncio.get_running_loop().create_task(self._run())
        self._task.add_done_callback(_log_drain_failure)
        return self._task

    async def _run(self) -> DrainResult:
        while True:
            self._rerun = False
            result = await self.drain()
            if not self._rerun or self._stopping:
                return result

    async def wait_idle(self) -> None:
        if self._task is not None:
            await self._task

    async def drain(self) -> DrainResult:
        """Deliver queued messages until the queue empties or the network drops."""
        if self._draining:
            return DrainResult(remaining=len(self._queue), skipped=True)
        self._draining = True
        self._state = ProcessorState.DRAINING
        sent = exhausted = 0
        logger.info("Draining %d queued message(s)", len(self._queue))
        try:
            while not self._stopping and self._monitor.online:
                pending = self._queue.all()
                if not pending:
                    break
                outcome = await self._deliver(pending[0])
                if outcome is _Outcome.SENT:
                    sent += 1
                elif outcome is _Outcome.EXHAUSTED:
                    exhausted += 1
                elif outcome is _Outcome.DEFERRED:
                    break
        finally:
            self._draining = False
            self._state = ProcessorState.IDLE
            self._backoff_attempt = 0
        result = DrainResult(sent=sent, exhausted=exhausted, remaining=len(self._queue))
        logger.info(
            "Drain finished: sent=%d exhausted=%d remaining=%d",
            result.sent, result.exhausted, result.remaining,
        )
        await self._queue.record_sync(result.remaining)
        await self._notifier.drain_finished(result)
        return result

    async def retry_exhausted(self, message: QueuedMessage) -> QueuedMessage:
        """Put an exhausted message back on the queue with a clean retry count."""
        requeued = await self._queue.enqueue(
            message.conversation_id, message.content, message.message_type, message.media_url,
        )
        await self._queue.forget_failed(message.id)
        logger.info("Re-queued exhausted message %s as %s", message.id, requeued.id)
        self.kick()
        return requeued

    async def send_with_retry(
        self,
        conversation_id: str,
        content: str,
        message_type: str = "text",
        media_url: Optional[str] = None,
    ) -> dict[str, Any]:
        """Write a message directly, bypassing the queue.

        Makes one attempt plus up to ``max_retries`` retries, waiting
        ``backoff_base * 2**n`` seconds before retry n+1 (1s, 2s, 4s).

        Raises:
            DeliveryError: The last failure once all attempts are spent.
        """
        message = QueuedMessage(
            id=str(uuid.uuid4()),
            conversation_id=conversation_id,
            content=content,
            message_type=message_type,
            media_url=media_url,
            created_at=datetime.now(timezone.utc),
        )
        row = build_message_row(message, self._sender_id)
        for attempt in range(self._config.max_retries):
            try:
                return await self._backend.insert_message(row)
            except DeliveryError as e:
                logger.warning("Direct send failed (attempt %d): %s", attempt + 1, e)
                await self._sleep(self._config.backoff_base * (2 ** attempt))
        return await self._backend.insert_message(row)

    async def stop(self) -> None:
        """Finish the in-flight attempt, then end the current pass."""
        self._stopping = True
        self._monitor.remove_listener(self._on_connectivity)
        if self._task is not None and not self._task.done():
            await self._task

    async def _on_connectivity(self, online: bool) -> None:
        if online:
            self.kick()

    async def _deliver(self, head: QueuedMessage) -> _Outcome:
        lease = timedelta(seconds=self._config.claim_lease)
        while True:
            if self._stopping or not self._monitor.online:
                await self._queue.release(head.id, self._owner)
                return _Outcome.DEFERRED
            message = await self._queue.claim(head.id, self._owner, lease)
            if message is None:
                if self._queue.get(head.id) is None:
                    logger.info("%s left the queue before delivery", head.id)
                    return _Outcome.DROPPED
                logger.info("%s is being delivered by another process", head.id)
                return _Outcome.DEFERRED
            try:
                await self._backend.insert_message(build_message_row(message, self._sender_id))
            except DeliveryError as e:
                if not self._monitor.online:
                    logger.info("Went offline while sending %s; leaving it queued", message.id)
                    await self._queue.release(message.id, self._owner)
                    return _Outcome.DEFERRED
                message = message.with_retry_count(message.retry_count + 1)
                logger.warning(
                    "Delivery of %s failed (attempt %d/%d): %s",
                    message.id, message.retry_count, self._config.max_retries, e,
                )
                if message.retry_count >= self._config.max_retries:
                    return await self._exhaust(message)
                if not await self._queue.update(message):
                    return _Outcome.DROPPED
                self._state = ProcessorState.BACKOFF
                self._backoff_attempt = message.retry_count
                await self._sleep(self._config.retry_delay)
                self._state = ProcessorState.DRAINING
                head = message
                continue
            await self._queue.drain(message.id)
            await self._notifier.message_sent(message)
            return _Outcome.SENT

    async def _exhaust(self, message: QueuedMessage) -> _Outcome:
        if not await self._queue.drain(message.id):
            return _Outcome.DROPPED
        await self._queue.record_failed(message)
        self._state = ProcessorState.EXHAUSTED
        logger.error(
            "Giving up on %s after %d attempts", message.id, message.retry_count,
        )

        async def retry() -> QueuedMessage:
            return await self.retry_exhausted(message)

        await self._notifier.message_exhausted(message, retry)
        self._state = ProcessorState.DRAINING
        return _Outcome.EXHAUSTED

"""Supabase Realtime change-feed over the Phoenix channel protocol."""
import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import websockets
from websockets.exceptions import ConnectionClosed

from chatr.errors import SubscriptionError
from chatr.logs import sanitize_dict
from chatr.realtime.feed import ChangeEvent, ChangeFilter, ChangeHandler, Subscription

logger = logging.getLogger(__name__)

PROTOCOL_VSN = "1.0.0"
PresenceHandler = Callable[[str, dict[str, Any]], Awaitable[None]]


@dataclass
class _Channel:
    topic: str
    join_ref: str
    handler: Optional[ChangeHandler] = None
    presence_handler: Optional[PresenceHandler] = None


class RealtimeChangeFeed:
    """Realtime client. Must be used as async context manager.

    Each ``subscribe`` call joins one channel topic carrying a single
    ``postgres_changes`` binding. Failed joins are raised to the caller and
    not retried.
    """

    def __init__(self, url: str, api_key: str, access_token: str,
                 heartbeat_interval: float = 30.0, join_timeout: float = 10.0) -> None:
        self._url = url
        self._api_key = api_key
        self._access_token = access_token
        self._heartbeat_interval = heartbeat_interval
        self._join_timeout = join_timeout
        self._ws: Any = None
        self._ref = 0
        self._channels: dict[str, _Channel] = {}
        self._pending: dict[str, asyncio.Future] = {}
        self._tasks: list[asyncio.Task] = []

    async def __aenter__(self) -> "RealtimeChangeFeed":
        await self.connect()
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()

    @property
    def connected(self) -> bool:
        return self._ws is not None

    async def connect(self) -> None:
        self._ws = await websockets.connect(f"{self._url}?apikey={self._api_key}&vsn={PROTOCOL_VSN}")
        self._tasks = [
            asyncio.create_task(self._read_loop()),
            asyncio.create_task(self._heartbeat_loop()),
        ]
        logger.info("Realtime connected")

    async def close(self) -> None:
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []
        for fut in self._pending.values():
            if not fut.done():
                fut.cancel()
        self._pending.clear()
        self._channels.clear()
        if self._ws is not None:
            await self._ws.close()
            self._ws = None

    async def subscribe(self, channel: str, change_filter: ChangeFilter,
                        handler: ChangeHandler) -> Subscription:
        config = {"postgres_changes": [change_filter.to_config()]}
        join_ref = await self._join(channel, config, _Channel(topic="", join_ref="", handler=handler))
        return Subscription(id=join_ref, channel=channel, filter=change_filter)

    async def subscribe_presence(self, channel: str, key: str,
                                 handler: PresenceHandler) -> str:
        """Join a presence channel; returns the topic for ``leave``."""
        config = {"presence": {"key": key}}
        await self._join(channel, config, _Channel(topic="", join_ref="", presence_handler=handler))
        return f"realtime:{channel}"

    async def track(self, channel: str, meta: dict[str, Any]) -> None:
        """Announce this client on a joined presence channel."""
        topic = f"realtime:{channel}"
        if topic not in self._channels:
            raise SubscriptionError(f"Not joined to {topic}")
        await self._send(topic, "presence", {"type": "presence", "event": "track", "payload": meta})

    async def unsubscribe(self, subscription: Subscription) -> None:
        await self.leave(f"realtime:{subscription.channel}")

    async def leave(self, topic: str) -> None:
        if self._channels.pop(topic, None) is None:
            return
        if self._ws is None:
            return
        try:
            await self._send(topic, "phx_leave", {})
        except ConnectionClosed:
            logger.debug("Connection closed before leaving %s", topic)

    async def _join(self, channel: str, config: dict[str, Any], state: _Channel) -> str:
        if self._ws is None:
            raise SubscriptionError("Realtime feed not connected")
        topic = f"realtime:{channel}"
        if topic in self._channels:
            raise SubscriptionError(f"Already subscribed to {topic}")
        ref = self._next_ref()
        state.topic = topic
        state.join_ref = ref
        fut: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending[ref] = fut
        self._channels[topic] = state
        payload = {"config": config, "access_token": self._access_token}
        logger.debug("Joining %s with %s", topic, sanitize_dict(payload))
        try:
            await self._send(topic, "phx_join", payload, ref=ref, join_ref=ref)
            reply = await asyncio.wait_for(fut, self._join_timeout)
        except (asyncio.TimeoutError, ConnectionClosed) as e:
            self._channels.pop(topic, None)
            raise SubscriptionError(f"Join of {topic} failed: {e!r}") from e
        finally:
            self._pending.pop(ref, None)
        if reply.get("status") != "ok":
            self._channels.pop(topic, None)
            raise SubscriptionError(f"Join of {topic} rejected: {reply.get('response')}")
        logger.debug("Joined %s", topic)
        return ref

    def _next_ref(self) -> str:
        self._ref += 1
        return str(self._ref)

    async def _send(self, topic: str, event: str, payload: dict[str, Any],
                    ref: Optional[str] = None, join_ref: Optional[str] = None) -> None:
        frame = {"topic": topic, "event": event, "payload": payload, "ref": ref or self._next_ref()}
        if join_ref is not None:
            frame["join_ref"] = join_ref
        await self._ws.send(json.dumps(frame))

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self._heartbeat_interval)
            try:
                await self._send("phoenix", "heartbeat", {})
            except ConnectionClosed:
                logger.warning("Realtime connection closed; heartbeat stopped")
                return

    async def _read_loop(self) -> None:
        try:
            async for raw in self._ws:
                await self.dispatch(raw)
        except ConnectionClosed as e:
            logger.warning("Realtime connection closed: %s", e)

    async def dispatch(self, raw: str | bytes) -> None:
        """Route one incoming frame."""
        try:
            frame = json.loads(raw)
        except ValueError:
            logger.debug("Dropping unparsable frame")
            return
        event = frame.get("event")
        topic = frame.get("topic", "")
        payload = frame.get("payload") or {}

        if event == "phx_reply":
            fut = self._pending.get(frame.get("ref") or "")
            if fut is not None and not fut.done():
                fut.set_result(payload)
            elif payload.get("status") == "error":
                logger.error("Channel %s error: %s", topic, payload.get("response"))
            return

        channel = self._channels.get(topic)
        if channel is None:
            if topic != "phoenix":
                logger.debug("Dropping %s for unknown topic %s", event, topic)
            return

        if event == "postgres_changes" and channel.handler is not None:
            data = payload.get("data") or {}
            change = ChangeEvent(
                event_type=data.get("type", ""),
                table=data.get("table", ""),
                schema=data.get("schema", "public"),
                new=data.get("record") or {},
                old=data.get("old_record") or {},
            )
            try:
                await channel.handler(change)
            except Exception:
                logger.exception("Change handler for %s failed", topic)
        elif event in ("presence_state", "presence_diff") and channel.presence_handler is not None:
            try:
                await channel.presence_handler(event, payload)
            except Exception:
                logger.exception("Presence handler for %s failed", topic)
        elif event in ("phx_error", "phx_close"):
            logger.error("Channel %s closed by server (%s)", topic, event)
            self._channels.pop(topic, None)
        elif event == "system" and payload.get("status") == "error":
            logger.error("Channel %s subscription failed: %s", topic, payload.get("message"))

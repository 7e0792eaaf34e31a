"""Realtime inbound listener.

Subscribes to new messages, incoming calls, appointment changes and
module notifications for the current user. The messages feed is not filtered
server-side (participation cannot be expressed as an equality filter),
so every message event is checked against conversation membership here.
"""
import logging
from typing import Awaitable, Callable, Optional

from pydantic import ValidationError

from chatr.delivery.backend import MessageBackend, Profile
from chatr.errors import DeliveryError, SubscriptionError
from chatr.realtime.events import CALL_CANCELLED_CATEGORY, CALL_CATEGORY, InboundEvent, InboundKind
from chatr.realtime.feed import ChangeEvent, ChangeFeed, ChangeFilter, ChangeHandler, Subscription
from chatr.realtime.models import AppointmentRow, CallRow, MessageRow, NotificationRow

logger = logging.getLogger(__name__)

InboundHandler = Callable[[InboundEvent], Awaitable[None]]

_MEDIA_LABELS = {
    "image": "Sent a photo",
    "video": "Sent a video",
    "audio": "Sent a voice message",
    "voice": "Sent a voice message",
    "file": "Sent a file",
    "document": "Sent a document",
    "location": "Shared a location",
    "poll": "Created a poll",
}


def _message_body(row: MessageRow) -> str:
    if row.content:
        return row.content
    return _MEDIA_LABELS.get(row.message_type, "New message")


class InboundListener:
    """Turns change-feed rows into InboundEvents for one identity at a time."""

    def __init__(self, feed: ChangeFeed, backend: MessageBackend, handler: InboundHandler) -> None:
        self._feed = feed
        self._backend = backend
        self._handler = handler
        self._user_id: Optional[str] = None
        self._subscriptions: list[Subscription] = []
        self._conversations: set[str] = set()
        self._profiles: dict[str, Optional[Profile]] = {}
        self._ringing: set[str] = set()

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def subscriptions(self) -> list[Subscription]:
        return list(self._subscriptions)

    async def set_identity(self, user_id: Optional[str]) -> None:
        """Switch to *user_id*, tearing down the previous subscriptions first."""
        await self.stop()
        if not user_id:
            return
        self._user_id = user_id
        for channel, change_filter, handler in self._bindings(user_id):
            try:
                sub = await self._feed.subscribe(channel, change_filter, handler)
            except SubscriptionError as e:
                logger.error("Subscription to %s failed: %s", channel, e)
                continue
            self._subscriptions.append(sub)
        logger.info("Listening for %s on %d channel(s)", user_id, len(self._subscriptions))

    async def stop(self) -> None:
        subs, self._subscriptions = self._subscriptions, []
        self._user_id = None
        self._conversations.clear()
        self._profiles.clear()
        self._ringing.clear()
        for sub in subs:
            try:
                await self._feed.unsubscribe(sub)
            except SubscriptionError as e:
                logger.warning("Unsubscribe from %s failed: %s", sub.channel, e)

    def _bindings(self, user_id: str) -> list[tuple[str, ChangeFilter, ChangeHandler]]:
        return [
            (f"messages:{user_id}", ChangeFilter(table="messages", event="INSERT"), self._on_message),
            (f"calls:{user_id}",
             ChangeFilter(table="calls", event="*", filter=f"receiver_id=eq.{user_id}"),
             self._on_call),
            (f"appointments:{user_id}",
             ChangeFilter(table="appointments", event="*", filter=f"patient_id=eq.{user_id}"),
             self._on_appointment),
            (f"notifications:{user_id}",
             ChangeFilter(table="notifications", event="INSERT", filter=f"user_id=eq.{user_id}"),
             self._on_notification),
        ]

    async def _on_message(self, change: ChangeEvent) -> None:
        user_id = self._user_id
        if user_id is None:
            return
        try:
            row = MessageRow.model_validate(change.new)
        except ValidationError as e:
            logger.debug("Dropping malformed message row: %s", e)
            return
        if row.sender_id == user_id:
            return
        if not await self._is_participant(row.conversation_id, user_id):
            return
        profile = await self._profile(row.sender_id)
        title = profile.display_name if profile else "New message"
        # Identity may have changed while we were awaiting lookups.
        if self._user_id != user_id:
            return
        await self._handler(InboundEvent(
            kind=InboundKind.MESSAGE,
            payload=change.new,
            origin_user_id=row.sender_id,
            conversation_id=row.conversation_id,
            title=title,
            body=_message_body(row),
            event_type=change.event_type,
            category="message",
            data={"conversation_id": row.conversation_id, "message_id": row.id,
                  "route": f"/chat/{row.conversation_id}"},
        ))

    async def _on_call(self, change: ChangeEvent) -> None:
        """Ring for new incoming calls; report calls the caller gave up on."""
        user_id = self._user_id
        if user_id is None:
            return
        try:
            row = CallRow.model_validate(change.new)
        except ValidationError as e:
            logger.debug("Dropping malformed call row: %s", e)
            return
        if row.caller_id == user_id:
            return
        if change.event_type == "INSERT":
            if row.status != "ringing":
                return
            profile = await self._profile(row.caller_id)
            if self._user_id != user_id:
                return
            name = (profile.username if profile else None) or row.caller_name or "Unknown"
            self._ringing.add(row.id)
            title, body, category = f"Incoming {row.call_type} call", f"{name} is calling...", CALL_CATEGORY
        elif change.event_type == "UPDATE":
            if row.id not in self._ringing or row.status == "ringing":
                return
            self._ringing.discard(row.id)
            # Answered or declined: the ringing notification is simply over.
            if row.status not in ("ended", "missed"):
                return
            title, body, category = "Call cancelled", "The caller cancelled the call", CALL_CANCELLED_CATEGORY
        else:
            return
        await self._handler(InboundEvent(
            kind=InboundKind.CALL,
            payload=change.new,
            origin_user_id=row.caller_id,
            conversation_id=row.conversation_id,
            title=title,
            body=body,
            event_type=change.event_type,
            category=category,
            data={"call_id": row.id, "route": f"/call/{row.id}"},
        ))

    async def _on_appointment(self, change: ChangeEvent) -> None:
        user_id = self._user_id
        if user_id is None:
            return
        try:
            row = AppointmentRow.model_validate(change.new)
        except ValidationError as e:
            logger.debug("Dropping malformed appointment row: %s", e)
            return
        if change.event_type == "INSERT":
            title, body = "Appointment Confirmed", "Your appointment has been scheduled."
        elif change.event_type == "UPDATE":
            title = f"Appointment Updated: status={row.status}"
            body = "Your appointment details have changed."
        else:
            return
        await self._handler(InboundEvent(
            kind=InboundKind.APPOINTMENT,
            payload=change.new,
            origin_user_id=row.provider_id,
            title=title,
            body=body,
            event_type=change.event_type,
            category="appointment",
            data={"appointment_id": row.id, "route": f"/appointments/{row.id}"},
        ))

    async def _on_notification(self, change: ChangeEvent) -> None:
        if self._user_id is None:
            return
        try:
            row = NotificationRow.model_validate(change.new)
        except ValidationError as e:
            logger.debug("Dropping malformed notification row: %s", e)
            return
        await self._handler(InboundEvent(
            kind=InboundKind.NOTIFICATION,
            payload=change.new,
            title=row.title,
            body=row.message,
            event_type=change.event_type,
            category=row.type,
            data=dict(row.data or {}),
        ))

    async def _is_participant(self, conversation_id: str, user_id: str) -> bool:
        if conversation_id in self._conversations:
            return True
        try:
            member = await self._backend.is_participant(conversation_id, user_id)
        except DeliveryError as e:
            logger.warning("Participation lookup for %s failed: %s", conversation_id, e)
            return False
        if member and self._user_id == user_id:
            self._conversations.add(conversation_id)
        return member

    async def _profile(self, user_id: str) -> Optional[Profile]:
        if user_id in self._profiles:
            return self._profiles[user_id]
        try:
            profile = await self._backend.get_profile(user_id)
        except DeliveryError as e:
            logger.debug("Profile lookup for %s failed: %s", user_id, e)
            return None
        self._profiles[user_id] = profile
        return profile

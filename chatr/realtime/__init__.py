"""Realtime change-feed, inbound listener and presence."""
from chatr.realtime.events import InboundEvent, InboundKind
from chatr.realtime.feed import ChangeEvent, ChangeFeed, ChangeFilter, Subscription
from chatr.realtime.listener import InboundListener
from chatr.realtime.phoenix import RealtimeChangeFeed
from chatr.realtime.presence import PresenceTracker

__all__ = [
    "InboundEvent", "InboundKind",
    "ChangeEvent", "ChangeFeed", "ChangeFilter", "Subscription",
    "InboundListener",
    "RealtimeChangeFeed",
    "PresenceTracker",
]

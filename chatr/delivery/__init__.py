"""Outbound delivery: persistent queue, network monitor and processor."""
from chatr.delivery.backend import MessageBackend, Profile, RestMessageBackend, build_message_row
from chatr.delivery.network import NetworkMonitor
from chatr.delivery.processor import DeliveryNotifier, DeliveryProcessor, DrainResult, ProcessorState
from chatr.delivery.queue import PersistentQueue, failed_key, queue_key

__all__ = [
    "MessageBackend", "Profile", "RestMessageBackend", "build_message_row",
    "NetworkMonitor",
    "DeliveryNotifier", "DeliveryProcessor", "DrainResult", "ProcessorState",
    "PersistentQueue", "failed_key", "queue_key",
]

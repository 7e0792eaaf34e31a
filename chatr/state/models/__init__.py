"""State models."""
from chatr.state.models.queued import QueuedMessage
from chatr.state.models.stored import StoredValue
__all__ = [
    "QueuedMessage",
    "StoredValue",
]

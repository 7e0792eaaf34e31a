"""Durable local storage."""
from chatr.state.database import DatabaseManager, DatabaseError
from chatr.state.models import QueuedMessage, StoredValue
from chatr.state.repositories import KeyValueRepository
__all__ = ["DatabaseManager", "DatabaseError", "QueuedMessage", "StoredValue", "KeyValueRepository"]

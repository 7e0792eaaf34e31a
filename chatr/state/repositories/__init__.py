"""Repositories."""
from chatr.state.repositories.kv import KeyValueRepository
__all__ = [
    "KeyValueRepository",
]

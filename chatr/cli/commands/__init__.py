"""CLI commands."""

from . import flush, init, listen, queue, retry, send, status

__all__ = [
    "flush",
    "init",
    "listen",
    "queue",
    "retry",
    "send",
    "status",
]

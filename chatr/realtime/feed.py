"""Change-feed capability consumed by the inbound listener."""
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Protocol


@dataclass(frozen=True)
class ChangeFilter:
    """Which row changes a subscription receives.

    ``filter`` is a single equality predicate in PostgREST form
    (``"patient_id=eq.<uuid>"``); membership predicates cannot be
    expressed and must be checked client-side.
    """

    table: str
    event: str = "INSERT"
    schema: str = "public"
    filter: Optional[str] = None

    def __post_init__(self) -> None:
        if self.event not in ("INSERT", "UPDATE", "DELETE", "*"):
            raise ValueError(f"Unsupported event: {self.event}")
        if self.filter is not None and "=eq." not in self.filter:
            raise ValueError("Only equality filters are supported")

    def to_config(self) -> dict[str, str]:
        cfg = {"event": self.event, "schema": self.schema, "table": self.table}
        if self.filter:
            cfg["filter"] = self.filter
        return cfg


@dataclass(frozen=True)
class ChangeEvent:
    event_type: str
    table: str
    schema: str = "public"
    new: dict[str, Any] = field(default_factory=dict)
    old: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Subscription:
    id: str
    channel: str
    filter: ChangeFilter


ChangeHandler = Callable[[ChangeEvent], Awaitable[None]]


class ChangeFeed(Protocol):
    async def subscribe(self, channel: str, change_filter: ChangeFilter,
                        handler: ChangeHandler) -> Subscription: ...

    async def unsubscribe(self, subscription: Subscription) -> None: ...

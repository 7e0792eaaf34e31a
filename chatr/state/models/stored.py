"""Key-value store models."""
from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class StoredValue:
    key: str
    value: str
    version: int
    updated_at: datetime

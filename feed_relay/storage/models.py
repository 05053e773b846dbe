"""
Data models for storage layer.

Defines ledger entities and the transient feed item.
"""

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class DeliveryRecord:
    """One ledger row per external item identifier.

    `delivered` only ever moves from False to True. Rows are never deleted.
    """
    external_id: str
    source_identity: str
    delivered: bool
    first_seen: datetime


@dataclass(frozen=True)
class PolledItem:
    """Newest item returned by the feed source. Never persisted itself."""
    external_id: str
    source_identity: str
    display_name: str
    body: str

    def format_for_chat(self) -> str:
        return f"{self.display_name} (@{self.source_identity}): {self.body}"


@dataclass(frozen=True)
class LedgerStats:
    """Aggregate counts over the ledger."""
    total: int
    delivered: int
    pending: int

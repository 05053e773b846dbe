"""
Feed polling with ledger-backed deduplication.

Each tick fetches only the newest item for the tracked identity. Delivery
is at-least-once:

1. Unseen item - record it, deliver it, mark it delivered
2. Seen and delivered - skip
3. Seen but not delivered (crash between send and mark) - deliver and mark

Fetch failures skip the tick; the next scheduled tick is the retry.
"""

import logging
import threading
from dataclasses import dataclass
from enum import Enum, auto
from typing import Callable, Optional

from ..sources.timeline import TransientFetchError
from ..storage.models import PolledItem
from ..storage.repository import DeliveryLedger

logger = logging.getLogger(__name__)


class TickOutcome(Enum):
    """What a single poll tick did."""
    DELIVERED = auto()
    REDELIVERED = auto()
    ALREADY_DELIVERED = auto()
    FETCH_FAILED = auto()


@dataclass
class PollerStats:
    ticks: int = 0
    delivered: int = 0
    fetch_failures: int = 0


class FeedPoller:
    """Timer loop that relays the newest unseen item of one identity.

    `fetch_latest` and `deliver` are injected so the poller does not know
    about HTTP or IRC. Ledger and delivery errors propagate; only
    TransientFetchError is absorbed.
    """

    def __init__(
        self,
        identity: str,
        fetch_latest: Callable[[str], PolledItem],
        ledger: DeliveryLedger,
        deliver: Callable[[str], None],
        interval: float = 60.0,
        poll_on_start: bool = False,
        stop_event: Optional[threading.Event] = None
    ):
        if interval <= 0:
            raise ValueError("interval must be > 0")
        self.identity = identity
        self.interval = interval
        self.poll_on_start = poll_on_start
        self._fetch_latest = fetch_latest
        self._ledger = ledger
        self._deliver = deliver
        self.stop_event = stop_event or threading.Event()
        self.stats = PollerStats()

    def tick(self) -> TickOutcome:
        """Run one poll: fetch, consult the ledger, deliver if needed."""
        self.stats.ticks += 1
        try:
            item = self._fetch_latest(self.identity)
        except TransientFetchError as e:
            self.stats.fetch_failures += 1
            logger.warning("Fetch for @%s failed, skipping tick: %s", self.identity, e)
            return TickOutcome.FETCH_FAILED

        record = self._ledger.lookup(item.external_id)
        if record is None:
            self._ledger.record_seen(item.external_id, item.source_identity)
            outcome = TickOutcome.DELIVERED
        elif record.delivered:
            logger.debug("Item %s has already been delivered", item.external_id)
            return TickOutcome.ALREADY_DELIVERED
        else:
            logger.info("Item %s was seen but never delivered, redelivering", item.external_id)
            outcome = TickOutcome.REDELIVERED

        self._deliver(item.format_for_chat())
        self._ledger.mark_delivered(item.external_id)
        self.stats.delivered += 1
        logger.info("Delivered item %s from @%s", item.external_id, item.source_identity)
        return outcome

    def run(self) -> None:
        """Tick every `interval` seconds until `stop_event` is set."""
        logger.info("Polling @%s every %.0fs", self.identity, self.interval)
        if self.poll_on_start and not self.stop_event.is_set():
            self.tick()
        while not self.stop_event.wait(self.interval):
            self.tick()
        logger.info("Poller for @%s stopped", self.identity)

    def stop(self) -> None:
        self.stop_event.set()

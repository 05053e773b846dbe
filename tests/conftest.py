"""
Shared fixtures for relay tests.
"""

import os
import queue
import tempfile
import threading

import pytest

from feed_relay.core.session import ProtocolSession
from feed_relay.storage.repository import DeliveryLedger


class FakeTransport:
    """In-memory line transport. Inbound lines are queued with `feed`."""

    def __init__(self):
        self.written = []
        self.closed = False
        self._inbound = queue.Queue()
        self._lock = threading.Lock()

    def feed(self, *lines):
        for line in lines:
            self._inbound.put(line)

    def hang_up(self):
        self._inbound.put(None)

    def write_line(self, line):
        with self._lock:
            self.written.append(line)

    def read_line(self):
        return self._inbound.get()

    def close(self):
        self.closed = True
        self._inbound.put(None)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def session(transport):
    """A session wired to the fake transport, not yet connected."""
    return ProtocolSession(
        server="irc.example.net",
        port=6697,
        channel="#news",
        nick="relaybot",
        join_delay=0,
        quit_timeout=0.1,
        transport_factory=lambda: transport
    )


@pytest.fixture
def ledger():
    with tempfile.TemporaryDirectory() as temp_dir:
        ledger = DeliveryLedger(os.path.join(temp_dir, "test.db"))
        ledger.initialize_schema()
        yield ledger

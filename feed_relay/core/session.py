"""
The single persistent IRC session.

Owns the one outbound connection. All writers (poller delivery, console
commands, keepalive replies) go through `send`, which holds a lock for the
whole write so lines never interleave on the wire.

State machine:
    DISCONNECTED -> CONNECTING -> CONNECTED -> JOINED -> CLOSED
"""

import logging
import threading
import time
from collections import deque
from datetime import datetime
from enum import Enum, auto
from typing import Callable, List, Optional

from .protocol import (
    ChatLine,
    InboundEvent,
    KeepalivePing,
    ServerLine,
    join_line,
    parse_line,
    pong_line,
    privmsg_line,
    quit_line,
    registration_lines,
    sender_from_prefix,
)
from .transport import SocketTransport, TransportError

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_SIZE = 500


class SessionState(Enum):
    DISCONNECTED = auto()
    CONNECTING = auto()
    CONNECTED = auto()
    JOINED = auto()
    CLOSED = auto()


class SessionStateError(Exception):
    """Raised when an operation is not valid in the current session state."""


class ProtocolSession:
    """One always-on bot connection: handshake, serialized writes, keepalive.

    The transport is produced by `transport_factory` on `connect()` and
    must offer `write_line`, `read_line` and `close`.
    """

    def __init__(
        self,
        server: str,
        port: int,
        channel: str,
        nick: str,
        realname: str = "feed relay",
        use_tls: bool = True,
        join_delay: float = 2.0,
        quit_timeout: float = 5.0,
        history_size: int = DEFAULT_HISTORY_SIZE,
        transport_factory: Optional[Callable[[], object]] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        self.server = server
        self.port = port
        self.channel = channel
        self.nick = nick
        self.realname = realname
        self.use_tls = use_tls
        self.join_delay = join_delay
        self.quit_timeout = quit_timeout
        self._transport_factory = transport_factory or (
            lambda: SocketTransport.open(server, port, use_tls=use_tls)
        )
        self._sleep = sleep
        self._transport = None
        self._state = SessionState.DISCONNECTED
        self._state_lock = threading.Lock()
        self._write_lock = threading.Lock()
        self._history = deque(maxlen=history_size)
        self._history_lock = threading.Lock()
        self.closed = threading.Event()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state in (SessionState.CONNECTED, SessionState.JOINED)

    @property
    def joined(self) -> bool:
        return self._state is SessionState.JOINED

    def _transition(self, expected, new_state: SessionState) -> None:
        with self._state_lock:
            if self._state not in expected:
                raise SessionStateError(
                    f"Cannot move from {self._state.name} to {new_state.name}"
                )
            self._state = new_state

    def connect(self, on_registered: Optional[Callable[[], None]] = None) -> None:
        """Open the transport, register, wait `join_delay`, then join.

        `on_registered` runs right after NICK/USER are sent and before the
        settle delay. The coordinator uses it to start `read_loop` so that
        a registration PING is answered before JOIN goes out.

        Raises:
            SessionStateError: If called more than once, or if the reader
                saw the connection close before JOIN
            TransportError: If the transport cannot be opened or written
        """
        self._transition({SessionState.DISCONNECTED}, SessionState.CONNECTING)
        try:
            self._transport = self._transport_factory()
        except TransportError:
            self._mark_closed()
            raise
        self._transition({SessionState.CONNECTING}, SessionState.CONNECTED)

        try:
            for line in registration_lines(self.nick, self.realname):
                self.send(line)
            if on_registered is not None:
                on_registered()

            # The server rejects JOIN until registration has been processed.
            self._sleep(self.join_delay)
            self.send(join_line(self.channel))
            self._transition({SessionState.CONNECTED}, SessionState.JOINED)
        except (TransportError, SessionStateError):
            self._mark_closed()
            raise
        logger.info("Joined %s as %s", self.channel, self.nick)

    def send(self, line: str) -> None:
        """Write one line to the server, serialized against other writers.

        Raises:
            SessionStateError: If the session is not connected
            TransportError: If the write fails
        """
        line = line.replace("\r", "").replace("\n", " ")
        with self._write_lock:
            if not self.connected:
                raise SessionStateError(f"Cannot send while {self._state.name}")
            logger.debug(">> %s", line)
            self._transport.write_line(line)

    def say_to_channel(self, text: str) -> None:
        self.send(privmsg_line(self.channel, text))

    def read_loop(self) -> None:
        """Read lines until end of stream, answering keepalive pings.

        Runs on its own thread for the lifetime of the session. Returns on
        end of stream; raises TransportError on a read failure. Either way
        the session ends up CLOSED.
        """
        try:
            while True:
                raw = self._transport.read_line()
                if raw is None:
                    logger.info("Server closed the connection")
                    return
                self._handle_line(raw)
        except (TransportError, SessionStateError):
            if self._state is SessionState.CLOSED:
                # Transport closed underneath us by quit().
                return
            raise
        finally:
            self._mark_closed()

    def _handle_line(self, raw: str) -> None:
        parsed = parse_line(raw)
        if isinstance(parsed, KeepalivePing):
            self.send(pong_line(parsed.token))
            return

        sender = None
        if isinstance(parsed, ChatLine):
            sender = parsed.sender
            logger.info("<%s> %s: %s", sender or "?", parsed.target, parsed.text)
        elif isinstance(parsed, ServerLine):
            sender = sender_from_prefix(parsed.prefix)
            if parsed.command == "ERROR":
                logger.warning("Server error: %s", " ".join(parsed.params))
            else:
                logger.debug("<< %s", raw)
        else:
            logger.debug("<< %s", raw)

        with self._history_lock:
            self._history.append(
                InboundEvent(timestamp=datetime.now(), raw=raw, sender=sender)
            )

    def history(self) -> List[InboundEvent]:
        """Snapshot of the most recent inbound events, oldest first."""
        with self._history_lock:
            return list(self._history)

    def quit(self, reason: Optional[str] = None) -> None:
        """Send QUIT, give the server `quit_timeout` to hang up, then close.

        Delivery of the QUIT line is best-effort.
        """
        if self.connected:
            try:
                self.send(quit_line(reason))
            except (TransportError, SessionStateError) as e:
                logger.warning("Could not send QUIT: %s", e)
            else:
                if not self.closed.wait(self.quit_timeout):
                    logger.debug("No close from server after %.1fs", self.quit_timeout)
        self._mark_closed()

    def _mark_closed(self) -> None:
        with self._state_lock:
            already_closed = self._state is SessionState.CLOSED
            self._state = SessionState.CLOSED
        if not already_closed and self._transport is not None:
            # Take the write lock so no writer is mid-line during close.
            with self._write_lock:
                self._transport.close()
        self.closed.set()

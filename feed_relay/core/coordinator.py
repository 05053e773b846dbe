"""
Bot coordination and shutdown.

Connects the session, then runs three activities on their own threads:

    reader   - ProtocolSession.read_loop (server lines, keepalive)
    poller   - FeedPoller.run (feed -> ledger -> channel)
    console  - CommandDispatcher.run (operator input)

Each activity reports how it ended on a single outcome queue. The main
thread waits on that queue and decides per outcome:

- TransportError, LedgerError or any other exception - fatal, exit 1
- reader reached end of stream - connection lost, exit 1
- console `/quit` or a shutdown signal - farewell and exit 0
- console end of input - keep relaying without a console
"""

import logging
import queue
import signal
import sys
import threading
from dataclasses import dataclass
from typing import Optional, TextIO

from ..storage.repository import LedgerError
from .commands import CommandDispatcher
from .poller import FeedPoller
from .session import ProtocolSession, SessionStateError
from .transport import TransportError

logger = logging.getLogger(__name__)

EXIT_CODE_OK = 0
EXIT_CODE_FAIL = 1

FAREWELL = "Relay shutting down"

READER = "reader"
POLLER = "poller"
CONSOLE = "console"
SIGNAL = "signal"


@dataclass(frozen=True)
class ActivityOutcome:
    """How one activity ended. `error` is None for a normal return."""
    activity: str
    error: Optional[BaseException] = None


class BotCoordinator:
    """Wires session, poller and dispatcher together and owns shutdown."""

    def __init__(
        self,
        session: ProtocolSession,
        poller: FeedPoller,
        dispatcher: CommandDispatcher,
        console_stream: Optional[TextIO] = None,
        farewell: str = FAREWELL,
        poll_timeout: float = 0.5
    ):
        self.session = session
        self.poller = poller
        self.dispatcher = dispatcher
        self.console_stream = console_stream if console_stream is not None else sys.stdin
        self.farewell = farewell
        self.poll_timeout = poll_timeout
        self.stop_event = threading.Event()
        self.poller.stop_event = self.stop_event
        self.dispatcher.stop_event = self.stop_event
        self.outcomes: "queue.Queue[ActivityOutcome]" = queue.Queue()
        self._threads = {}

    def _spawn(self, name: str, target, *args) -> threading.Thread:
        def runner():
            try:
                target(*args)
            except Exception as e:
                self.outcomes.put(ActivityOutcome(name, e))
            else:
                self.outcomes.put(ActivityOutcome(name))

        thread = threading.Thread(target=runner, name=f"relay-{name}", daemon=True)
        self._threads[name] = thread
        thread.start()
        return thread

    def start(self) -> None:
        """Connect, then start the activities.

        The reader starts as soon as NICK/USER are out so a registration
        PING is answered before JOIN. Nothing else is sent before
        `connect()` returns.

        Raises:
            TransportError: If the session cannot connect
            SessionStateError: If the connection closed before JOIN
        """
        self.session.connect(
            on_registered=lambda: self._spawn(READER, self.session.read_loop)
        )
        self._spawn(POLLER, self.poller.run)
        self._spawn(CONSOLE, self.dispatcher.run, self.console_stream)

    def request_shutdown(self) -> None:
        """Ask the main loop to quit. Safe to call from a signal handler."""
        self.outcomes.put(ActivityOutcome(SIGNAL))

    def install_signal_handlers(self) -> None:
        """Route SIGINT and SIGTERM to `request_shutdown`. Main thread only.

        The first signal puts SIGINT back to its default, so a second Ctrl-C
        during the farewell raises KeyboardInterrupt.
        """
        def handler(signum, frame):
            logger.info("Received %s", signal.Signals(signum).name)
            signal.signal(signal.SIGINT, signal.default_int_handler)
            self.request_shutdown()

        signal.signal(signal.SIGINT, handler)
        signal.signal(signal.SIGTERM, handler)

    def wait(self) -> int:
        """Block until an outcome ends the run; return the exit code."""
        while True:
            try:
                outcome = self.outcomes.get(timeout=self.poll_timeout)
            except queue.Empty:
                continue
            exit_code = self._classify(outcome)
            if exit_code is not None:
                return exit_code

    def _classify(self, outcome: ActivityOutcome) -> Optional[int]:
        if outcome.error is not None:
            if isinstance(outcome.error, (TransportError, LedgerError)):
                logger.error("%s failed: %s", outcome.activity, outcome.error)
            else:
                logger.exception(
                    "%s crashed", outcome.activity, exc_info=outcome.error
                )
            self.shutdown()
            return EXIT_CODE_FAIL

        if outcome.activity == SIGNAL:
            self.shutdown()
            return EXIT_CODE_OK

        if outcome.activity == CONSOLE:
            if self.dispatcher.quit_requested:
                self.shutdown(send_quit=False)
                return EXIT_CODE_OK
            logger.info("Console closed, continuing without operator input")
            return None

        if outcome.activity == READER:
            if self.stop_event.is_set() or self.dispatcher.quit_requested:
                self.shutdown(send_quit=False)
                return EXIT_CODE_OK
            logger.error("Connection to %s lost", self.session.server)
            self.shutdown(send_quit=False)
            return EXIT_CODE_FAIL

        # Poller only returns once stop_event is set.
        return None

    def shutdown(self, send_quit: bool = True) -> None:
        """Stop the poller and console, say farewell, close the session."""
        self.stop_event.set()
        if send_quit:
            self.session.quit(self.farewell)
        else:
            self.session.quit()
        poller_thread = self._threads.get(POLLER)
        if poller_thread is not None and poller_thread is not threading.current_thread():
            poller_thread.join(timeout=self.poll_timeout)

    def run(self) -> int:
        """Start everything and wait for the end. Returns an exit code."""
        try:
            self.start()
        except (TransportError, SessionStateError) as e:
            logger.error("Could not connect to %s:%s: %s", self.session.server, self.session.port, e)
            return EXIT_CODE_FAIL
        return self.wait()

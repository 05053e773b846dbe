"""
Console command parsing and dispatch.

Lines starting with `/` are commands, everything else is chat. Evaluated
in this order, first match wins:

1. `/quit` or `/q` [reason] - leave the server
2. `/msg <target> <text>` - private message to a nick or channel
3. `/join` or `/j <#channel>` - join another channel
4. `/raw` or `/r <text>` - send text verbatim
5. any other `/...` - reported locally, never sent
6. blank line - ignored
7. anything else - chat to the relay channel

A known command with missing or invalid arguments falls under rule 5.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Optional, TextIO, Union

from rich.console import Console
from rich.markup import escape

from .protocol import join_line, privmsg_line
from .session import ProtocolSession, SessionStateError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QuitCommand:
    reason: Optional[str] = None


@dataclass(frozen=True)
class PrivateMessage:
    target: str
    text: str


@dataclass(frozen=True)
class JoinChannel:
    channel: str


@dataclass(frozen=True)
class RawLine:
    text: str


@dataclass(frozen=True)
class MalformedCommand:
    """Slash input that is not a usable command. Never forwarded."""
    name: str


@dataclass(frozen=True)
class EmptyInput:
    pass


@dataclass(frozen=True)
class ChannelChat:
    text: str


Command = Union[
    QuitCommand, PrivateMessage, JoinChannel, RawLine,
    MalformedCommand, EmptyInput, ChannelChat,
]

QUIT_WORDS = ("quit", "q")
JOIN_WORDS = ("join", "j")
RAW_WORDS = ("raw", "r")


def parse_command(line: str) -> Command:
    """Turn one console line into a Command."""
    line = line.rstrip("\r\n")
    if not line.strip():
        return EmptyInput()
    if not line.startswith("/"):
        return ChannelChat(text=line)

    word, _, rest = line[1:].partition(" ")
    name = word.lower()
    args = rest.strip()

    if name in QUIT_WORDS:
        return QuitCommand(reason=args or None)

    if name == "msg":
        target, _, text = args.partition(" ")
        if target and text.strip():
            return PrivateMessage(target=target, text=text.strip())
        return MalformedCommand(name=word)

    if name in JOIN_WORDS:
        if args.startswith(("#", "&")) and " " not in args and len(args) > 1:
            return JoinChannel(channel=args)
        return MalformedCommand(name=word)

    if name in RAW_WORDS:
        if args:
            return RawLine(text=args)
        return MalformedCommand(name=word)

    return MalformedCommand(name=word or "/")


class CommandDispatcher:
    """Reads console lines and applies them to the session.

    Runs on its own thread. Stops on `/quit`, end of input, or when
    `stop_event` is set between lines.
    """

    def __init__(
        self,
        session: ProtocolSession,
        console: Optional[Console] = None,
        stop_event: Optional[threading.Event] = None
    ):
        self.session = session
        self.console = console or Console()
        self.stop_event = stop_event or threading.Event()
        self.quit_requested = False

    def dispatch(self, command: Command) -> bool:
        """Apply one parsed command. Returns False once the dispatcher should stop."""
        if isinstance(command, EmptyInput):
            return True

        if isinstance(command, MalformedCommand):
            self.console.print(f"Sorry, [bold]{escape(command.name)}[/] is not a recognized command.")
            return True

        if isinstance(command, QuitCommand):
            self.quit_requested = True
            self.session.quit(command.reason)
            return False

        try:
            if isinstance(command, PrivateMessage):
                self.session.send(privmsg_line(command.target, command.text))
            elif isinstance(command, JoinChannel):
                self.session.send(join_line(command.channel))
            elif isinstance(command, RawLine):
                self.session.send(command.text)
            elif isinstance(command, ChannelChat):
                self.session.say_to_channel(command.text)
        except SessionStateError as e:
            self.console.print(f"[yellow]Not sent:[/] {escape(str(e))}")
        return True

    def handle_line(self, line: str) -> bool:
        return self.dispatch(parse_command(line))

    def run(self, stream: TextIO) -> None:
        """Dispatch lines from `stream` until quit, EOF or stop."""
        while not self.stop_event.is_set():
            line = stream.readline()
            if line == "":
                logger.info("Console input closed")
                return
            if self.stop_event.is_set():
                return
            if not self.handle_line(line):
                return

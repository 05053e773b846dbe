"""
IRC line shapes.

Builders for the outbound lines the relay sends and a tokenizer that turns
an inbound line into one of a closed set of variants.

Inbound variants:
1. KeepalivePing - `PING :<token>`, must be answered with `PONG :<token>`
2. ChatLine - a PRIVMSG/NOTICE carrying text from a sender
3. ServerLine - any other well-formed line (numerics, JOIN, MODE, ...)
4. UnknownLine - text that does not tokenize as an IRC message
"""

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Union


@dataclass(frozen=True)
class KeepalivePing:
    token: str


@dataclass(frozen=True)
class ChatLine:
    sender: Optional[str]
    target: str
    text: str


@dataclass(frozen=True)
class ServerLine:
    prefix: Optional[str]
    command: str
    params: List[str]


@dataclass(frozen=True)
class UnknownLine:
    raw: str


InboundLine = Union[KeepalivePing, ChatLine, ServerLine, UnknownLine]


@dataclass(frozen=True)
class InboundEvent:
    """A received line kept in the session history."""
    timestamp: datetime
    raw: str
    sender: Optional[str] = None


def _clean(value: str) -> str:
    """Drop line terminators so one call always produces one wire line."""
    return value.replace("\r", "").replace("\n", " ")


def registration_lines(nick: str, realname: str) -> List[str]:
    """NICK and USER lines sent right after the transport opens."""
    return [f"NICK {_clean(nick)}", f"USER {_clean(nick)} 0 * :{_clean(realname)}"]


def join_line(channel: str) -> str:
    return f"JOIN {_clean(channel)}"


def privmsg_line(target: str, text: str) -> str:
    return f"PRIVMSG {_clean(target)} :{_clean(text)}"


def pong_line(token: str) -> str:
    return f"PONG :{_clean(token)}"


def quit_line(reason: Optional[str] = None) -> str:
    if reason:
        return f"QUIT :{_clean(reason)}"
    return "QUIT"


def sender_from_prefix(prefix: Optional[str]) -> Optional[str]:
    """`nick!user@host` -> `nick`. Server prefixes contain a dot and no `!`."""
    if not prefix:
        return None
    if "!" in prefix:
        return prefix.split("!", 1)[0] or None
    if "." in prefix:
        return None
    return prefix


def bracketed_sender(text: str) -> Optional[str]:
    """Best-effort nick from a `<nick>` or `<@nick>` marker in relayed text."""
    start = text.find("<")
    while start != -1:
        end = text.find(">", start + 1)
        if end == -1:
            return None
        candidate = text[start + 1:end].lstrip("@+%&~")
        if candidate and all(ch.isalnum() or ch in "_-[]\\`^{}|" for ch in candidate):
            return candidate
        start = text.find("<", start + 1)
    return None


def parse_line(raw: str) -> InboundLine:
    """Tokenize one inbound line.

    Grammar: `[":" prefix SPACE] command *(SPACE param) [SPACE ":" trailing]`.
    """
    line = raw.rstrip("\r\n")
    if not line.strip():
        return UnknownLine(raw=line)

    rest = line
    prefix = None
    if rest.startswith(":"):
        head, sep, rest = rest[1:].partition(" ")
        if not sep or not head:
            return UnknownLine(raw=line)
        prefix = head
    rest = rest.lstrip(" ")

    trailing = None
    if " :" in rest:
        rest, trailing = rest.split(" :", 1)
    elif rest.startswith(":"):
        rest, trailing = "", rest[1:]

    words = rest.split()
    if not words:
        return UnknownLine(raw=line)
    command = words[0].upper()
    params = words[1:]
    if trailing is not None:
        params.append(trailing)

    if command == "PING" and prefix is None:
        if not params:
            return UnknownLine(raw=line)
        return KeepalivePing(token=params[-1])

    if command in ("PRIVMSG", "NOTICE") and len(params) >= 2:
        sender = sender_from_prefix(prefix) or bracketed_sender(params[-1])
        return ChatLine(sender=sender, target=params[0], text=params[-1])

    if not command.isalnum():
        return UnknownLine(raw=line)
    return ServerLine(prefix=prefix, command=command, params=params)

"""
Unit tests for console command parsing and dispatch.
"""

import io
import threading
from unittest.mock import MagicMock

import pytest
from rich.console import Console

from feed_relay.core.commands import (
    ChannelChat,
    CommandDispatcher,
    EmptyInput,
    JoinChannel,
    MalformedCommand,
    PrivateMessage,
    QuitCommand,
    RawLine,
    parse_command,
)
from feed_relay.core.session import SessionStateError


class TestParseCommand:
    """Test the parser in priority order."""

    @pytest.mark.parametrize("line,expected", [
        ("/quit bye\n", QuitCommand(reason="bye")),
        ("/q see you all", QuitCommand(reason="see you all")),
        ("/quit", QuitCommand(reason=None)),
        ("/msg alice hello there", PrivateMessage(target="alice", text="hello there")),
        ("/join #python", JoinChannel(channel="#python")),
        ("/j #python\n", JoinChannel(channel="#python")),
        ("/raw MODE relaybot +i", RawLine(text="MODE relaybot +i")),
        ("/r WHOIS alice", RawLine(text="WHOIS alice")),
        ("/dance", MalformedCommand(name="dance")),
        ("", EmptyInput()),
        ("\n", EmptyInput()),
        ("   \n", EmptyInput()),
        ("hello everyone\n", ChannelChat(text="hello everyone")),
    ])
    def test_parse(self, line, expected):
        assert parse_command(line) == expected

    def test_command_word_must_match_exactly(self):
        """`/quitter` is not `/quit`."""
        assert parse_command("/quitter") == MalformedCommand(name="quitter")

    def test_command_word_is_case_insensitive(self):
        assert parse_command("/QUIT bye") == QuitCommand(reason="bye")

    @pytest.mark.parametrize("line", [
        "/msg",
        "/msg alice",
        "/msg alice   ",
        "/join",
        "/join python",
        "/j #a #b",
        "/raw",
        "/r   ",
    ])
    def test_malformed_known_commands_are_not_recognized(self, line):
        assert isinstance(parse_command(line), MalformedCommand)

    def test_slash_alone(self):
        assert parse_command("/") == MalformedCommand(name="/")

    def test_chat_keeps_inner_spacing(self):
        assert parse_command("  indented  text\n") == ChannelChat(text="  indented  text")


@pytest.fixture
def output():
    return io.StringIO()


@pytest.fixture
def dispatcher(output):
    session = MagicMock()
    console = Console(file=output, force_terminal=False, width=200)
    return CommandDispatcher(session, console=console)


class TestDispatch:
    """Test that commands reach the session correctly."""

    def test_quit_with_reason(self, dispatcher):
        assert dispatcher.handle_line("/quit bye") is False
        dispatcher.session.quit.assert_called_once_with("bye")
        assert dispatcher.quit_requested

    def test_private_message(self, dispatcher):
        dispatcher.handle_line("/msg alice hello there")
        dispatcher.session.send.assert_called_once_with("PRIVMSG alice :hello there")

    def test_join(self, dispatcher):
        dispatcher.handle_line("/join #python")
        dispatcher.session.send.assert_called_once_with("JOIN #python")

    def test_raw(self, dispatcher):
        dispatcher.handle_line("/raw MODE relaybot +i")
        dispatcher.session.send.assert_called_once_with("MODE relaybot +i")

    def test_plain_chat(self, dispatcher):
        dispatcher.handle_line("hello everyone\n")
        dispatcher.session.say_to_channel.assert_called_once_with("hello everyone")

    def test_unknown_command_is_local_only(self, dispatcher, output):
        assert dispatcher.handle_line("/dance") is True
        assert "not a recognized command" in output.getvalue()
        assert "dance" in output.getvalue()
        dispatcher.session.send.assert_not_called()
        dispatcher.session.say_to_channel.assert_not_called()

    def test_empty_line_does_nothing(self, dispatcher, output):
        assert dispatcher.handle_line("") is True
        assert dispatcher.session.method_calls == []
        assert output.getvalue() == ""

    def test_send_on_closed_session_is_reported(self, dispatcher, output):
        dispatcher.session.say_to_channel.side_effect = SessionStateError("Cannot send while CLOSED")
        assert dispatcher.handle_line("anyone there?") is True
        assert "Not sent" in output.getvalue()


class TestDispatcherLoop:
    """Test reading lines from the console stream."""

    def test_runs_until_quit(self, dispatcher):
        stream = io.StringIO("hello\n/join #python\n/quit bye\nnever sent\n")
        dispatcher.run(stream)

        dispatcher.session.say_to_channel.assert_called_once_with("hello")
        dispatcher.session.send.assert_called_once_with("JOIN #python")
        dispatcher.session.quit.assert_called_once_with("bye")

    def test_stops_at_end_of_input(self, dispatcher):
        dispatcher.run(io.StringIO("hello\n"))
        dispatcher.session.say_to_channel.assert_called_once_with("hello")
        assert not dispatcher.quit_requested

    def test_stop_event_prevents_dispatch(self, dispatcher):
        dispatcher.stop_event = threading.Event()
        dispatcher.stop_event.set()
        dispatcher.run(io.StringIO("hello\n"))
        dispatcher.session.say_to_channel.assert_not_called()

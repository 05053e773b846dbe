"""
Unit tests for configuration loading and validation.

Tests strict validation and error handling for relay configs.
"""

import os
import shutil
import tempfile

import pytest
import yaml

from feed_relay.config.loader import (
    BEARER_TOKEN_ENV,
    FeedConfig,
    IrcConfig,
    RelayConfig,
    load_relay_config
)


def _valid_config() -> dict:
    return {
        "irc": {
            "server": "irc.example.net",
            "port": 6697,
            "channel": "#news",
            "nick": "relaybot"
        },
        "feed": {
            "identity": "newsyc150"
        }
    }


class TestConfigLoading:
    """Test configuration loading and validation."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()

    def teardown_method(self):
        """Clean up test environment."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _write_config(self, config_data, filename: str = "config.yaml") -> str:
        """Write configuration data to temporary file."""
        config_path = os.path.join(self.temp_dir, filename)
        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.dump(config_data, f)
        return config_path

    def test_minimal_config_uses_defaults(self, monkeypatch):
        monkeypatch.delenv(BEARER_TOKEN_ENV, raising=False)
        config = load_relay_config(self._write_config(_valid_config()))

        assert isinstance(config, RelayConfig)
        assert config.irc.server == "irc.example.net"
        assert config.irc.port == 6697
        assert config.irc.channel == "#news"
        assert config.irc.use_tls is True
        assert config.irc.join_delay == 2.0
        assert config.feed.identity == "newsyc150"
        assert config.feed.interval_seconds == 60.0
        assert config.feed.timeout_seconds == 10.0
        assert config.feed.bearer_token is None
        assert config.ledger.path == "feed_relay.db"

    def test_full_config(self, monkeypatch):
        monkeypatch.delenv(BEARER_TOKEN_ENV, raising=False)
        data = _valid_config()
        data["irc"].update({"realname": "News Bot", "use_tls": False, "join_delay": 0,
                            "quit_timeout": 1})
        data["feed"].update({"interval_seconds": 30, "poll_on_start": True,
                             "timeout_seconds": 5.5, "base_url": "http://localhost:8080"})
        data["ledger"] = {"path": "/tmp/ledger.db"}

        config = load_relay_config(self._write_config(data))

        assert config.irc.realname == "News Bot"
        assert config.irc.use_tls is False
        assert config.irc.join_delay == 0.0
        assert config.feed.interval_seconds == 30.0
        assert config.feed.poll_on_start is True
        assert config.feed.base_url == "http://localhost:8080"
        assert config.ledger.path == "/tmp/ledger.db"

    def test_bearer_token_from_environment(self, monkeypatch):
        monkeypatch.setenv(BEARER_TOKEN_ENV, "secret-token")
        config = load_relay_config(self._write_config(_valid_config()))
        assert config.feed.bearer_token == "secret-token"

    def test_bearer_token_from_env_file(self, monkeypatch):
        monkeypatch.delenv(BEARER_TOKEN_ENV, raising=False)
        env_path = os.path.join(self.temp_dir, ".env")
        with open(env_path, 'w', encoding='utf-8') as f:
            f.write(f"{BEARER_TOKEN_ENV}=from-file\n")

        config = load_relay_config(self._write_config(_valid_config()), env_file=env_path)

        assert config.feed.bearer_token == "from-file"
        os.environ.pop(BEARER_TOKEN_ENV, None)

    def test_config_is_immutable(self):
        config = load_relay_config(self._write_config(_valid_config()))
        with pytest.raises(Exception):
            config.irc.nick = "other"

    def test_missing_file(self):
        with pytest.raises(FileNotFoundError):
            load_relay_config(os.path.join(self.temp_dir, "nope.yaml"))

    def test_empty_file(self):
        path = os.path.join(self.temp_dir, "empty.yaml")
        open(path, 'w').close()
        with pytest.raises(ValueError, match="empty"):
            load_relay_config(path)

    def test_invalid_yaml(self):
        path = os.path.join(self.temp_dir, "bad.yaml")
        with open(path, 'w', encoding='utf-8') as f:
            f.write("irc: [unclosed")
        with pytest.raises(yaml.YAMLError):
            load_relay_config(path)

    def test_unknown_top_level_key(self):
        data = _valid_config()
        data["twitter"] = {}
        with pytest.raises(ValueError, match="Unknown configuration keys"):
            load_relay_config(self._write_config(data))

    def test_unknown_section_key(self):
        data = _valid_config()
        data["irc"]["passwd"] = "x"
        with pytest.raises(ValueError, match="Unknown keys in irc"):
            load_relay_config(self._write_config(data))

    @pytest.mark.parametrize("section", ["irc", "feed"])
    def test_missing_section(self, section):
        data = _valid_config()
        del data[section]
        with pytest.raises(ValueError, match=f"Missing required '{section}'"):
            load_relay_config(self._write_config(data))

    @pytest.mark.parametrize("key", ["server", "port", "channel", "nick"])
    def test_missing_irc_key(self, key):
        data = _valid_config()
        del data["irc"][key]
        with pytest.raises(ValueError, match=f"Missing required '{key}'"):
            load_relay_config(self._write_config(data))

    @pytest.mark.parametrize("section,key,value", [
        ("irc", "port", "6697"),
        ("irc", "port", 66.5),
        ("irc", "use_tls", "yes"),
        ("feed", "interval_seconds", "soon"),
        ("feed", "poll_on_start", 1),
    ])
    def test_wrong_types(self, section, key, value):
        data = _valid_config()
        data[section][key] = value
        with pytest.raises(ValueError):
            load_relay_config(self._write_config(data))

    def test_section_must_be_mapping(self):
        data = _valid_config()
        data["feed"] = ["newsyc150"]
        with pytest.raises(ValueError, match="must be a dictionary"):
            load_relay_config(self._write_config(data))


class TestConfigValidation:
    """Test dataclass-level validation."""

    def test_channel_prefix(self):
        with pytest.raises(ValueError, match="channel"):
            IrcConfig(server="irc.example.net", port=6697, channel="news", nick="bot")

    def test_port_range(self):
        with pytest.raises(ValueError, match="port"):
            IrcConfig(server="irc.example.net", port=70000, channel="#news", nick="bot")

    def test_nick_without_spaces(self):
        with pytest.raises(ValueError, match="nick"):
            IrcConfig(server="irc.example.net", port=6697, channel="#news", nick="two words")

    def test_interval_positive(self):
        with pytest.raises(ValueError, match="interval_seconds"):
            FeedConfig(identity="newsyc150", interval_seconds=0)

    def test_identity_required(self):
        with pytest.raises(ValueError, match="identity"):
            FeedConfig(identity="")

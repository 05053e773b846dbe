"""
Configuration management and loading.

Handles relay settings from YAML and secrets from the environment.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

import yaml
from dotenv import load_dotenv

BEARER_TOKEN_ENV = "FEED_BEARER_TOKEN"


@dataclass(frozen=True)
class IrcConfig:
    """Connection settings for the chat server."""
    server: str
    port: int
    channel: str
    nick: str
    realname: str = "feed relay"
    use_tls: bool = True
    join_delay: float = 2.0
    quit_timeout: float = 5.0

    def __post_init__(self):
        """Validate connection values."""
        if not self.server:
            raise ValueError("irc.server is required")
        if not 0 < self.port < 65536:
            raise ValueError("irc.port must be between 1 and 65535")
        if not self.channel.startswith(("#", "&")):
            raise ValueError("irc.channel must start with '#' or '&'")
        if not self.nick or " " in self.nick:
            raise ValueError("irc.nick must be a non-empty word")
        if self.join_delay < 0:
            raise ValueError("irc.join_delay must be >= 0")
        if self.quit_timeout < 0:
            raise ValueError("irc.quit_timeout must be >= 0")


@dataclass(frozen=True)
class FeedConfig:
    """Polling settings for the tracked feed."""
    identity: str
    interval_seconds: float = 60.0
    base_url: str = "https://api.twitter.com/1.1"
    timeout_seconds: float = 10.0
    poll_on_start: bool = False
    bearer_token: Optional[str] = None

    def __post_init__(self):
        """Validate polling values."""
        if not self.identity:
            raise ValueError("feed.identity is required")
        if self.interval_seconds <= 0:
            raise ValueError("feed.interval_seconds must be > 0")
        if self.timeout_seconds <= 0:
            raise ValueError("feed.timeout_seconds must be > 0")


@dataclass(frozen=True)
class LedgerConfig:
    """Location of the delivery ledger."""
    path: str = "feed_relay.db"


@dataclass(frozen=True)
class RelayConfig:
    """Complete relay configuration."""
    irc: IrcConfig
    feed: FeedConfig
    ledger: LedgerConfig


_IRC_KEYS = {
    'server': str, 'port': int, 'channel': str, 'nick': str,
    'realname': str, 'use_tls': bool, 'join_delay': float, 'quit_timeout': float,
}
_IRC_REQUIRED = {'server', 'port', 'channel', 'nick'}

_FEED_KEYS = {
    'identity': str, 'interval_seconds': float, 'base_url': str,
    'timeout_seconds': float, 'poll_on_start': bool,
}
_FEED_REQUIRED = {'identity'}

_LEDGER_KEYS = {'path': str}


def load_relay_config(path: str, env_file: Optional[str] = None) -> RelayConfig:
    """Load and validate relay configuration from a YAML file.

    Unknown keys are rejected so that a typo never silently falls back to
    a default. The feed bearer token is read from the environment (after
    loading an optional .env file), never from the YAML file.

    Args:
        path: Path to YAML configuration file
        env_file: Optional .env file to load before reading secrets

    Returns:
        Validated RelayConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Relay config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if not raw_config:
        raise ValueError("Configuration file is empty")
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration file must contain a mapping")

    allowed_top_keys = {'irc', 'feed', 'ledger'}
    unknown_keys = set(raw_config.keys()) - allowed_top_keys
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    for section in ('irc', 'feed'):
        if section not in raw_config:
            raise ValueError(f"Missing required '{section}' section")

    irc_values = _parse_section(raw_config['irc'], 'irc', _IRC_KEYS, _IRC_REQUIRED)
    feed_values = _parse_section(raw_config['feed'], 'feed', _FEED_KEYS, _FEED_REQUIRED)
    ledger_values = _parse_section(raw_config.get('ledger') or {}, 'ledger', _LEDGER_KEYS, set())

    load_dotenv(env_file)
    bearer_token = os.getenv(BEARER_TOKEN_ENV) or None

    return RelayConfig(
        irc=IrcConfig(**irc_values),
        feed=FeedConfig(bearer_token=bearer_token, **feed_values),
        ledger=LedgerConfig(**ledger_values)
    )


def _parse_section(data, section: str, schema: Dict[str, type], required: set) -> Dict:
    """Validate one configuration section against its key schema.

    Args:
        data: Raw section data
        section: Section name for error messages
        schema: Allowed keys mapped to their expected type
        required: Keys that must be present

    Returns:
        Dictionary of coerced values

    Raises:
        ValueError: If the section is invalid
    """
    if not isinstance(data, dict):
        raise ValueError(f"'{section}' must be a dictionary")

    unknown_keys = set(data.keys()) - set(schema)
    if unknown_keys:
        raise ValueError(f"Unknown keys in {section}: {unknown_keys}")

    for key in sorted(required):
        if key not in data:
            raise ValueError(f"Missing required '{key}' in {section}")

    values = {}
    for key, value in data.items():
        expected = schema[key]
        if expected is bool:
            if not isinstance(value, bool):
                raise ValueError(f"'{key}' in {section} must be true or false")
        elif expected in (int, float):
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"'{key}' in {section} must be a number")
            if expected is int and value != int(value):
                raise ValueError(f"'{key}' in {section} must be an integer")
            value = expected(value)
        else:
            if not isinstance(value, (str, int)) or isinstance(value, bool):
                raise ValueError(f"'{key}' in {section} must be a string")
            value = str(value)
        values[key] = value
    return values

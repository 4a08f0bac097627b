"""
Configuration for ntp-time-sync.

Caller options are deep-merged onto DEFAULT_OPTIONS. Option keys that do not
exist in the defaults are rejected at construction time, at any nesting level.

TOML layout accepted by load_config():

    servers = ["0.pool.ntp.org", "time.example.net:10123"]
    sample_count = 8
    reply_timeout_ms = 3000
    max_retries = 3

    [protocol_defaults]
    version = 4
    min_poll_exp = 4
    max_stratum = 16

protocol_defaults.reference_epoch affects request encoding only. Replies are
always decoded against the 1900 NTP epoch.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple, Union

import toml

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)


# Prime epoch of the NTP timescale (RFC 5905, era 0)
NTP_EPOCH = datetime(1900, 1, 1, tzinfo=timezone.utc)

DEFAULT_PORT = 123

DEFAULT_OPTIONS: Dict[str, Any] = {
    # NTP servers, optionally including a port (defaults to protocol_defaults.port)
    'servers': ['0.pool.ntp.org', '1.pool.ntp.org', '2.pool.ntp.org', '3.pool.ntp.org'],

    # Number of best (lowest delay) samples used for the offset estimate
    'sample_count': 8,

    # Time to wait for a single NTP reply
    'reply_timeout_ms': 3000,

    # Rounds attempted before giving up when no server answers
    'max_retries': 3,

    # Defaults as of RFC 5905
    'protocol_defaults': {
        'port': DEFAULT_PORT,
        'version': 4,
        'tolerance_parts': 15e-6,
        'min_poll_exp': 4,
        'max_poll_exp': 17,
        'max_dispersion_seconds': 16,
        'min_dispersion_seconds': 0.005,
        'max_distance': 1,
        'max_stratum': 16,
        'precision_exp': -18,
        'reference_epoch': NTP_EPOCH,
    },
}


@dataclass(frozen=True)
class ServerEndpoint:
    """A remote NTP server address."""
    host: str
    port: int = DEFAULT_PORT

    @classmethod
    def parse(cls, text: str, default_port: int = DEFAULT_PORT) -> "ServerEndpoint":
        """
        Parse "host", "host:port", "[ipv6]:port" or a bare IPv6 address.

        A missing, non-numeric or zero port falls back to default_port.
        """
        text = str(text).strip()
        if text.startswith('['):
            host, _, rest = text[1:].partition(']')
            port_text = rest[1:] if rest.startswith(':') else ''
        elif text.count(':') > 1:
            # Bare IPv6 address, no port
            host, port_text = text, ''
        else:
            host, _, port_text = text.partition(':')

        if not host:
            raise ConfigurationError(f"Invalid server address: {text!r}")

        try:
            port = int(port_text)
        except ValueError:
            port = 0

        port = port or default_port
        if not 0 < port < 65536:
            raise ConfigurationError(f"Invalid port for server {host!r}: {port}")

        return cls(host=host, port=port)

    def __str__(self) -> str:
        host = f"[{self.host}]" if ':' in self.host else self.host
        return f"{host}:{self.port}"


@dataclass(frozen=True)
class ProtocolDefaults:
    """NTP protocol constants used for encoding, validation and statistics."""
    port: int = DEFAULT_PORT
    version: int = 4
    tolerance_parts: float = 15e-6       # frequency tolerance (PHI), s/s
    min_poll_exp: int = 4                # log2 of minimum poll interval, seconds
    max_poll_exp: int = 17
    max_dispersion_seconds: float = 16
    min_dispersion_seconds: float = 0.005
    max_distance: float = 1
    max_stratum: int = 16
    precision_exp: int = -18             # log2 of local clock precision, seconds
    reference_epoch: datetime = NTP_EPOCH

    @property
    def min_poll_seconds(self) -> float:
        """Minimum spacing between two full synchronization rounds."""
        return float(2 ** self.min_poll_exp)

    @property
    def reference_epoch_seconds(self) -> float:
        """Reference epoch as Unix seconds (negative for 1900)."""
        return self.reference_epoch.timestamp()


@dataclass(frozen=True)
class SyncConfiguration:
    """Resolved, immutable client configuration."""
    servers: Tuple[ServerEndpoint, ...]
    sample_count: int = 8
    reply_timeout_ms: int = 3000
    max_retries: int = 3
    protocol_defaults: ProtocolDefaults = field(default_factory=ProtocolDefaults)

    @property
    def reply_timeout_seconds(self) -> float:
        return self.reply_timeout_ms / 1000.0

    @classmethod
    def from_options(cls, options: Optional[Mapping[str, Any]] = None) -> "SyncConfiguration":
        """
        Build a configuration from (possibly partial, nested) caller options.

        Raises:
            ConfigurationError: unknown key or invalid value
        """
        merged = merge_options(options or {}, DEFAULT_OPTIONS)
        defaults = _build_protocol_defaults(merged['protocol_defaults'])

        servers = merged['servers']
        if isinstance(servers, (str, ServerEndpoint)):
            servers = [servers]
        endpoints = tuple(
            server if isinstance(server, ServerEndpoint)
            else ServerEndpoint.parse(server, defaults.port)
            for server in servers
        )
        if not endpoints:
            raise ConfigurationError("At least one server must be configured")

        config = cls(
            servers=endpoints,
            sample_count=_as_int(merged, 'sample_count', minimum=1),
            reply_timeout_ms=_as_int(merged, 'reply_timeout_ms', minimum=1),
            max_retries=_as_int(merged, 'max_retries', minimum=0),
            protocol_defaults=defaults,
        )
        logger.debug(
            f"Resolved configuration: {len(config.servers)} servers, "
            f"sample_count={config.sample_count}, timeout={config.reply_timeout_ms}ms, "
            f"max_retries={config.max_retries}"
        )
        return config


def merge_options(
    options: Mapping[str, Any],
    defaults: Mapping[str, Any],
    _path: Tuple[str, ...] = ()
) -> Dict[str, Any]:
    """
    Recursively merge options onto defaults.

    Nested tables are merged key by key; lists and scalars replace the default.
    """
    unknown = sorted(str(key) for key in options if key not in defaults)
    if unknown:
        names = ', '.join('.'.join(_path + (key,)) for key in unknown)
        raise ConfigurationError(f"Invalid option: {names}")

    merged: Dict[str, Any] = {}
    for key, default in defaults.items():
        if key not in options:
            merged[key] = default
            continue

        value = options[key]
        if isinstance(default, dict):
            if not isinstance(value, Mapping):
                name = '.'.join(_path + (key,))
                raise ConfigurationError(f"Option {name} must be a table")
            merged[key] = merge_options(value, default, _path + (key,))
        else:
            merged[key] = value

    return merged


def parse_epoch(value: Union[str, datetime]) -> datetime:
    """Accept a datetime or ISO-8601 string; naive values are taken as UTC."""
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.strip().replace('Z', '+00:00'))
        except ValueError as e:
            raise ConfigurationError(f"Invalid reference_epoch: {value!r}") from e
    if not isinstance(value, datetime):
        raise ConfigurationError(f"Invalid reference_epoch: {value!r}")
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """Load configuration options from a TOML file."""
    if config_path and Path(config_path).exists():
        with open(config_path, 'r') as f:
            return toml.load(f)

    if config_path:
        logger.warning(f"Config file {config_path} not found, using defaults")
    return {}


def _build_protocol_defaults(values: Mapping[str, Any]) -> ProtocolDefaults:
    try:
        defaults = ProtocolDefaults(
            port=int(values['port']),
            version=int(values['version']),
            tolerance_parts=float(values['tolerance_parts']),
            min_poll_exp=int(values['min_poll_exp']),
            max_poll_exp=int(values['max_poll_exp']),
            max_dispersion_seconds=float(values['max_dispersion_seconds']),
            min_dispersion_seconds=float(values['min_dispersion_seconds']),
            max_distance=float(values['max_distance']),
            max_stratum=int(values['max_stratum']),
            precision_exp=int(values['precision_exp']),
            reference_epoch=parse_epoch(values['reference_epoch']),
        )
    except (TypeError, ValueError) as e:
        if isinstance(e, ConfigurationError):
            raise
        raise ConfigurationError(f"Invalid protocol_defaults: {e}") from e

    if not 0 < defaults.version < 8:
        raise ConfigurationError(f"NTP version must fit in 3 bits, got {defaults.version}")
    if not 0 < defaults.port < 65536:
        raise ConfigurationError(f"Invalid default port: {defaults.port}")
    return defaults


def _as_int(values: Mapping[str, Any], key: str, minimum: int) -> int:
    raw = values[key]
    try:
        value = int(raw)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Option {key} must be an integer, got {raw!r}") from e
    if value < minimum:
        raise ConfigurationError(f"Option {key} must be >= {minimum}, got {value}")
    return value

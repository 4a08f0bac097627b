"""
Unit tests for configuration resolution.
"""

from datetime import datetime, timezone

import pytest

from ntp_time_sync.config import (
    DEFAULT_OPTIONS,
    NTP_EPOCH,
    ServerEndpoint,
    SyncConfiguration,
    load_config,
    merge_options,
)
from ntp_time_sync.exceptions import ConfigurationError


class TestServerEndpoint:
    """Test "host" / "host:port" parsing."""

    def test_default_port_is_implied(self):
        config = SyncConfiguration.from_options({'servers': ['0.pool.ntp.org']})
        assert config.servers[0] == ServerEndpoint(host='0.pool.ntp.org', port=123)

    def test_explicit_port_is_used(self):
        config = SyncConfiguration.from_options({'servers': ['x:54321']})
        assert config.servers[0].host == 'x'
        assert config.servers[0].port == 54321

    def test_non_numeric_port_falls_back_to_default(self):
        assert ServerEndpoint.parse('time.example.net:ntp', 123).port == 123

    def test_default_port_follows_protocol_defaults(self):
        config = SyncConfiguration.from_options({
            'servers': ['time.example.net'],
            'protocol_defaults': {'port': 10123},
        })
        assert config.servers[0].port == 10123

    def test_bracketed_ipv6(self):
        endpoint = ServerEndpoint.parse('[2001:db8::1]:4123')
        assert endpoint.host == '2001:db8::1'
        assert endpoint.port == 4123
        assert str(endpoint) == '[2001:db8::1]:4123'

    def test_bare_ipv6_uses_default_port(self):
        endpoint = ServerEndpoint.parse('2001:db8::1', 10123)
        assert endpoint == ServerEndpoint('2001:db8::1', 10123)

    def test_empty_host_rejected(self):
        with pytest.raises(ConfigurationError):
            ServerEndpoint.parse(':123')

    def test_out_of_range_port_rejected(self):
        with pytest.raises(ConfigurationError):
            ServerEndpoint.parse('host:70000')


class TestSyncConfiguration:
    """Test merging caller options onto defaults."""

    def test_defaults(self):
        config = SyncConfiguration.from_options()

        assert [s.host for s in config.servers] == DEFAULT_OPTIONS['servers']
        assert all(s.port == 123 for s in config.servers)
        assert config.sample_count == 8
        assert config.reply_timeout_ms == 3000
        assert config.max_retries == 3

        defaults = config.protocol_defaults
        assert defaults.version == 4
        assert defaults.tolerance_parts == 15e-6
        assert defaults.min_poll_exp == 4
        assert defaults.max_poll_exp == 17
        assert defaults.max_dispersion_seconds == 16
        assert defaults.min_dispersion_seconds == 0.005
        assert defaults.max_distance == 1
        assert defaults.max_stratum == 16
        assert defaults.precision_exp == -18
        assert defaults.reference_epoch == NTP_EPOCH

    def test_defaults_given_explicitly(self):
        assert SyncConfiguration.from_options(DEFAULT_OPTIONS) == SyncConfiguration.from_options()

    def test_nested_options_are_merged(self):
        config = SyncConfiguration.from_options({'protocol_defaults': {'max_stratum': 10}})

        assert config.protocol_defaults.max_stratum == 10
        # Untouched siblings keep their defaults
        assert config.protocol_defaults.version == 4
        assert config.protocol_defaults.min_poll_exp == 4

    def test_server_list_replaces_default(self):
        config = SyncConfiguration.from_options({'servers': ['a', 'b:124']})
        assert config.servers == (ServerEndpoint('a', 123), ServerEndpoint('b', 124))

    def test_unknown_top_level_key_rejected(self):
        with pytest.raises(ConfigurationError, match='Invalid option: replyTimeout'):
            SyncConfiguration.from_options({'replyTimeout': 100})

    def test_unknown_nested_key_rejected(self):
        with pytest.raises(ConfigurationError, match='protocol_defaults.leap_table'):
            SyncConfiguration.from_options({'protocol_defaults': {'leap_table': []}})

    def test_nested_group_must_be_table(self):
        with pytest.raises(ConfigurationError):
            SyncConfiguration.from_options({'protocol_defaults': 4})

    @pytest.mark.parametrize('options', [
        {'sample_count': 0},
        {'reply_timeout_ms': 0},
        {'max_retries': -1},
        {'sample_count': 'many'},
        {'servers': []},
        {'protocol_defaults': {'version': 8}},
    ])
    def test_invalid_values_rejected(self, options):
        with pytest.raises(ConfigurationError):
            SyncConfiguration.from_options(options)

    def test_configuration_error_is_value_error(self):
        with pytest.raises(ValueError):
            SyncConfiguration.from_options({'bogus': True})

    def test_reference_epoch_from_string(self):
        config = SyncConfiguration.from_options({
            'protocol_defaults': {'reference_epoch': '1900-01-01T00:00:00Z'}
        })
        assert config.protocol_defaults.reference_epoch == NTP_EPOCH

    def test_naive_reference_epoch_is_utc(self):
        config = SyncConfiguration.from_options({
            'protocol_defaults': {'reference_epoch': datetime(2036, 2, 7, 6, 28, 16)}
        })
        epoch = config.protocol_defaults.reference_epoch
        assert epoch == datetime(2036, 2, 7, 6, 28, 16, tzinfo=timezone.utc)

    def test_min_poll_seconds(self):
        config = SyncConfiguration.from_options({'protocol_defaults': {'min_poll_exp': 6}})
        assert config.protocol_defaults.min_poll_seconds == 64.0

    def test_configuration_is_immutable(self):
        config = SyncConfiguration.from_options()
        with pytest.raises(AttributeError):
            config.sample_count = 3


class TestMergeOptions:
    """Test the generic deep merge."""

    def test_defaults_are_not_mutated(self):
        defaults = {'a': 1, 'group': {'b': 2, 'c': 3}}
        merged = merge_options({'group': {'b': 20}}, defaults)

        assert merged == {'a': 1, 'group': {'b': 20, 'c': 3}}
        assert defaults == {'a': 1, 'group': {'b': 2, 'c': 3}}


class TestLoadConfig:
    """Test TOML configuration loading."""

    def test_load_toml(self, tmp_path):
        path = tmp_path / 'ntp.toml'
        path.write_text(
            'servers = ["time.example.net:10123"]\n'
            'sample_count = 4\n'
            '\n'
            '[protocol_defaults]\n'
            'max_stratum = 12\n'
        )

        options = load_config(str(path))
        config = SyncConfiguration.from_options(options)

        assert config.servers == (ServerEndpoint('time.example.net', 10123),)
        assert config.sample_count == 4
        assert config.protocol_defaults.max_stratum == 12

    def test_missing_file_gives_empty_options(self, tmp_path):
        assert load_config(str(tmp_path / 'missing.toml')) == {}

    def test_no_path_gives_empty_options(self):
        assert load_config(None) == {}

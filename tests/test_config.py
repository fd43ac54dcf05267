"""Tests for configuration loading and validation."""

import pytest

from roomrecorder.config import (
    DEFAULT_DOMAIN,
    DEFAULT_FILENAME_PATTERN,
    Config,
    NetworkConfig,
    apply_overrides,
    as_int,
    create_example_config,
    load_config,
    validate_room_name,
)
from roomrecorder.errors import ConfigError


class TestLoadConfig:

    def test_missing_file_gives_defaults(self, tmp_path):
        config = load_config(str(tmp_path / "nope.yaml"))
        assert config.recording.resolution == 1080
        assert config.recording.framerate == 30
        assert config.recording.max_duration_minutes == 0
        assert config.recording.max_filesize_mb == 0
        assert config.recording.filename_pattern == DEFAULT_FILENAME_PATTERN
        assert config.monitor.check_interval_seconds == 60
        assert config.monitor.rooms == []
        assert config.network.domain == DEFAULT_DOMAIN
        assert config.network.cookies is None

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert load_config(str(path)) == Config()

    def test_full_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "recording:\n"
            "  output_directory: /data/rec\n"
            "  filename_pattern: '{{.Username}}-{{.Year}}'\n"
            "  max_duration_minutes: 30\n"
            "  max_filesize_mb: '2048'\n"
            "  resolution: 720\n"
            "  framerate: 60\n"
            "monitor:\n"
            "  check_interval_seconds: 15\n"
            "  rooms: [alice, bob]\n"
            "network:\n"
            "  domain: https://mirror.test\n"
            "  cookies: 'cf_clearance=abc; sessionid=xyz'\n"
            "logging:\n"
            "  level: DEBUG\n"
        )
        config = load_config(str(path))
        assert config.recording.output_directory == "/data/rec"
        assert config.recording.filename_pattern == "{{.Username}}-{{.Year}}"
        assert config.recording.max_duration_minutes == 30
        assert config.recording.max_filesize_mb == 2048
        assert config.recording.resolution == 720
        assert config.recording.framerate == 60
        assert config.monitor.check_interval_seconds == 15
        assert config.monitor.rooms == ["alice", "bob"]
        assert config.network.cookies == "cf_clearance=abc; sessionid=xyz"
        assert config.network.domain_with_trailing_slash() == "https://mirror.test/"
        assert config.logging.level == "DEBUG"

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("recording: [unclosed\n")
        with pytest.raises(ConfigError):
            load_config(str(path))

    def test_section_must_be_mapping(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("recording: 5\n")
        with pytest.raises(ConfigError):
            load_config(str(path))

    def test_negative_limits_clamped(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("recording:\n  max_duration_minutes: -5\n  max_filesize_mb: nonsense\n")
        config = load_config(str(path))
        assert config.recording.max_duration_minutes == 0
        assert config.recording.max_filesize_mb == 0


class TestScalarParsing:

    @pytest.mark.parametrize("value,expected", [
        ("42", 42), ("1,5", 1), (3.9, 3), ("", 7), ("x", 7), (None, 7),
    ])
    def test_as_int(self, value, expected):
        assert as_int(value, 7) == expected


class TestValidateRoomName:

    @pytest.mark.parametrize("room", ["testroom", "test_room", "TestRoom123", "a"])
    def test_valid(self, room):
        validate_room_name(room)

    @pytest.mark.parametrize("room", ["", "test-room", "test room", "test.room", "x" * 51])
    def test_invalid(self, room):
        with pytest.raises(ConfigError):
            validate_room_name(room)


def test_apply_overrides_only_touches_given_values():
    config = Config()
    apply_overrides(config, rooms=["alice"], resolution=480, max_filesize_mb=100, cookies="a=b")
    assert config.monitor.rooms == ["alice"]
    assert config.recording.resolution == 480
    assert config.recording.framerate == 30
    assert config.recording.max_filesize_mb == 100
    assert config.network.cookies == "a=b"
    assert config.recording.output_directory == "./recordings"


def test_apply_overrides_keeps_configured_rooms_without_cli_rooms():
    config = Config()
    config.monitor.rooms = ["bob"]
    apply_overrides(config, rooms=[])
    assert config.monitor.rooms == ["bob"]


def test_domain_trailing_slash():
    assert NetworkConfig(domain="https://a.test").domain_with_trailing_slash() == "https://a.test/"
    assert NetworkConfig(domain="https://a.test/").domain_with_trailing_slash() == "https://a.test/"


def test_example_config_loads(tmp_path):
    path = tmp_path / "config.example.yaml"
    create_example_config(str(path))
    config = load_config(str(path))
    assert config.monitor.rooms == ["room1", "room2"]
    assert config.recording.resolution == 1080
    assert config.network.cookies is None
    assert config.logging.file == "./logs/recorder.log"

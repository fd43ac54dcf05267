"""
Configuration module for Room Recorder.
Loads settings from YAML file and provides typed configuration.
"""

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional

import yaml

from .errors import ConfigError


DEFAULT_FILENAME_PATTERN = (
    "{{.Username}}_{{.Year}}-{{.Month}}-{{.Day}}_{{.Hour}}-{{.Minute}}-{{.Second}}"
)
DEFAULT_DOMAIN = "https://chaturbate.com/"

ROOM_NAME_RE = re.compile(r"^[a-zA-Z0-9_]+$")
MAX_ROOM_NAME_LENGTH = 50


@dataclass
class RecordingConfig:
    """Recording settings."""
    output_directory: str = "./recordings"
    filename_pattern: str = DEFAULT_FILENAME_PATTERN
    max_duration_minutes: int = 0   # 0 = unlimited
    max_filesize_mb: int = 0        # 0 = unlimited
    resolution: int = 1080          # target height
    framerate: int = 30             # target fps
    poll_interval_seconds: float = 1.0
    initial_backlog: int = 2        # segments taken from the first playlist poll


@dataclass
class MonitorConfig:
    """Monitor mode settings."""
    check_interval_seconds: int = 60
    rooms: List[str] = field(default_factory=list)


@dataclass
class NetworkConfig:
    """HTTP settings."""
    domain: str = DEFAULT_DOMAIN
    cookies: Optional[str] = None
    user_agent: Optional[str] = None
    request_timeout_seconds: float = 30.0
    connect_timeout_seconds: float = 10.0

    def domain_with_trailing_slash(self) -> str:
        if self.domain.endswith('/'):
            return self.domain
        return f"{self.domain}/"


@dataclass
class LoggingConfig:
    """Logging settings."""
    level: str = "INFO"
    file: Optional[str] = None
    max_size_mb: int = 10
    backup_count: int = 5


@dataclass
class Config:
    """Main configuration container."""
    recording: RecordingConfig = field(default_factory=RecordingConfig)
    monitor: MonitorConfig = field(default_factory=MonitorConfig)
    network: NetworkConfig = field(default_factory=NetworkConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def as_float(value: Any, default: float) -> float:
    """Parse float from YAML value with safe fallbacks."""
    if value is None:
        return default
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip().replace(",", "."))
        except ValueError:
            return default
    return default


def as_int(value: Any, default: int) -> int:
    """Parse int from YAML value with safe fallbacks."""
    if value is None:
        return default
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return default
        try:
            return int(float(text.replace(",", ".")))
        except ValueError:
            return default
    return default


def as_optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _section(data: dict, name: str) -> dict:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"Section '{name}' must be a mapping", type(section).__name__)
    return section


def load_config(config_path: str = "config.yaml") -> Config:
    """
    Load configuration from YAML file.

    A missing file is not an error: defaults are returned so the recorder
    can run from command-line options alone.

    Args:
        config_path: Path to YAML configuration file.

    Returns:
        Config object with all settings.

    Raises:
        ConfigError: If the file cannot be read or is not valid YAML.
    """
    path = Path(config_path)

    if not path.exists():
        return Config()

    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}", str(e)) from e
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}", str(e)) from e

    if not data:
        return Config()
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")

    defaults = Config()

    recording_data = _section(data, 'recording')
    recording_config = RecordingConfig(
        output_directory=str(recording_data.get('output_directory', defaults.recording.output_directory)),
        filename_pattern=str(recording_data.get('filename_pattern', defaults.recording.filename_pattern)),
        max_duration_minutes=max(0, as_int(recording_data.get('max_duration_minutes'), 0)),
        max_filesize_mb=max(0, as_int(recording_data.get('max_filesize_mb'), 0)),
        resolution=as_int(recording_data.get('resolution'), defaults.recording.resolution),
        framerate=as_int(recording_data.get('framerate'), defaults.recording.framerate),
        poll_interval_seconds=max(0.0, as_float(
            recording_data.get('poll_interval_seconds'), defaults.recording.poll_interval_seconds
        )),
        initial_backlog=max(0, as_int(recording_data.get('initial_backlog'), defaults.recording.initial_backlog)),
    )

    monitor_data = _section(data, 'monitor')
    rooms = monitor_data.get('rooms') or []
    if isinstance(rooms, str):
        rooms = [rooms]
    monitor_config = MonitorConfig(
        check_interval_seconds=max(1, as_int(
            monitor_data.get('check_interval_seconds'), defaults.monitor.check_interval_seconds
        )),
        rooms=[str(room).strip() for room in rooms if str(room).strip()],
    )

    network_data = _section(data, 'network')
    network_config = NetworkConfig(
        domain=str(network_data.get('domain') or DEFAULT_DOMAIN),
        cookies=as_optional_str(network_data.get('cookies')),
        user_agent=as_optional_str(network_data.get('user_agent')),
        request_timeout_seconds=as_float(
            network_data.get('request_timeout_seconds'), defaults.network.request_timeout_seconds
        ),
        connect_timeout_seconds=as_float(
            network_data.get('connect_timeout_seconds'), defaults.network.connect_timeout_seconds
        ),
    )

    logging_data = _section(data, 'logging')
    logging_config = LoggingConfig(
        level=str(logging_data.get('level', 'INFO')),
        file=as_optional_str(logging_data.get('file')),
        max_size_mb=as_int(logging_data.get('max_size_mb'), 10),
        backup_count=as_int(logging_data.get('backup_count'), 5),
    )

    return Config(
        recording=recording_config,
        monitor=monitor_config,
        network=network_config,
        logging=logging_config
    )


def apply_overrides(
    config: Config,
    rooms: Optional[List[str]] = None,
    output_directory: Optional[str] = None,
    resolution: Optional[int] = None,
    framerate: Optional[int] = None,
    cookies: Optional[str] = None,
    user_agent: Optional[str] = None,
    max_duration_minutes: Optional[int] = None,
    max_filesize_mb: Optional[int] = None,
    check_interval_seconds: Optional[int] = None
) -> Config:
    """Merge command-line values into config. None means not given."""
    if rooms:
        config.monitor.rooms = list(rooms)
    if output_directory is not None:
        config.recording.output_directory = output_directory
    if resolution is not None:
        config.recording.resolution = resolution
    if framerate is not None:
        config.recording.framerate = framerate
    if cookies is not None:
        config.network.cookies = cookies
    if user_agent is not None:
        config.network.user_agent = user_agent
    if max_duration_minutes is not None:
        config.recording.max_duration_minutes = max(0, max_duration_minutes)
    if max_filesize_mb is not None:
        config.recording.max_filesize_mb = max(0, max_filesize_mb)
    if check_interval_seconds is not None:
        config.monitor.check_interval_seconds = max(1, check_interval_seconds)
    return config


def validate_room_name(room: str) -> None:
    """
    Check a room name before any request is made.

    Raises:
        ConfigError: If the name is empty, too long or has invalid characters.
    """
    if not room:
        raise ConfigError("Room name cannot be empty")

    if not ROOM_NAME_RE.match(room):
        raise ConfigError(
            f"Room name '{room}' contains invalid characters. "
            "Only letters, numbers, and underscores are allowed."
        )

    if len(room) > MAX_ROOM_NAME_LENGTH:
        raise ConfigError(
            f"Room name '{room}' is too long (max {MAX_ROOM_NAME_LENGTH} characters)"
        )


def create_example_config(path: str = "config.example.yaml") -> None:
    """Create an example configuration file."""
    example = """# Room Recorder Configuration

recording:
  output_directory: ./recordings
  # Fields: {{.Username}} {{.Year}} {{.Month}} {{.Day}} {{.Hour}} {{.Minute}} {{.Second}}
  filename_pattern: "{{.Username}}_{{.Year}}-{{.Month}}-{{.Day}}_{{.Hour}}-{{.Minute}}-{{.Second}}"
  max_duration_minutes: 0  # Split after N minutes, 0 = unlimited
  max_filesize_mb: 0  # Split after N MB, 0 = unlimited
  resolution: 1080  # Target height
  framerate: 30  # 30 or 60

monitor:
  check_interval_seconds: 60  # Seconds between liveness checks
  rooms:
    - room1
    - room2

network:
  domain: https://chaturbate.com/
  cookies:  # e.g. "cf_clearance=...; sessionid=..."
  user_agent:  # Must match the browser the cf_clearance cookie came from

logging:
  level: INFO  # DEBUG, INFO, WARNING, ERROR
  file: ./logs/recorder.log
  max_size_mb: 10
  backup_count: 5
"""
    with open(path, 'w', encoding='utf-8') as f:
        f.write(example)


if __name__ == '__main__':
    # Create example config if run directly
    create_example_config()
    print("Created config.example.yaml")

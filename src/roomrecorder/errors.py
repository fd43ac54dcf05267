"""
Exception types for Room Recorder.

Exception Hierarchy:
    RecorderError (base)
    ├── ConfigError
    ├── DiscoveryError
    │   ├── RoomNotFound
    │   ├── RoomOffline
    │   └── DiscoveryParseError
    ├── TransportError
    │   ├── AccessDenied
    │   ├── CloudflareBlocked
    │   └── AgeVerificationRequired
    ├── PlaylistFetchError
    ├── SegmentFetchError
    └── OutputWriteError
"""

from typing import Optional


# Process exit codes
EXIT_SUCCESS = 0
EXIT_CONFIG_ERROR = 1
EXIT_NETWORK_ERROR = 2
EXIT_RECORDING_ERROR = 3
EXIT_INTERRUPTED = 130


class RecorderError(Exception):
    """Base exception for all Room Recorder errors."""

    def __init__(self, message: str, details: Optional[str] = None):
        """
        Args:
            message: Human-readable error message.
            details: Additional technical details about the error.
        """
        self.message = message
        self.details = details
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if self.details:
            return f"{self.message} ({self.details})"
        return self.message


class ConfigError(RecorderError):
    """Invalid configuration or command-line input."""
    pass


# Discovery errors
class DiscoveryError(RecorderError):
    """Base class for room discovery errors."""

    def __init__(self, room: str, message: str, details: Optional[str] = None):
        self.room = room
        super().__init__(message, details)


class RoomNotFound(DiscoveryError):
    """The room page does not exist."""

    def __init__(self, room: str, details: Optional[str] = None):
        super().__init__(room, f"Room not found: {room}", details)


class RoomOffline(DiscoveryError):
    """The room exists but is not broadcasting. Expected, not fatal."""

    def __init__(self, room: str, details: Optional[str] = None):
        super().__init__(room, f"Broadcaster offline: {room}", details)


class DiscoveryParseError(DiscoveryError):
    """The room page loaded but its shape was not what we expect."""

    def __init__(self, room: str, details: Optional[str] = None):
        super().__init__(room, f"Could not parse stream info for room: {room}", details)


# Transport errors
class TransportError(RecorderError):
    """HTTP request failed (connection, timeout or bad status)."""

    def __init__(
        self,
        url: str,
        status: Optional[int] = None,
        details: Optional[str] = None,
        message: Optional[str] = None
    ):
        self.url = url
        self.status = status
        if message is None:
            message = f"HTTP {status} for {url}" if status else f"Request failed: {url}"
        super().__init__(message, details)


class AccessDenied(TransportError):
    """HTTP 403, usually a private room needing a session cookie."""

    def __init__(self, url: str):
        super().__init__(
            url,
            status=403,
            message="Private stream - authentication required (need valid sessionid cookie)"
        )


class CloudflareBlocked(TransportError):
    """Request answered with a Cloudflare challenge page."""

    def __init__(self, url: str):
        super().__init__(
            url,
            message=(
                "Cloudflare blocked request - cookies expired or User-Agent mismatch. "
                "Refresh cf_clearance cookie."
            )
        )


class AgeVerificationRequired(TransportError):
    """Request answered with the age verification page."""

    def __init__(self, url: str):
        super().__init__(url, message="Age verification required")


# Recording errors
class PlaylistFetchError(RecorderError):
    """Media playlist could not be fetched or parsed."""

    def __init__(self, url: str, details: Optional[str] = None):
        self.url = url
        super().__init__(f"Failed to fetch playlist: {url}", details)


class SegmentFetchError(RecorderError):
    """Segment download failed after all retry attempts."""

    def __init__(self, sequence: int, url: str, attempts: int, details: Optional[str] = None):
        self.sequence = sequence
        self.url = url
        self.attempts = attempts
        super().__init__(
            f"Segment {sequence} download failed after {attempts} attempts",
            details
        )


class OutputWriteError(RecorderError):
    """Writing the output file failed."""

    def __init__(self, path: str, details: Optional[str] = None):
        self.path = path
        super().__init__(f"Failed to write output file: {path}", details)


def exit_code_for(error: BaseException) -> int:
    """Map an error that stops the process to its exit code."""
    if isinstance(error, ConfigError):
        return EXIT_CONFIG_ERROR
    if isinstance(error, TransportError):
        return EXIT_NETWORK_ERROR
    return EXIT_RECORDING_ERROR

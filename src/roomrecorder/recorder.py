"""
Room recorder module for Room Recorder.

Runs the recording lifecycle of one room:
RESOLVING -> RECORDING -> (SPLITTING)* -> ENDED | FAILED | CANCELLED
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional

from .config import Config
from .discovery import StreamInfo, resolve_stream
from .errors import (
    EXIT_SUCCESS,
    DiscoveryError,
    OutputWriteError,
    PlaylistFetchError,
    RecorderError,
    RoomOffline,
    SegmentFetchError,
    TransportError,
    exit_code_for,
)
from .logger import get_room_logger
from .segments import (
    DOWNLOAD_ATTEMPTS,
    DOWNLOAD_RETRY_DELAY,
    SegmentRef,
    SegmentTracker,
    download_segment,
)
from .sink import RecordingSink


MAX_POLL_FAILURES = 3


class RoomState(Enum):
    """Room lifecycle states."""
    UNKNOWN = "unknown"
    OFFLINE = "offline"
    ONLINE = "online"
    RESOLVING = "resolving"
    RECORDING = "recording"
    SPLITTING = "splitting"
    ENDED = "ended"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (RoomState.ENDED, RoomState.FAILED, RoomState.CANCELLED)


class EventKind(Enum):
    """Events emitted while a room is recorded."""
    STATE_CHANGED = "state_changed"
    SEGMENT_WRITTEN = "segment_written"
    FILE_SPLIT = "file_split"
    SEGMENT_GAP = "segment_gap"


@dataclass
class RecorderEvent:
    """Lifecycle event for the presentation layer."""
    kind: EventKind
    room: str
    state: RoomState
    path: Optional[str] = None
    sequence: Optional[int] = None
    bytes_written: int = 0
    message: Optional[str] = None


@dataclass
class RecordingStats:
    """Totals for one room."""
    segments_downloaded: int = 0
    bytes_written: int = 0
    duration_seconds: float = 0.0
    files_created: int = 0
    gaps: List[int] = field(default_factory=list)


@dataclass
class RecordingResult:
    """Result of a room recording."""
    room: str
    state: RoomState
    stats: RecordingStats
    files: List[str]
    started_at: datetime
    ended_at: datetime
    stream_info: Optional[StreamInfo] = None
    error: Optional[str] = None
    status_code: int = EXIT_SUCCESS     # process exit code for this outcome

    @property
    def duration_formatted(self) -> str:
        """Get human-readable media duration."""
        total = int(self.stats.duration_seconds)
        hours = total // 3600
        minutes = (total % 3600) // 60
        seconds = total % 60
        if hours > 0:
            return f"{hours}h {minutes}m {seconds}s"
        if minutes > 0:
            return f"{minutes}m {seconds}s"
        return f"{seconds}s"

    @property
    def size_formatted(self) -> str:
        """Get human-readable size."""
        size = float(self.stats.bytes_written)
        for unit in ['B', 'KB', 'MB', 'GB']:
            if size < 1024:
                return f"{size:.2f} {unit}"
            size /= 1024
        return f"{size:.2f} TB"


async def wait_cancelled(cancel_event: asyncio.Event, timeout: float) -> bool:
    """
    Sleep for timeout seconds or until cancel_event is set.

    Returns:
        True if cancellation was requested.
    """
    if cancel_event.is_set():
        return True
    try:
        await asyncio.wait_for(cancel_event.wait(), timeout=timeout)
    except asyncio.TimeoutError:
        pass
    return cancel_event.is_set()


class RoomRecorder:
    """
    Records one room from discovery to a terminal state.

    Features:
    - Strictly sequential poll -> download -> write
    - Lost segments are logged as gaps, recording goes on
    - Cancellation honoured only between segments
    """

    def __init__(
        self,
        client,
        config: Config,
        cancel_event: asyncio.Event,
        on_event: Optional[Callable[[RecorderEvent], None]] = None,
        download_attempts: int = DOWNLOAD_ATTEMPTS,
        download_retry_delay: float = DOWNLOAD_RETRY_DELAY
    ):
        """
        Initialize room recorder.

        Args:
            client: HTTP capability shared by all rooms.
            config: Application configuration (read-only).
            cancel_event: Broadcast cancellation signal.
            on_event: Optional callback for lifecycle events.
            download_attempts: Attempts per segment.
            download_retry_delay: Seconds between segment attempts.
        """
        self.client = client
        self.config = config
        self.cancel_event = cancel_event
        self.on_event = on_event
        self.download_attempts = download_attempts
        self.download_retry_delay = download_retry_delay

    def _emit(self, event: RecorderEvent) -> None:
        if self.on_event:
            self.on_event(event)

    def _set_state(self, room: str, state: RoomState, message: Optional[str] = None) -> RoomState:
        self._emit(RecorderEvent(kind=EventKind.STATE_CHANGED, room=room, state=state, message=message))
        return state

    async def run(
        self,
        room: str,
        stream_info: Optional[StreamInfo] = None,
        monitor_mode: bool = False
    ) -> RecordingResult:
        """
        Record a room until the stream ends, fails or is cancelled.

        Args:
            room: Room name.
            stream_info: Already resolved stream, skips discovery.
            monitor_mode: Re-raise RoomOffline to the caller instead of
                ending the room.

        Returns:
            RecordingResult with the terminal state.

        Raises:
            RoomOffline: Only in monitor mode.
        """
        logger = get_room_logger(room)
        started_at = datetime.now()
        stats = RecordingStats()
        rec = self.config.recording
        sink = RecordingSink(
            room=room,
            output_dir=rec.output_directory,
            filename_pattern=rec.filename_pattern,
            max_duration_minutes=rec.max_duration_minutes,
            max_filesize_mb=rec.max_filesize_mb
        )
        failure: Optional[RecorderError] = None

        if stream_info is None:
            self._set_state(room, RoomState.RESOLVING)
            try:
                stream_info = await resolve_stream(self.client, room, rec.resolution, rec.framerate)
            except RoomOffline as e:
                if monitor_mode:
                    raise
                logger.info(f"{room} is offline")
                state = self._set_state(room, RoomState.ENDED, e.message)
                return self._result(room, state, stats, sink, started_at, None, None)
            except (DiscoveryError, TransportError) as e:
                logger.error(f"Discovery failed: {e}")
                state = self._set_state(room, RoomState.FAILED, str(e))
                return self._result(room, state, stats, sink, started_at, None, e)

        logger.info(
            f"Recording at {stream_info.resolution}p{stream_info.framerate}fps "
            f"from {stream_info.playlist_url}"
        )
        self._set_state(room, RoomState.RECORDING)

        try:
            state = await self._record(room, stream_info, sink, stats)
        except (PlaylistFetchError, OutputWriteError) as e:
            logger.error(f"Recording failed: {e}")
            state, failure = RoomState.FAILED, e
        finally:
            try:
                await sink.close()
            except OutputWriteError as e:
                logger.error(f"Closing output failed: {e}")
                state, failure = RoomState.FAILED, e

        stats.files_created = len(sink.files)
        self._set_state(room, state, str(failure) if failure else None)
        logger.info(
            f"Recording {state.value}: {stats.segments_downloaded} segments, "
            f"{stats.bytes_written / 1024 / 1024:.2f} MB, {stats.duration_seconds:.0f}s, "
            f"{len(stats.gaps)} gaps"
        )
        return self._result(room, state, stats, sink, started_at, stream_info, failure)

    async def _record(
        self,
        room: str,
        stream_info: StreamInfo,
        sink: RecordingSink,
        stats: RecordingStats
    ) -> RoomState:
        """Poll/download/write loop. Returns the terminal state."""
        logger = get_room_logger(room)
        tracker = SegmentTracker(initial_backlog=self.config.recording.initial_backlog)
        poll_interval = self.config.recording.poll_interval_seconds
        poll_failures = 0

        while True:
            if self.cancel_event.is_set():
                logger.info("Recording cancelled")
                return RoomState.CANCELLED

            try:
                snapshot = await tracker.poll(self.client, stream_info.playlist_url)
            except PlaylistFetchError as e:
                poll_failures += 1
                logger.warning(f"Playlist poll failed ({poll_failures}/{MAX_POLL_FAILURES}): {e}")
                if poll_failures >= MAX_POLL_FAILURES:
                    raise
                if await wait_cancelled(self.cancel_event, poll_interval):
                    logger.info("Recording cancelled")
                    return RoomState.CANCELLED
                continue

            poll_failures = 0

            for segment in snapshot.segments:
                await self._record_segment(room, segment, sink, stats)
                if self.cancel_event.is_set():
                    logger.info("Recording cancelled")
                    return RoomState.CANCELLED

            if snapshot.ended:
                logger.info("Stream ended")
                return RoomState.ENDED

            if await wait_cancelled(self.cancel_event, poll_interval):
                logger.info("Recording cancelled")
                return RoomState.CANCELLED

    async def _record_segment(
        self,
        room: str,
        segment: SegmentRef,
        sink: RecordingSink,
        stats: RecordingStats
    ) -> None:
        logger = get_room_logger(room)

        try:
            data = await download_segment(
                self.client,
                segment,
                attempts=self.download_attempts,
                delay=self.download_retry_delay
            )
        except SegmentFetchError as e:
            logger.warning(f"Gap at segment {segment.sequence}: {e}")
            stats.gaps.append(segment.sequence)
            self._emit(RecorderEvent(
                kind=EventKind.SEGMENT_GAP,
                room=room,
                state=RoomState.RECORDING,
                path=str(sink.current_path) if sink.current_path else None,
                sequence=segment.sequence,
                bytes_written=stats.bytes_written,
                message=str(e)
            ))
            return

        split = await sink.write(segment, data)
        path = str(sink.files[-1])

        stats.segments_downloaded += 1
        stats.bytes_written += len(data)
        stats.duration_seconds += segment.duration
        logger.debug(f"Segment {segment.sequence}: {len(data)} bytes")

        self._emit(RecorderEvent(
            kind=EventKind.SEGMENT_WRITTEN,
            room=room,
            state=RoomState.RECORDING,
            path=path,
            sequence=segment.sequence,
            bytes_written=stats.bytes_written
        ))
        if split:
            self._emit(RecorderEvent(
                kind=EventKind.FILE_SPLIT,
                room=room,
                state=RoomState.SPLITTING,
                path=path,
                sequence=segment.sequence,
                bytes_written=stats.bytes_written
            ))

    def _result(
        self,
        room: str,
        state: RoomState,
        stats: RecordingStats,
        sink: RecordingSink,
        started_at: datetime,
        stream_info: Optional[StreamInfo],
        failure: Optional[Exception]
    ) -> RecordingResult:
        return RecordingResult(
            room=room,
            state=state,
            stats=stats,
            files=[str(p) for p in sink.files],
            started_at=started_at,
            ended_at=datetime.now(),
            stream_info=stream_info,
            error=str(failure) if failure else None,
            status_code=exit_code_for(failure) if failure else EXIT_SUCCESS
        )

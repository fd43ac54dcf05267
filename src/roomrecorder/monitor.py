"""
Room monitor for Room Recorder.
Polls a room until it goes live, records it, then goes back to polling.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional

from .config import Config
from .discovery import resolve_stream
from .errors import DiscoveryError, RoomOffline, TransportError
from .logger import get_room_logger
from .recorder import (
    EventKind,
    RecorderEvent,
    RecordingResult,
    RoomRecorder,
    RoomState,
    wait_cancelled,
)


@dataclass
class MonitorEntry:
    """Liveness polling state of one room."""
    room: str
    check_interval: float
    last_checked: Optional[datetime] = None
    state: RoomState = RoomState.UNKNOWN


class RoomMonitor:
    """
    Waits for one room to come online and records it.

    Each monitored room gets its own RoomMonitor.run task, so a slow check
    or a long recording in one room never delays another room.
    """

    def __init__(
        self,
        client,
        config: Config,
        cancel_event: asyncio.Event,
        on_event: Optional[Callable[[RecorderEvent], None]] = None,
        recorder: Optional[RoomRecorder] = None
    ):
        """
        Initialize room monitor.

        Args:
            client: HTTP capability shared by all rooms.
            config: Application configuration (read-only).
            cancel_event: Broadcast cancellation signal.
            on_event: Optional callback for lifecycle events.
            recorder: Recorder to run when the room goes live.
        """
        self.client = client
        self.config = config
        self.cancel_event = cancel_event
        self.on_event = on_event
        self.recorder = recorder or RoomRecorder(client, config, cancel_event, on_event)

    def _set_state(self, entry: MonitorEntry, state: RoomState) -> None:
        entry.state = state
        if self.on_event:
            self.on_event(RecorderEvent(kind=EventKind.STATE_CHANGED, room=entry.room, state=state))

    async def run(self, room: str) -> List[RecordingResult]:
        """
        Monitor a room until cancellation.

        Returns:
            Results of every recording made while monitoring.
        """
        logger = get_room_logger(room)
        entry = MonitorEntry(room=room, check_interval=self.config.monitor.check_interval_seconds)
        results: List[RecordingResult] = []
        rec = self.config.recording

        logger.info(f"Monitoring, checking every {entry.check_interval}s")

        while not self.cancel_event.is_set():
            entry.last_checked = datetime.now()

            try:
                stream_info = await resolve_stream(self.client, room, rec.resolution, rec.framerate)

            except RoomOffline:
                if entry.state != RoomState.OFFLINE:
                    logger.info(f"{room} is offline")
                    self._set_state(entry, RoomState.OFFLINE)

            except (DiscoveryError, TransportError) as e:
                logger.warning(f"Check failed: {e}")

            except Exception as e:
                logger.error(f"Monitor error: {e}", exc_info=True)

            else:
                logger.info(
                    f"{room} is ONLINE at {stream_info.resolution}p{stream_info.framerate}fps "
                    f"- starting recording"
                )
                self._set_state(entry, RoomState.ONLINE)

                result = await self.recorder.run(room, stream_info=stream_info, monitor_mode=True)
                results.append(result)
                logger.info(
                    f"Recording {result.state.value} - {result.stats.segments_downloaded} segments, "
                    f"{result.size_formatted}"
                )
                # Re-arm: the next check decides whether the room is still live
                entry.state = RoomState.UNKNOWN

            if await wait_cancelled(self.cancel_event, entry.check_interval):
                break

        logger.info("Monitor stopped")
        return results

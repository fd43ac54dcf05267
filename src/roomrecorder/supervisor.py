"""
Supervisor for Room Recorder.
Runs every configured room concurrently and shuts them all down together.
"""

import asyncio
import signal
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from .config import Config
from .errors import EXIT_NETWORK_ERROR, EXIT_RECORDING_ERROR, EXIT_SUCCESS, exit_code_for
from .http_client import SiteClient
from .logger import get_logger
from .monitor import RoomMonitor
from .recorder import (
    RecorderEvent,
    RecordingResult,
    RecordingStats,
    RoomRecorder,
    RoomState,
)


def merge_results(room: str, results: List[RecordingResult], started_at: datetime) -> RecordingResult:
    """Fold the recordings a monitored room made into one summary."""
    stats = RecordingStats()
    files: List[str] = []
    error = None
    for result in results:
        stats.segments_downloaded += result.stats.segments_downloaded
        stats.bytes_written += result.stats.bytes_written
        stats.duration_seconds += result.stats.duration_seconds
        stats.files_created += result.stats.files_created
        stats.gaps.extend(result.stats.gaps)
        files.extend(result.files)
        if result.error:
            error = result.error

    return RecordingResult(
        room=room,
        state=RoomState.CANCELLED,
        stats=stats,
        files=files,
        started_at=started_at,
        ended_at=datetime.now(),
        stream_info=results[-1].stream_info if results else None,
        error=error
    )


def exit_code(results: Dict[str, RecordingResult]) -> int:
    """
    Non-zero when any room ended FAILED.

    EXIT_NETWORK_ERROR only when every failed room failed on the network,
    EXIT_RECORDING_ERROR otherwise.
    """
    failed = [result for result in results.values() if result.state == RoomState.FAILED]
    if not failed:
        return EXIT_SUCCESS
    codes = {result.status_code or EXIT_RECORDING_ERROR for result in failed}
    if codes == {EXIT_NETWORK_ERROR}:
        return EXIT_NETWORK_ERROR
    return EXIT_RECORDING_ERROR


class Supervisor:
    """
    Owns the per-room tasks and the broadcast cancellation signal.

    Features:
    - One asyncio task per room, no shared mutable state between them
    - A failing room never affects its siblings
    - Shutdown waits for every room to close its file
    """

    def __init__(
        self,
        config: Config,
        client=None,
        on_event: Optional[Callable[[RecorderEvent], None]] = None
    ):
        """
        Initialize supervisor.

        Args:
            config: Application configuration.
            client: HTTP capability. A SiteClient is created when omitted.
            on_event: Optional callback for lifecycle events of every room.
        """
        self.config = config
        self.on_event = on_event
        self._owns_client = client is None
        self.client = client if client is not None else SiteClient(config.network)
        self.cancel_event = asyncio.Event()
        self._logger = get_logger('supervisor')

    def cancel(self) -> None:
        """Ask every room to stop at its next segment or poll boundary."""
        if not self.cancel_event.is_set():
            self._logger.info("Shutdown requested, finishing in-flight segments...")
        self.cancel_event.set()

    def install_signal_handlers(self) -> None:
        """Route SIGINT and SIGTERM to cancel()."""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.cancel)
            except NotImplementedError:
                # Windows: Ctrl+C surfaces as KeyboardInterrupt instead
                pass

    async def run(self, rooms: Iterable[str], monitor: bool = False) -> Dict[str, RecordingResult]:
        """
        Record rooms concurrently until each reaches a terminal state.

        Args:
            rooms: Room names. Duplicates are recorded once.
            monitor: Wait for rooms to come online instead of recording once.

        Returns:
            Mapping room -> final RecordingResult.
        """
        unique_rooms = list(dict.fromkeys(rooms))
        started_at = datetime.now()

        if self._owns_client:
            await self.client.connect()

        try:
            tasks = {
                room: asyncio.create_task(self._run_room(room, monitor, started_at))
                for room in unique_rooms
            }
            outcomes = await asyncio.gather(*tasks.values(), return_exceptions=True)
        finally:
            if self._owns_client:
                await self.client.disconnect()

        results: Dict[str, RecordingResult] = {}
        for room, outcome in zip(tasks, outcomes):
            if isinstance(outcome, BaseException):
                self._logger.error(f"{room}: task error: {outcome!r}")
                outcome = RecordingResult(
                    room=room,
                    state=RoomState.FAILED,
                    stats=RecordingStats(),
                    files=[],
                    started_at=started_at,
                    ended_at=datetime.now(),
                    error=str(outcome) or type(outcome).__name__,
                    status_code=exit_code_for(outcome)
                )
            results[room] = outcome

        return results

    async def _run_room(self, room: str, monitor: bool, started_at: datetime) -> RecordingResult:
        recorder = RoomRecorder(self.client, self.config, self.cancel_event, self.on_event)
        if monitor:
            room_monitor = RoomMonitor(
                self.client, self.config, self.cancel_event, self.on_event, recorder=recorder
            )
            return merge_results(room, await room_monitor.run(room), started_at)
        return await recorder.run(room)

"""
Recording sink for Room Recorder.

Appends segment bytes to a .ts file and rolls over to a new file once the
configured duration or size is reached. Rollover only happens between two
segments, so every file is a complete transport stream on its own.
"""

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, List, Optional

import aiofiles

from .errors import OutputWriteError
from .logger import get_room_logger
from .segments import SegmentRef


def render_filename(pattern: str, room: str, now: datetime) -> str:
    """Substitute the {{.Field}} placeholders of a filename pattern."""
    return (
        pattern
        .replace("{{.Username}}", room)
        .replace("{{.Year}}", now.strftime("%Y"))
        .replace("{{.Month}}", now.strftime("%m"))
        .replace("{{.Day}}", now.strftime("%d"))
        .replace("{{.Hour}}", now.strftime("%H"))
        .replace("{{.Minute}}", now.strftime("%M"))
        .replace("{{.Second}}", now.strftime("%S"))
    )


def generate_output_path(
    output_dir: str,
    pattern: str,
    room: str,
    part: int = 0,
    now: Optional[datetime] = None
) -> Path:
    """
    Build the path of an output file.

    Part 0 is "<name>.ts", later parts are "<name>_000001.ts", "<name>_000002.ts"...
    which keeps split files in recording order when sorted by name.
    """
    filename = render_filename(pattern, room, now or datetime.now())
    if part > 0:
        filename = f"{filename}_{part:06d}"
    return Path(output_dir) / f"{filename}.ts"


@dataclass
class RecordingSession:
    """One open output file."""
    path: Path
    handle: Any
    started_at: datetime
    bytes_written: int = 0
    duration_seconds: float = 0.0
    segment_count: int = 0


class RecordingSink:
    """
    Single-writer output for one room.

    The file is opened on the first write, so nothing is created for a room
    that never delivers a segment.
    """

    def __init__(
        self,
        room: str,
        output_dir: str,
        filename_pattern: str,
        max_duration_minutes: int = 0,
        max_filesize_mb: int = 0
    ):
        """
        Args:
            room: Room name, used in filenames.
            output_dir: Directory for recordings.
            filename_pattern: Pattern with {{.Username}}, {{.Year}}... fields.
            max_duration_minutes: Split threshold, 0 = unlimited.
            max_filesize_mb: Split threshold, 0 = unlimited.
        """
        self.room = room
        self.output_dir = output_dir
        self.filename_pattern = filename_pattern
        self.max_duration_seconds = max(0, max_duration_minutes) * 60.0
        self.max_filesize_bytes = max(0, max_filesize_mb) * 1024 * 1024

        self.session: Optional[RecordingSession] = None
        self.files: List[Path] = []
        self.total_bytes = 0
        self.total_duration = 0.0
        self._part = 0
        self._logger = get_room_logger(room)

    @property
    def current_path(self) -> Optional[Path]:
        return self.session.path if self.session else None

    def should_split(self) -> bool:
        """True when the open file reached a configured threshold."""
        if not self.session:
            return False
        if self.max_duration_seconds > 0 and self.session.duration_seconds >= self.max_duration_seconds:
            return True
        if self.max_filesize_bytes > 0 and self.session.bytes_written >= self.max_filesize_bytes:
            return True
        return False

    def _next_path(self) -> Path:
        now = datetime.now()
        path = generate_output_path(self.output_dir, self.filename_pattern, self.room, self._part, now)
        # Never clobber an earlier file that rendered to the same name
        while path.exists() or path in self.files:
            self._part += 1
            path = generate_output_path(self.output_dir, self.filename_pattern, self.room, self._part, now)
        self._part += 1
        return path

    async def _open(self) -> RecordingSession:
        path = self._next_path()
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            handle = await aiofiles.open(path, 'wb')
        except OSError as e:
            raise OutputWriteError(str(path), str(e)) from e

        self.session = RecordingSession(path=path, handle=handle, started_at=datetime.now())
        self.files.append(path)
        self._logger.info(f"Writing to {path}")
        return self.session

    async def write(self, segment: SegmentRef, data: bytes) -> bool:
        """
        Append one segment and split if a threshold was reached.

        Returns:
            True if the file was closed for a split after this segment.

        Raises:
            OutputWriteError: If the file cannot be opened or written.
        """
        session = self.session or await self._open()

        try:
            await session.handle.write(data)
        except OSError as e:
            raise OutputWriteError(str(session.path), str(e)) from e

        session.bytes_written += len(data)
        session.duration_seconds += segment.duration
        session.segment_count += 1
        self.total_bytes += len(data)
        self.total_duration += segment.duration

        if self.should_split():
            self._logger.info(
                f"Split: {session.path.name} "
                f"({session.bytes_written / 1024 / 1024:.1f} MB, {session.duration_seconds:.0f}s)"
            )
            await self.close()
            return True
        return False

    async def close(self) -> None:
        """Flush and close the open file, if any."""
        session = self.session
        if not session:
            return
        self.session = None
        try:
            await session.handle.flush()
        except OSError as e:
            raise OutputWriteError(str(session.path), str(e)) from e
        finally:
            await session.handle.close()

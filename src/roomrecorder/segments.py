"""
Segment tracking and download for Room Recorder.

SegmentTracker turns successive media playlist polls into the ordered list
of segments not seen before. download_segment fetches one segment with a
small fixed retry budget.
"""

import asyncio
import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional
from urllib.parse import urljoin

import m3u8

from .errors import PlaylistFetchError, SegmentFetchError, TransportError
from .logger import get_logger


SEQUENCE_RE = re.compile(r'_(\d+)\.ts(?:\?.*)?$')

DOWNLOAD_ATTEMPTS = 3
DOWNLOAD_RETRY_DELAY = 0.6  # seconds, fixed


@dataclass
class SegmentRef:
    """A media segment listed by the playlist."""
    sequence: int
    uri: str
    duration: float = 0.0
    size: Optional[int] = None


@dataclass
class PlaylistSnapshot:
    """Outcome of one playlist poll."""
    segments: List[SegmentRef] = field(default_factory=list)
    ended: bool = False


def extract_sequence(uri: str) -> Optional[int]:
    """Sequence number encoded in a segment URI (..._<n>.ts), if any."""
    match = SEQUENCE_RE.search(uri)
    if match:
        return int(match.group(1))
    return None


def parse_media_playlist(playlist_url: str, content: str) -> PlaylistSnapshot:
    """
    Parse a media playlist into segment references.

    Segment URIs are made absolute against playlist_url. A URI without an
    embedded sequence number gets EXT-X-MEDIA-SEQUENCE + its index.

    Raises:
        PlaylistFetchError: If content is not an M3U8 document.
    """
    content = content.lstrip('\ufeff \r\n\t')
    if not content.startswith('#EXTM3U'):
        raise PlaylistFetchError(playlist_url, "response is not an M3U8 playlist")

    try:
        playlist = m3u8.loads(content, uri=playlist_url)
    except Exception as e:
        raise PlaylistFetchError(playlist_url, f"unparseable playlist: {e}") from e

    media_sequence = playlist.media_sequence or 0
    segments = []
    for index, segment in enumerate(playlist.segments):
        if not segment.uri:
            continue
        sequence = extract_sequence(segment.uri)
        if sequence is None:
            sequence = media_sequence + index
        segments.append(SegmentRef(
            sequence=sequence,
            uri=urljoin(playlist_url, segment.uri),
            duration=float(segment.duration or 0.0),
        ))

    return PlaylistSnapshot(segments=segments, ended=bool(playlist.is_endlist))


class SegmentTracker:
    """
    Remembers the highest sequence already handed out for one room.

    The first poll does not return the whole backlog the playlist lists:
    it seeds the state at the newest sequence minus initial_backlog.
    """

    def __init__(self, initial_backlog: int = 2):
        self.initial_backlog = max(0, initial_backlog)
        self.last_sequence: Optional[int] = None
        self._logger = get_logger('tracker')

    def select(self, segments: Iterable[SegmentRef]) -> List[SegmentRef]:
        """
        Return segments newer than last_sequence, ascending, without
        duplicates, and advance last_sequence past them.
        """
        unique = {}
        for segment in segments:
            unique.setdefault(segment.sequence, segment)

        if not unique:
            return []

        if self.last_sequence is None:
            self.last_sequence = max(unique) - self.initial_backlog
            self._logger.debug(f"Seeded tracker at sequence {self.last_sequence}")

        fresh = [unique[seq] for seq in sorted(unique) if seq > self.last_sequence]
        if fresh:
            self.last_sequence = fresh[-1].sequence
        return fresh

    async def poll(self, client, playlist_url: str) -> PlaylistSnapshot:
        """
        Fetch the media playlist and return the new segments.

        Raises:
            PlaylistFetchError: If the playlist cannot be fetched or parsed.
        """
        try:
            content = await client.get_text(playlist_url)
        except TransportError as e:
            raise PlaylistFetchError(playlist_url, str(e)) from e

        snapshot = parse_media_playlist(playlist_url, content)
        return PlaylistSnapshot(segments=self.select(snapshot.segments), ended=snapshot.ended)


async def download_segment(
    client,
    segment: SegmentRef,
    attempts: int = DOWNLOAD_ATTEMPTS,
    delay: float = DOWNLOAD_RETRY_DELAY
) -> bytes:
    """
    Download one segment.

    Args:
        client: HTTP capability (get_bytes).
        segment: Segment to fetch. Its size is set on success.
        attempts: Total attempts.
        delay: Seconds between attempts.

    Returns:
        Segment bytes.

    Raises:
        SegmentFetchError: After the last attempt failed.
    """
    logger = get_logger('download')
    last_error: Optional[Exception] = None

    for attempt in range(1, attempts + 1):
        try:
            data = await client.get_bytes(segment.uri)
            if data:
                segment.size = len(data)
                return data
            last_error = None
            logger.debug(f"Segment {segment.sequence}: empty body (attempt {attempt}/{attempts})")
        except TransportError as e:
            last_error = e
            logger.debug(f"Segment {segment.sequence}: {e} (attempt {attempt}/{attempts})")

        if attempt < attempts:
            await asyncio.sleep(delay)

    details = str(last_error) if last_error else "empty response body"
    raise SegmentFetchError(segment.sequence, segment.uri, attempts, details) from last_error

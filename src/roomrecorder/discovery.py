"""
Stream discovery for Room Recorder.

Turns a room name into the media playlist to record:
room page -> initialRoomDossier JSON -> hls_source master playlist -> variant.
"""

import json
import re
from dataclasses import dataclass
from typing import List, Optional
from urllib.parse import urljoin

import m3u8

from .errors import DiscoveryParseError, RoomNotFound, RoomOffline, TransportError
from .logger import get_room_logger


LIVE_PLAYLIST_MARKER = "playlist.m3u8"

# Escaped quotes are skipped so the match stops at the closing quote.
DOSSIER_RE = re.compile(
    r'window\.initialRoomDossier\s*=\s*"((?:[^"\\]|\\.){1,262144})"'
)

ESCAPE_RE = re.compile(r'\\(?:u([0-9a-fA-F]{4})|([nrt"\\/]))')
SIMPLE_ESCAPES = {'n': '\n', 'r': '\r', 't': '\t', '"': '"', '\\': '\\', '/': '/'}

HIGH_FRAMERATE_NAME = "FPS:60"
DEFAULT_FRAMERATE = 30


@dataclass(frozen=True)
class PlaylistVariant:
    """One quality entry of a master playlist."""
    url: str
    resolution: int     # height in pixels, 0 when not declared
    framerate: int
    bandwidth: int


@dataclass(frozen=True)
class StreamInfo:
    """Result of discovery: the variant chosen for a room."""
    room: str
    variant: PlaylistVariant
    master_url: str

    @property
    def playlist_url(self) -> str:
        return self.variant.url

    @property
    def resolution(self) -> int:
        return self.variant.resolution

    @property
    def framerate(self) -> int:
        return self.variant.framerate


def decode_unicode_escapes(text: str) -> str:
    """
    Decode JavaScript string escapes (\\uXXXX, \\n, \\", ...).

    Unknown escapes are left untouched. UTF-16 surrogate pairs produced by
    consecutive \\uXXXX escapes are joined into one character.
    """
    def replace(match: re.Match) -> str:
        if match.group(1):
            return chr(int(match.group(1), 16))
        return SIMPLE_ESCAPES[match.group(2)]

    decoded = ESCAPE_RE.sub(replace, text)
    return decoded.encode('utf-16', 'surrogatepass').decode('utf-16', 'replace')


def extract_hls_source(room: str, html: str) -> str:
    """
    Pull the master playlist URL out of a room page.

    Raises:
        RoomOffline: No live playlist on the page, or an empty hls_source.
        DiscoveryParseError: The page does not have the expected shape.
    """
    if LIVE_PLAYLIST_MARKER not in html:
        raise RoomOffline(room)

    match = DOSSIER_RE.search(html)
    if not match:
        raise DiscoveryParseError(room, "initialRoomDossier not found in page")

    try:
        dossier = json.loads(decode_unicode_escapes(match.group(1)))
    except ValueError as e:
        raise DiscoveryParseError(room, f"invalid dossier JSON: {e}") from e

    if not isinstance(dossier, dict):
        raise DiscoveryParseError(room, "dossier is not a JSON object")

    hls_source = dossier.get('hls_source')
    if hls_source is None or not isinstance(hls_source, str):
        raise DiscoveryParseError(room, "dossier has no hls_source")
    if not hls_source:
        raise RoomOffline(room, "hls_source is empty")

    return hls_source


def _parse_height(resolution: Optional[str]) -> int:
    if not resolution:
        return 0
    match = re.match(r'\s*(\d+)\s*x\s*(\d+)', str(resolution))
    return int(match.group(2)) if match else 0


def _parse_framerate(stream_info: dict) -> int:
    frame_rate = stream_info.get('frame_rate')
    if frame_rate:
        return int(round(float(frame_rate)))
    # NAME is not a standard attribute; m3u8 keeps it raw, quotes included
    name = str(stream_info.get('name') or '')
    if HIGH_FRAMERATE_NAME in name:
        return 60
    return DEFAULT_FRAMERATE


def parse_variants(master_url: str, content: str) -> List[PlaylistVariant]:
    """
    Parse the variants of a master playlist.

    A media playlist (segments, no variants) is returned as a single variant
    pointing at master_url, with resolution 0.
    """
    # m3u8.parse keeps every EXT-X-STREAM-INF attribute, including NAME
    data = m3u8.parse(content)

    variants = []
    for entry in data.get('playlists', []):
        stream_info = entry.get('stream_info') or {}
        variants.append(PlaylistVariant(
            url=urljoin(master_url, entry['uri']),
            resolution=_parse_height(stream_info.get('resolution')),
            framerate=_parse_framerate(stream_info),
            bandwidth=int(stream_info.get('bandwidth') or 0),
        ))

    if not variants and data.get('segments'):
        variants.append(PlaylistVariant(
            url=master_url,
            resolution=0,
            framerate=DEFAULT_FRAMERATE,
            bandwidth=0,
        ))

    return variants


def select_variant(
    variants: List[PlaylistVariant],
    target_resolution: int,
    target_framerate: int
) -> PlaylistVariant:
    """
    Pick the variant to record.

    Resolution first: the exact target height, else the greatest height below
    it, else the lowest height available. Among variants of that height, one
    at the target framerate wins; otherwise the highest framerate. Remaining
    ties go to the highest bandwidth, then to playlist order.

    An exact framerate match beats a higher framerate with more bandwidth,
    kept compatible with the previous recorder's choice.
    """
    if not variants:
        raise ValueError("no variants to select from")

    heights = {v.resolution for v in variants}
    if target_resolution in heights:
        height = target_resolution
    else:
        below = [h for h in heights if h <= target_resolution]
        height = max(below) if below else min(heights)

    pool = [v for v in variants if v.resolution == height]

    exact_fps = [v for v in pool if v.framerate == target_framerate]
    if exact_fps:
        return max(exact_fps, key=lambda v: v.bandwidth)

    return max(pool, key=lambda v: (v.framerate, v.bandwidth))


async def resolve_stream(
    client,
    room: str,
    target_resolution: int,
    target_framerate: int
) -> StreamInfo:
    """
    Resolve the media playlist for a room.

    Args:
        client: HTTP capability (get_room_page, get_text).
        room: Room name.
        target_resolution: Wanted height.
        target_framerate: Wanted fps.

    Returns:
        StreamInfo with the selected variant.

    Raises:
        RoomOffline: Room is not broadcasting.
        RoomNotFound: Room page returned 404.
        DiscoveryParseError: Page or master playlist has an unexpected shape.
        TransportError: Any other HTTP failure.
    """
    logger = get_room_logger(room)

    try:
        html = await client.get_room_page(room)
    except TransportError as e:
        if e.status == 404:
            raise RoomNotFound(room) from e
        raise

    master_url = extract_hls_source(room, html)
    logger.debug(f"Master playlist: {master_url}")

    content = await client.get_text(master_url)
    variants = parse_variants(master_url, content)
    if not variants:
        raise DiscoveryParseError(room, "no variants found in master playlist")

    variant = select_variant(variants, target_resolution, target_framerate)
    logger.debug(
        f"Selected {variant.resolution}p{variant.framerate} "
        f"({variant.bandwidth} bps) from {len(variants)} variants"
    )

    return StreamInfo(room=room, variant=variant, master_url=master_url)

"""Pytest configuration and shared fixtures."""

import asyncio
import json
from typing import Dict, Iterable, List, Optional

import pytest

from roomrecorder.config import Config, MonitorConfig, NetworkConfig, RecordingConfig
from roomrecorder.errors import TransportError


DOMAIN = "https://site.test/"
MASTER_URL = "https://edge.test/live-hls/amlst:room/playlist.m3u8"
MEDIA_URL = "https://edge.test/live-hls/amlst:room/chunklist_720p30.m3u8"


class FakeClient:
    """
    In-memory HTTP capability.

    Each URL maps to a response, an exception, or a list of them. Lists are
    consumed in order and the last item repeats.
    """

    def __init__(self, domain: str = DOMAIN):
        self.domain = domain
        self.texts: Dict[str, object] = {}
        self.blobs: Dict[str, object] = {}
        self.requests: List[str] = []

    def room_url(self, room: str) -> str:
        return f"{self.domain}{room}/"

    def set_page(self, room: str, response) -> None:
        self.texts[self.room_url(room)] = response

    @staticmethod
    def _next(store: Dict[str, object], url: str):
        if url not in store:
            raise TransportError(url, status=404)
        value = store[url]
        if isinstance(value, list):
            value = value.pop(0) if len(value) > 1 else value[0]
        if isinstance(value, BaseException):
            raise value
        return value

    async def get_text(self, url: str) -> str:
        await asyncio.sleep(0)
        self.requests.append(url)
        return self._next(self.texts, url)

    async def get_bytes(self, url: str) -> bytes:
        await asyncio.sleep(0)
        self.requests.append(url)
        return self._next(self.blobs, url)

    async def get_room_page(self, room: str) -> str:
        return await self.get_text(self.room_url(room))


def escape_dossier(data: dict) -> str:
    """Encode a dossier the way the site embeds it in a JS string literal."""
    return json.dumps(data).replace('"', '\\u0022').replace('/', '\\/')


def room_page(hls_source: Optional[str] = MASTER_URL) -> str:
    """Room page HTML with an escaped initialRoomDossier, like the live site."""
    data = {"broadcaster_username": "room", "room_status": "public"}
    if hls_source is not None:
        data["hls_source"] = hls_source
    return (
        "<html><head><title>room</title></head><body>"
        "<script>window.initialRoomDossier = \"" + escape_dossier(data) + "\";</script>"
        "<!-- playlist.m3u8 -->"
        "</body></html>"
    )


def offline_page() -> str:
    return "<html><body><div class=\"offline\">Room is currently offline</div></body></html>"


def master_playlist(variants: Iterable[tuple]) -> str:
    """variants: (height, fps, bandwidth, uri)"""
    lines = ["#EXTM3U", "#EXT-X-VERSION:3"]
    for height, fps, bandwidth, uri in variants:
        width = height * 16 // 9
        name = f'"FPS:{fps}.0"' if fps == 60 else f'"{height}p"'
        lines.append(
            f"#EXT-X-STREAM-INF:BANDWIDTH={bandwidth},RESOLUTION={width}x{height},NAME={name}"
        )
        lines.append(uri)
    return "\n".join(lines) + "\n"


def media_playlist(sequences: Iterable[int], ended: bool = False, duration: float = 2.0,
                   prefix: str = "media_w1_720p30") -> str:
    sequences = list(sequences)
    lines = [
        "#EXTM3U",
        "#EXT-X-VERSION:3",
        "#EXT-X-TARGETDURATION:2",
        f"#EXT-X-MEDIA-SEQUENCE:{sequences[0] if sequences else 0}",
    ]
    for seq in sequences:
        lines.append(f"#EXTINF:{duration:.3f},")
        lines.append(f"{prefix}_{seq}.ts")
    if ended:
        lines.append("#EXT-X-ENDLIST")
    return "\n".join(lines) + "\n"


def segment_url(seq: int, prefix: str = "media_w1_720p30", base: str = MEDIA_URL) -> str:
    return base.rsplit('/', 1)[0] + f"/{prefix}_{seq}.ts"


def segment_bytes(seq: int, size: int = 376) -> bytes:
    """Deterministic fake TS payload, two 188-byte packets by default."""
    body = f"segment-{seq:08d}|".encode() * (size // 17 + 1)
    return (b"\x47" + body)[:size]


@pytest.fixture
def fake_client():
    return FakeClient()


@pytest.fixture
def config(tmp_path):
    """Config writing into tmp_path with fast polling."""
    return Config(
        recording=RecordingConfig(
            output_directory=str(tmp_path / "recordings"),
            filename_pattern="{{.Username}}_{{.Year}}{{.Month}}{{.Day}}_{{.Hour}}{{.Minute}}{{.Second}}",
            resolution=720,
            framerate=30,
            poll_interval_seconds=0.01,
            initial_backlog=2,
        ),
        monitor=MonitorConfig(check_interval_seconds=0.01, rooms=["room"]),
        network=NetworkConfig(domain=DOMAIN),
    )


@pytest.fixture
def live_room(fake_client):
    """Fake client with 'room' live at 720p30 and segment bytes for 1..500."""
    fake_client.set_page("room", room_page())
    fake_client.texts[MASTER_URL] = master_playlist([
        (1080, 30, 5000000, "chunklist_1080p30.m3u8"),
        (720, 30, 2500000, "chunklist_720p30.m3u8"),
        (480, 30, 1200000, "chunklist_480p30.m3u8"),
    ])
    for seq in range(1, 501):
        fake_client.blobs[segment_url(seq)] = segment_bytes(seq)
    return fake_client

"""Tests for the per-room recording lifecycle."""

import asyncio
from datetime import datetime
from pathlib import Path

import pytest

from roomrecorder.discovery import resolve_stream
from roomrecorder.errors import (
    EXIT_NETWORK_ERROR,
    EXIT_RECORDING_ERROR,
    EXIT_SUCCESS,
    RoomOffline,
    TransportError,
)
from roomrecorder.recorder import (
    EventKind,
    RecordingResult,
    RecordingStats,
    RoomRecorder,
    RoomState,
    wait_cancelled,
)

from conftest import MEDIA_URL, media_playlist, offline_page, segment_bytes, segment_url


def make_recorder(client, config, events=None, cancel_event=None):
    return RoomRecorder(
        client,
        config,
        cancel_event or asyncio.Event(),
        on_event=events.append if events is not None else None,
        download_retry_delay=0
    )


def recorded_bytes(result):
    return b"".join(Path(path).read_bytes() for path in sorted(result.files))


class TestWaitCancelled:

    async def test_times_out(self):
        assert await wait_cancelled(asyncio.Event(), 0.01) is False

    async def test_already_set(self):
        event = asyncio.Event()
        event.set()
        assert await wait_cancelled(event, 10) is True

    async def test_wakes_on_set(self):
        event = asyncio.Event()
        asyncio.get_running_loop().call_later(0.01, event.set)
        assert await wait_cancelled(event, 10) is True


class TestRecordingResult:

    def make(self, duration=0.0, size=0):
        return RecordingResult(
            room="room",
            state=RoomState.ENDED,
            stats=RecordingStats(duration_seconds=duration, bytes_written=size),
            files=[],
            started_at=datetime.now(),
            ended_at=datetime.now()
        )

    def test_duration_formatted(self):
        assert self.make(duration=3725).duration_formatted == "1h 2m 5s"
        assert self.make(duration=125).duration_formatted == "2m 5s"
        assert self.make(duration=9.9).duration_formatted == "9s"

    def test_size_formatted(self):
        assert self.make(size=512).size_formatted == "512.00 B"
        assert self.make(size=1536).size_formatted == "1.50 KB"
        assert self.make(size=5 * 1024 * 1024).size_formatted == "5.00 MB"

    def test_terminal_states(self):
        assert RoomState.ENDED.is_terminal
        assert RoomState.CANCELLED.is_terminal
        assert RoomState.FAILED.is_terminal
        assert not RoomState.RECORDING.is_terminal


class TestDiscoveryOutcomes:

    async def test_offline_room_ends_without_files(self, fake_client, config, tmp_path):
        fake_client.set_page("room", offline_page())

        result = await make_recorder(fake_client, config).run("room")

        assert result.state == RoomState.ENDED
        assert result.files == []
        assert result.error is None
        assert not (tmp_path / "recordings").exists()

    async def test_offline_room_in_monitor_mode_raises(self, fake_client, config):
        fake_client.set_page("room", offline_page())
        with pytest.raises(RoomOffline):
            await make_recorder(fake_client, config).run("room", monitor_mode=True)

    async def test_unknown_room_fails(self, fake_client, config):
        result = await make_recorder(fake_client, config).run("ghost")
        assert result.state == RoomState.FAILED
        assert "Room not found" in result.error

    async def test_transport_error_fails(self, fake_client, config):
        fake_client.set_page("room", TransportError("u", status=500))
        result = await make_recorder(fake_client, config).run("room")
        assert result.state == RoomState.FAILED
        assert result.stream_info is None
        assert result.status_code == EXIT_NETWORK_ERROR

    async def test_unknown_room_maps_to_recording_error(self, fake_client, config):
        result = await make_recorder(fake_client, config).run("ghost")
        assert result.status_code == EXIT_RECORDING_ERROR

    async def test_offline_room_is_success(self, fake_client, config):
        fake_client.set_page("room", offline_page())
        result = await make_recorder(fake_client, config).run("room")
        assert result.status_code == EXIT_SUCCESS


class TestRecording:

    async def test_records_until_end_marker(self, live_room, config):
        live_room.texts[MEDIA_URL] = [
            media_playlist(range(1, 6)),
            media_playlist(range(4, 9), ended=True),
        ]

        result = await make_recorder(live_room, config).run("room")

        assert result.state == RoomState.ENDED
        assert result.stats.segments_downloaded == 5
        assert result.stats.duration_seconds == 10.0
        assert result.stats.files_created == 1
        assert recorded_bytes(result) == b"".join(segment_bytes(seq) for seq in range(4, 9))
        assert result.stats.bytes_written == len(recorded_bytes(result))
        assert result.stream_info.resolution == 720

    async def test_segments_after_end_marker_poll_are_written(self, live_room, config):
        live_room.texts[MEDIA_URL] = media_playlist([7, 8, 9], ended=True)

        result = await make_recorder(live_room, config).run("room")

        assert result.state == RoomState.ENDED
        assert recorded_bytes(result) == segment_bytes(8) + segment_bytes(9)

    async def test_missing_segment_becomes_gap(self, live_room, config):
        live_room.texts[MEDIA_URL] = [
            media_playlist([101, 102, 103]),
            media_playlist([103, 104, 105, 106], ended=True),
        ]
        for seq in range(101, 107):
            live_room.blobs[segment_url(seq)] = segment_bytes(seq)
        live_room.blobs[segment_url(105)] = TransportError(segment_url(105), status=404)
        events = []

        result = await make_recorder(live_room, config, events).run("room")

        assert result.state == RoomState.ENDED
        assert result.stats.gaps == [105]
        assert recorded_bytes(result) == b"".join(segment_bytes(seq) for seq in (102, 103, 104, 106))
        assert live_room.requests.count(segment_url(105)) == 3
        gaps = [e for e in events if e.kind == EventKind.SEGMENT_GAP]
        assert [e.sequence for e in gaps] == [105]

    async def test_three_poll_failures_fail_the_room(self, live_room, config):
        live_room.texts[MEDIA_URL] = TransportError(MEDIA_URL, status=502)

        result = await make_recorder(live_room, config).run("room")

        assert result.state == RoomState.FAILED
        assert "Failed to fetch playlist" in result.error
        assert live_room.requests.count(MEDIA_URL) == 3
        assert result.files == []

    async def test_recovers_from_transient_poll_failures(self, live_room, config):
        live_room.texts[MEDIA_URL] = [
            TransportError(MEDIA_URL, status=502),
            "<html>upstream error</html>",
            media_playlist([1, 2, 3], ended=True),
        ]

        result = await make_recorder(live_room, config).run("room")

        assert result.state == RoomState.ENDED
        assert result.stats.segments_downloaded == 2

    async def test_cancel_stops_between_segments(self, live_room, config):
        config.recording.initial_backlog = 5
        live_room.texts[MEDIA_URL] = media_playlist(range(1, 21))
        cancel_event = asyncio.Event()
        events = []

        def on_event(event):
            events.append(event)
            if event.kind == EventKind.SEGMENT_WRITTEN:
                cancel_event.set()

        recorder = RoomRecorder(live_room, config, cancel_event, on_event=on_event)
        result = await recorder.run("room")

        assert result.state == RoomState.CANCELLED
        assert result.stats.segments_downloaded == 1
        assert recorded_bytes(result) == segment_bytes(16)
        assert events[-1].kind == EventKind.STATE_CHANGED
        assert events[-1].state == RoomState.CANCELLED

    async def test_cancel_while_waiting_for_playlist(self, live_room, config):
        config.recording.poll_interval_seconds = 30
        live_room.texts[MEDIA_URL] = media_playlist(range(1, 4))
        cancel_event = asyncio.Event()
        recorder = make_recorder(live_room, config, cancel_event=cancel_event)

        task = asyncio.ensure_future(recorder.run("room"))
        await asyncio.sleep(0.05)
        cancel_event.set()
        result = await asyncio.wait_for(task, timeout=5)

        assert result.state == RoomState.CANCELLED
        assert result.stats.segments_downloaded == 2

    async def test_events(self, live_room, config):
        config.recording.max_duration_minutes = 1
        live_room.texts[MEDIA_URL] = media_playlist(range(1, 6), ended=True, duration=30.0)
        config.recording.initial_backlog = 5
        events = []

        result = await make_recorder(live_room, config, events).run("room")

        states = [e.state for e in events if e.kind == EventKind.STATE_CHANGED]
        assert states == [RoomState.RESOLVING, RoomState.RECORDING, RoomState.ENDED]

        written = [e for e in events if e.kind == EventKind.SEGMENT_WRITTEN]
        assert [e.sequence for e in written] == [1, 2, 3, 4, 5]
        assert written[-1].bytes_written == result.stats.bytes_written

        splits = [e for e in events if e.kind == EventKind.FILE_SPLIT]
        assert [e.sequence for e in splits] == [2, 4]
        assert all(e.state == RoomState.SPLITTING for e in splits)
        assert result.stats.files_created == 3
        assert [e.path for e in splits] == result.files[:2]

    async def test_resolved_stream_skips_discovery(self, live_room, config):
        info = await resolve_stream(live_room, "room", 720, 30)
        live_room.set_page("room", offline_page())
        live_room.texts[MEDIA_URL] = media_playlist([1, 2], ended=True)

        result = await make_recorder(live_room, config).run("room", stream_info=info, monitor_mode=True)

        assert result.state == RoomState.ENDED
        assert result.stats.segments_downloaded == 2

    async def test_unwritable_output_fails_the_room(self, live_room, config, tmp_path):
        blocker = tmp_path / "not_a_directory"
        blocker.write_bytes(b"")
        config.recording.output_directory = str(blocker)
        live_room.texts[MEDIA_URL] = media_playlist(range(1, 6))
        events = []

        result = await make_recorder(live_room, config, events).run("room")

        assert result.state == RoomState.FAILED
        assert "Failed to write output file" in result.error
        assert result.status_code == EXIT_RECORDING_ERROR
        assert result.files == []
        assert result.stats.segments_downloaded == 0
        assert live_room.requests.count(MEDIA_URL) == 1
        assert events[-1].kind == EventKind.STATE_CHANGED
        assert events[-1].state == RoomState.FAILED
        assert blocker.read_bytes() == b""

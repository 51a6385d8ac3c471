"""
==============================================================================
Capture Session Tests
==============================================================================

Lifecycle, emission and teardown of the barcode capture session.

==============================================================================
"""

import asyncio
import time

import pytest

from pos_scanner.capture import (
    NOT_FOUND,
    CameraAcquisitionError,
    CaptureSession,
    DecodedValue,
    DecodeFault,
    ErrorKind,
    FacingMode,
    OpenCVMediaProvider,
    ScanPolicy,
    SessionState,
)
from pos_scanner.config import Settings
from pos_scanner.core.exceptions import AppException
from tests.fakes import FakeCapture, FakeDecodeEngine, FakeMediaProvider, settle


def make_session(media, engine, scanned, **kwargs) -> CaptureSession:
    return CaptureSession(media, engine, on_scanned=scanned.append, **kwargs)


class TestOpen:
    """Camera acquisition."""

    @pytest.mark.asyncio
    async def test_open_starts_streaming(self, media, engine, scanned):
        session = make_session(media, engine, scanned)

        assert await session.open() is True

        assert session.is_open
        assert session.streaming
        assert session.state is SessionState.STREAMING
        assert media.requests == [FacingMode.ENVIRONMENT]
        assert len(engine.subscriptions) == 1
        assert session.surface.bound and session.surface.playing

    @pytest.mark.asyncio
    async def test_open_without_camera_waits_for_activation(self, media, engine, scanned):
        session = make_session(media, engine, scanned)

        assert await session.open(start_camera=False) is False

        assert session.is_open
        assert session.state is SessionState.IDLE
        assert media.requests == []

    @pytest.mark.asyncio
    async def test_open_while_streaming_raises_busy(self, media, engine, scanned):
        session = make_session(media, engine, scanned)
        await session.open()

        with pytest.raises(AppException) as exc_info:
            await session.activate_camera()

        assert exc_info.value.code == "SESSION_BUSY"
        assert len(media.streams) == 1
        assert len(engine.subscriptions) == 1

    @pytest.mark.asyncio
    async def test_permission_denied_keeps_manual_entry(self, engine, scanned):
        media = FakeMediaProvider(error=CameraAcquisitionError(ErrorKind.PERMISSION_DENIED))
        session = make_session(media, engine, scanned)

        assert await session.open() is False

        assert session.last_error is ErrorKind.PERMISSION_DENIED
        assert "denied" in session.last_error_message
        assert not session.streaming
        assert session.state is SessionState.IDLE
        assert session.snapshot()["manual_entry_available"] is True
        assert engine.subscriptions == []

        assert session.manual_entry("7501031311309") is True
        assert scanned == ["7501031311309"]

    @pytest.mark.asyncio
    async def test_retry_after_failure(self, engine, scanned):
        media = FakeMediaProvider(error=CameraAcquisitionError(ErrorKind.NO_DEVICE))
        session = make_session(media, engine, scanned)

        await session.open()
        assert session.last_error is ErrorKind.NO_DEVICE

        media.error = None
        assert await session.activate_camera() is True

        assert session.streaming
        assert session.last_error is None
        assert len(media.requests) == 2

    @pytest.mark.asyncio
    async def test_unexpected_provider_error_is_contained(self, engine, scanned):
        media = FakeMediaProvider(error=OSError("device busy"))
        session = make_session(media, engine, scanned)

        assert await session.open() is False

        assert session.last_error is ErrorKind.NO_DEVICE
        assert session.state is SessionState.IDLE

    @pytest.mark.asyncio
    async def test_close_during_acquisition_discards_stream(self, engine, scanned):
        gate = asyncio.Event()
        media = FakeMediaProvider(gate=gate)
        session = make_session(media, engine, scanned)

        pending = asyncio.create_task(session.open())
        await settle()
        assert session.state is SessionState.ACQUIRING

        session.close()
        gate.set()

        assert await pending is False
        assert media.streams[0].stop_count == 1
        assert engine.subscriptions == []
        assert session.state is SessionState.IDLE
        assert not session.is_open


class TestDecodeTicks:
    """Decode tick handling and duplicate suppression."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("repeats", [1, 2, 5, 30])
    async def test_repeated_value_emits_once(self, media, engine, scanned, repeats):
        closed = []
        session = make_session(media, engine, scanned, on_close=lambda: closed.append(True))
        await session.open()

        for _ in range(repeats):
            session.on_decode_tick(DecodedValue("7501031311309"))

        assert scanned == ["7501031311309"]
        assert closed == [True]
        assert session.state is SessionState.IDLE
        assert session.decoded_value == "7501031311309"

    @pytest.mark.asyncio
    async def test_report_releases_stream_and_loop(self, media, engine, scanned):
        session = make_session(media, engine, scanned)
        await session.open()

        engine.tick(DecodedValue("7501031311309"))

        assert media.streams[0].stop_count == 1
        assert engine.subscriptions[0].cancel_count == 1
        assert not session.surface.bound

    @pytest.mark.asyncio
    async def test_not_found_and_faults_do_not_stop_loop(self, media, engine, scanned):
        session = make_session(media, engine, scanned)
        await session.open()

        for _ in range(10):
            engine.tick(NOT_FOUND)
            engine.tick(DecodeFault(RuntimeError("checksum")))

        assert session.streaming
        assert scanned == []
        assert engine.subscriptions[0].cancel_count == 0

        engine.tick(DecodedValue("7702004003508"))
        assert scanned == ["7702004003508"]

    @pytest.mark.asyncio
    async def test_fault_limit_closes_session(self, media, engine, scanned):
        closed = []
        session = make_session(
            media, engine, scanned,
            on_close=lambda: closed.append(True),
            decode_fault_limit=3
        )
        await session.open()

        engine.tick(DecodeFault(RuntimeError("zbar")))
        engine.tick(NOT_FOUND)
        engine.tick(DecodeFault(RuntimeError("zbar")))
        engine.tick(DecodeFault(RuntimeError("zbar")))
        assert session.streaming

        engine.tick(DecodeFault(RuntimeError("zbar")))

        assert not session.is_open
        assert session.last_error is ErrorKind.DECODE_ENGINE_FAULT
        assert media.streams[0].stop_count == 1
        assert closed == [True]

    @pytest.mark.asyncio
    async def test_ticks_after_close_are_ignored(self, media, engine, scanned):
        session = make_session(media, engine, scanned)
        await session.open()
        session.close()

        session.on_decode_tick(DecodedValue("7501031311309"))

        assert scanned == []

    @pytest.mark.asyncio
    async def test_scripted_ticks_through_event_loop(self, media, scanned):
        engine = FakeDecodeEngine(script=[
            NOT_FOUND,
            DecodedValue("7501031311309"),
            DecodedValue("7501031311309"),
            DecodedValue("7501031311309"),
        ])
        session = make_session(media, engine, scanned)

        await session.open()
        await settle(10)

        assert scanned == ["7501031311309"]
        assert not session.is_open


class TestManualEntry:
    """Typed codes share the camera emission path."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("value", ["", "   ", "\t\n", None])
    async def test_blank_manual_entry_never_emits(self, media, engine, scanned, value):
        session = make_session(media, engine, scanned)
        await session.open()

        assert session.manual_entry(value) is False

        assert scanned == []
        assert session.streaming

    @pytest.mark.asyncio
    async def test_manual_entry_emits_and_tears_down(self, media, engine, scanned):
        closed = []
        session = make_session(media, engine, scanned, on_close=lambda: closed.append(True))
        await session.open()

        assert session.manual_entry("  12345 ") is True

        assert scanned == ["12345"]
        assert media.streams[0].stop_count == 1
        assert engine.subscriptions[0].cancel_count == 1
        assert closed == [True]
        assert not session.is_open

    @pytest.mark.asyncio
    async def test_manual_entry_after_camera_report_is_suppressed(self, media, engine, scanned):
        session = make_session(media, engine, scanned, policy=ScanPolicy.CLOSE_ON_FIRST_SCAN)
        await session.open()

        engine.tick(DecodedValue("7501031311309"))

        assert session.manual_entry("12345") is False
        assert scanned == ["7501031311309"]

    def test_manual_entry_when_never_opened(self, media, engine, scanned):
        session = make_session(media, engine, scanned)

        assert session.manual_entry("12345") is False
        assert scanned == []


class TestClose:
    """Teardown is idempotent and complete."""

    def test_close_when_idle_is_noop(self, media, engine, scanned):
        closed = []
        session = make_session(media, engine, scanned, on_close=lambda: closed.append(True))

        session.close()
        session.close()

        assert closed == []
        assert session.state is SessionState.IDLE

    @pytest.mark.asyncio
    async def test_double_close_releases_once(self, media, engine, scanned):
        closed = []
        session = make_session(media, engine, scanned, on_close=lambda: closed.append(True))
        await session.open()

        session.close()
        session.close()

        assert media.streams[0].stop_count == 1
        assert engine.subscriptions[0].cancel_count == 1
        assert closed == [True]
        assert not session.surface.bound

    @pytest.mark.asyncio
    async def test_close_resets_latch_for_same_value(self, media, engine, scanned):
        session = make_session(media, engine, scanned)

        await session.open()
        engine.tick(DecodedValue("7501031311309"))
        assert session.already_reported is False

        await session.open()
        engine.tick(DecodedValue("7501031311309"))

        assert scanned == ["7501031311309", "7501031311309"]
        assert len(media.streams) == 2

    @pytest.mark.asyncio
    async def test_close_clears_last_error(self, engine, scanned):
        media = FakeMediaProvider(error=CameraAcquisitionError(ErrorKind.PERMISSION_DENIED))
        session = make_session(media, engine, scanned)
        await session.open()

        session.close()

        assert session.last_error is None

    @pytest.mark.asyncio
    async def test_two_sessions_keep_their_own_handles(self, engine, scanned):
        media = FakeMediaProvider()
        first = make_session(media, engine, scanned)
        second = make_session(media, FakeDecodeEngine(), [])

        await first.open()
        await second.open()
        first.close()

        assert media.streams[0].stop_count == 1
        assert media.streams[1].stop_count == 0
        assert second.streaming


class TestPolicies:
    """Behavior after a report under each policy."""

    @pytest.mark.asyncio
    async def test_allow_repeats_reacquires_camera(self, media, engine, scanned):
        closed = []
        session = make_session(
            media, engine, scanned,
            policy=ScanPolicy.STAY_OPEN_ALLOW_REPEATS,
            on_close=lambda: closed.append(True)
        )
        await session.open()

        engine.tick(DecodedValue("7501031311309"))
        assert media.streams[0].stop_count == 1
        await settle()

        assert session.streaming
        assert session.is_open
        assert len(media.streams) == 2
        assert closed == []

        engine.tick(DecodedValue("7501031311309"))
        await settle()

        assert scanned == ["7501031311309", "7501031311309"]

        session.close()
        assert closed == [True]
        assert all(stream.stop_count == 1 for stream in media.streams)

    @pytest.mark.asyncio
    async def test_allow_repeats_manual_entry_does_not_start_camera(self, media, engine, scanned):
        session = make_session(media, engine, scanned, policy=ScanPolicy.STAY_OPEN_ALLOW_REPEATS)
        await session.open(start_camera=False)

        session.manual_entry("12345")
        session.manual_entry("12345")
        await settle()

        assert scanned == ["12345", "12345"]
        assert media.requests == []
        assert session.is_open

    @pytest.mark.asyncio
    async def test_close_before_rearm_skips_it(self, media, engine, scanned):
        session = make_session(media, engine, scanned, policy=ScanPolicy.STAY_OPEN_ALLOW_REPEATS)
        await session.open()

        engine.tick(DecodedValue("7501031311309"))
        session.close()
        await settle()

        assert len(media.streams) == 1
        assert session.state is SessionState.IDLE

    @pytest.mark.asyncio
    async def test_dedupe_by_value_keeps_streaming(self, media, engine, scanned):
        session = make_session(media, engine, scanned, policy=ScanPolicy.STAY_OPEN_DEDUPE_BY_VALUE)
        await session.open()

        for code in ["A1", "A1", "B2", "A1", "B2", "C3"]:
            engine.tick(DecodedValue(code))
        session.manual_entry("B2")

        assert scanned == ["A1", "B2", "C3"]
        assert session.streaming
        assert media.streams[0].stop_count == 0

        session.close()
        await session.open()
        engine.tick(DecodedValue("A1"))

        assert scanned == ["A1", "B2", "C3", "A1"]

    @pytest.mark.asyncio
    async def test_manual_entry_during_acquisition_keeps_one_stream(self, engine, scanned):
        gate = asyncio.Event()
        media = FakeMediaProvider(gate=gate)
        session = make_session(media, engine, scanned, policy=ScanPolicy.STAY_OPEN_ALLOW_REPEATS)

        pending = asyncio.create_task(session.open())
        await settle()

        assert session.manual_entry("12345") is True
        assert session.state is SessionState.ACQUIRING

        with pytest.raises(AppException) as exc_info:
            await session.activate_camera()
        assert exc_info.value.code == "SESSION_BUSY"

        gate.set()
        assert await pending is True
        assert session.streaming

        session.close()

        assert scanned == ["12345"]
        assert len(media.streams) == 1
        assert len(engine.subscriptions) == 1
        assert media.streams[0].stop_count == 1
        assert engine.subscriptions[0].cancel_count == 1

    @pytest.mark.asyncio
    async def test_manual_entry_during_acquisition_closes_first_scan(self, engine, scanned):
        gate = asyncio.Event()
        media = FakeMediaProvider(gate=gate)
        session = make_session(media, engine, scanned)

        pending = asyncio.create_task(session.open())
        await settle()
        session.manual_entry("12345")
        gate.set()

        assert await pending is False
        assert scanned == ["12345"]
        assert media.streams[0].stop_count == 1
        assert engine.subscriptions == []
        assert not session.is_open

    @pytest.mark.asyncio
    async def test_close_during_rearm_releases_late_camera(self, monkeypatch, engine, scanned):
        captures = []

        def slow_open(self, index):
            time.sleep(0.1)
            capture = FakeCapture()
            captures.append(capture)
            return capture

        monkeypatch.setattr(OpenCVMediaProvider, "_open_capture", slow_open)
        monkeypatch.setattr(OpenCVMediaProvider, "_is_permission_denied", lambda self, index: False)
        media = OpenCVMediaProvider(Settings())
        session = make_session(media, engine, scanned, policy=ScanPolicy.STAY_OPEN_ALLOW_REPEATS)

        await session.open()
        engine.tick(DecodedValue("7501031311309"))
        await asyncio.sleep(0.03)
        assert session.state is SessionState.ACQUIRING

        session.close()
        await asyncio.sleep(0.3)

        assert len(captures) == 2
        assert [capture.release_count for capture in captures] == [1, 1]
        assert len(engine.subscriptions) == 1
        assert not session.is_open
        assert session.state is SessionState.IDLE


class TestHostCallbacks:
    """Host callbacks and the haptic cue."""

    @pytest.mark.asyncio
    async def test_haptic_cue_after_emission(self, media, engine, scanned):
        events = []
        session = CaptureSession(
            media, engine,
            on_scanned=lambda value: events.append(("scanned", value)),
            haptic=lambda ms: events.append(("vibrate", ms)),
            haptic_duration_ms=150
        )
        await session.open()

        engine.tick(DecodedValue("7501031311309"))

        assert events == [("scanned", "7501031311309"), ("vibrate", 150)]

    @pytest.mark.asyncio
    async def test_failing_callbacks_are_contained(self, media, engine):
        def explode(*args):
            raise RuntimeError("host bug")

        session = CaptureSession(
            media, engine,
            on_scanned=explode,
            on_close=explode,
            on_state_change=explode,
            haptic=explode
        )
        await session.open()

        engine.tick(DecodedValue("7501031311309"))

        assert not session.is_open
        assert media.streams[0].stop_count == 1

    @pytest.mark.asyncio
    async def test_state_changes_are_reported(self, media, engine, scanned):
        states = []
        session = make_session(
            media, engine, scanned,
            on_state_change=lambda s: states.append(s.state)
        )

        await session.open()
        engine.tick(DecodedValue("7501031311309"))

        assert SessionState.ACQUIRING in states
        assert SessionState.STREAMING in states
        assert SessionState.REPORTING in states
        assert states[-1] is SessionState.IDLE

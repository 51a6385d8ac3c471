"""
==============================================================================
Capture Session Module
==============================================================================

One open-to-close lifecycle of camera based barcode scanning.

State Machine:
-------------
    IDLE ──open()──▶ ACQUIRING ──stream ok──▶ STREAMING ──value──▶ REPORTING
      ▲                  │                        │                   │
      │            acquisition failed             │      policy: close │ policy: stay open
      └──────────────────┴──────── close() ───────┴──────◀────────────┘──▶ STREAMING

Emission:
---------
Camera decodes and manual entries share one emission path. The
``already_reported`` latch is set before anything else happens so a second
frame carrying the same barcode cannot emit twice.

Policies:
---------
- CLOSE_ON_FIRST_SCAN: one value per open period, then close
- STAY_OPEN_ALLOW_REPEATS: release the camera, re-arm, reacquire
- STAY_OPEN_DEDUPE_BY_VALUE: keep streaming, emit each distinct value once

==============================================================================
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Callable, Optional, Set

from pos_scanner.core import exceptions
from .decoder import DecodeEngine, Subscription
from .media import MediaProvider, VideoStream
from .models import (
    CameraAcquisitionError,
    DecodedValue,
    DecodeEvent,
    DecodeFault,
    ErrorKind,
    FacingMode,
    NotFoundSignal,
    ScanPolicy,
    SessionState,
)
from .surface import VideoSurface


# Module logger
logger = logging.getLogger(__name__)


class CaptureSession:
    """
    Barcode capture session.

    Owns at most one media stream and one decode subscription at a time.
    Host callbacks are plain functions; failures inside them are logged
    and never break the session.

    Attributes:
        session_id: Identifier used in logs
        policy: ScanPolicy applied after each report

    Example:
        >>> session = CaptureSession(provider, engine, on_scanned=print)
        >>> await session.open()
        >>> session.manual_entry("7501234567890")
        7501234567890
    """

    def __init__(
        self,
        media_provider: MediaProvider,
        decode_engine: DecodeEngine,
        on_scanned: Callable[[str], None],
        on_close: Optional[Callable[[], None]] = None,
        on_state_change: Optional[Callable[["CaptureSession"], None]] = None,
        policy: ScanPolicy = ScanPolicy.CLOSE_ON_FIRST_SCAN,
        facing: FacingMode = FacingMode.ENVIRONMENT,
        surface: Optional[VideoSurface] = None,
        haptic: Optional[Callable[[int], None]] = None,
        haptic_duration_ms: int = 200,
        decode_fault_limit: int = 0,
        session_id: Optional[str] = None
    ) -> None:
        self.session_id = session_id or uuid.uuid4().hex[:8]
        self.policy = policy

        self._media = media_provider
        self._decoder = decode_engine
        self._surface = surface or VideoSurface()
        self._facing = facing

        self._on_scanned = on_scanned
        self._on_close = on_close
        self._on_state_change = on_state_change
        self._haptic = haptic
        self._haptic_duration_ms = haptic_duration_ms
        self._decode_fault_limit = decode_fault_limit

        self._open = False
        self._state = SessionState.IDLE
        self._stream: Optional[VideoStream] = None
        self._subscription: Optional[Subscription] = None
        self._rearm_tasks: Set[asyncio.Task] = set()

        self._already_reported = False
        self._decoded_value: Optional[str] = None
        self._last_detection: Optional[DecodedValue] = None
        self._seen_values: Set[str] = set()
        self._last_error: Optional[ErrorKind] = None
        self._consecutive_faults = 0

        # Bumped by close(); an acquisition started under an older
        # generation must not bind its stream.
        self._generation = 0

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def is_open(self) -> bool:
        return self._open

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def streaming(self) -> bool:
        return self._state is SessionState.STREAMING

    @property
    def decoded_value(self) -> Optional[str]:
        return self._decoded_value

    @property
    def last_detection(self) -> Optional[DecodedValue]:
        """Last camera decode with its bounding box, for previews."""
        return self._last_detection

    @property
    def already_reported(self) -> bool:
        return self._already_reported

    @property
    def last_error(self) -> Optional[ErrorKind]:
        return self._last_error

    @property
    def last_error_message(self) -> Optional[str]:
        return self._last_error.display_message if self._last_error else None

    @property
    def surface(self) -> VideoSurface:
        return self._surface

    def snapshot(self) -> dict:
        """Serializable view of the session for the host UI."""
        return {
            "session_id": self.session_id,
            "open": self._open,
            "state": self._state.value,
            "streaming": self.streaming,
            "policy": self.policy.value,
            "decoded_value": self._decoded_value,
            "already_reported": self._already_reported,
            "last_error": self._last_error.value if self._last_error else None,
            "last_error_message": self.last_error_message,
            "manual_entry_available": self._open,
        }

    # =========================================================================
    # OPEN / ACQUIRE
    # =========================================================================

    async def open(self, start_camera: bool = True) -> bool:
        """
        Open the session for the host.

        Args:
            start_camera: Acquire the camera right away. When False the
                session waits for activate_camera() or manual entry.

        Returns:
            True if the session ended up streaming
        """
        if not self._open:
            self._open = True
            logger.info(f"🟢 [{self.session_id}] Session opened ({self.policy.value})")
            self._notify_state()

        if not start_camera:
            return False

        return await self.activate_camera()

    async def activate_camera(self) -> bool:
        """
        Request the camera and start decoding.

        On failure ``last_error`` is set and the session stays open so
        the user can retry or type the code.

        Raises:
            AppException: SESSION_BUSY if already acquiring or streaming
        """
        if self._state in (SessionState.ACQUIRING, SessionState.STREAMING):
            raise exceptions.session_busy(self._state.value)

        self._open = True
        self._last_error = None
        self._set_state(SessionState.ACQUIRING)
        generation = self._generation

        try:
            stream = await self._media.request_video_stream(self._facing)
        except CameraAcquisitionError as e:
            if generation != self._generation:
                return False
            logger.warning(f"⚠️ [{self.session_id}] Camera unavailable: {e.kind.value} ({e.reason})")
            self._last_error = e.kind
            self._set_state(SessionState.IDLE)
            return False
        except Exception as e:
            if generation != self._generation:
                return False
            logger.error(f"❌ [{self.session_id}] Camera request failed: {e}")
            self._last_error = ErrorKind.NO_DEVICE
            self._set_state(SessionState.IDLE)
            return False

        if generation != self._generation or not self._open:
            # Closed while the request was in flight
            logger.info(f"[{self.session_id}] Late stream discarded")
            self._stop_stream(stream)
            return False

        if self._stream is not None or self._subscription is not None:
            logger.warning(f"[{self.session_id}] Releasing previous stream before binding")
            self._release()

        self._stream = stream
        self._surface.attach(stream)
        self._surface.play()
        self._consecutive_faults = 0
        self._subscription = self._decoder.start_decoding(self._surface, self.on_decode_tick)
        self._set_state(SessionState.STREAMING)

        logger.info(f"📷 [{self.session_id}] Streaming")
        return True

    # =========================================================================
    # DECODE TICKS
    # =========================================================================

    def on_decode_tick(self, event: DecodeEvent) -> None:
        """Handle one decode attempt from the engine."""
        if self._state is not SessionState.STREAMING:
            return

        if isinstance(event, NotFoundSignal):
            self._consecutive_faults = 0
            return

        if isinstance(event, DecodeFault):
            self._handle_fault(event)
            return

        if isinstance(event, DecodedValue):
            self._consecutive_faults = 0
            self._last_detection = event
            self._report(event.text, source="camera")

    def _handle_fault(self, fault: DecodeFault) -> None:
        self._consecutive_faults += 1
        logger.warning(
            f"[{self.session_id}] Decode fault "
            f"({self._consecutive_faults} in a row): {fault.message}"
        )

        if self._decode_fault_limit and self._consecutive_faults >= self._decode_fault_limit:
            logger.error(f"❌ [{self.session_id}] Decode engine keeps failing, closing session")
            self.close()
            self._last_error = ErrorKind.DECODE_ENGINE_FAULT
            self._notify_state()

    # =========================================================================
    # MANUAL ENTRY
    # =========================================================================

    def manual_entry(self, value: Optional[str]) -> bool:
        """
        Submit a typed barcode through the normal emission path.

        Returns:
            True if the value was emitted
        """
        code = (value or "").strip()

        if not code:
            logger.info(f"[{self.session_id}] Empty manual entry ignored")
            return False

        if not self._open:
            logger.warning(f"[{self.session_id}] Manual entry while closed ignored")
            return False

        return self._report(code, source="manual")

    # =========================================================================
    # EMISSION
    # =========================================================================

    def _report(self, value: str, source: str) -> bool:
        if self.policy is ScanPolicy.STAY_OPEN_DEDUPE_BY_VALUE:
            if value in self._seen_values:
                return False
            self._seen_values.add(value)
            self._decoded_value = value
            logger.info(f"✅ [{self.session_id}] Scanned {value} ({source})")
            self._emit(value)
            self._cue()
            return True

        if self._already_reported:
            return False
        self._already_reported = True

        previous_state = self._state
        self._set_state(SessionState.REPORTING)
        self._release()
        self._decoded_value = value

        logger.info(f"✅ [{self.session_id}] Scanned {value} ({source})")
        self._emit(value)
        self._cue()

        if not self.policy.stays_open:
            self.close()
            return True

        # STAY_OPEN_ALLOW_REPEATS
        if not self._open:
            # Closed by the host from on_scanned
            return True

        self._already_reported = False

        if previous_state is SessionState.ACQUIRING:
            # The pending request still binds its stream when it lands
            self._set_state(SessionState.ACQUIRING)
        else:
            self._set_state(SessionState.IDLE)
            if previous_state is SessionState.STREAMING:
                self._schedule_rearm()
        return True

    def _emit(self, value: str) -> None:
        try:
            self._on_scanned(value)
        except Exception as e:
            logger.error(f"[{self.session_id}] on_scanned handler failed: {e}")

    def _cue(self) -> None:
        if self._haptic is None or self._haptic_duration_ms <= 0:
            return
        try:
            self._haptic(self._haptic_duration_ms)
        except Exception as e:
            logger.warning(f"[{self.session_id}] Haptic cue failed: {e}")

    def _schedule_rearm(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(f"[{self.session_id}] No event loop, camera not re-armed")
            return
        task = loop.create_task(self._rearm(self._generation))
        self._rearm_tasks.add(task)
        task.add_done_callback(self._rearm_tasks.discard)

    async def _rearm(self, generation: int) -> None:
        if generation != self._generation:
            logger.debug(f"[{self.session_id}] Re-arm skipped: session closed")
            return
        try:
            await self.activate_camera()
        except exceptions.AppException as e:
            logger.debug(f"[{self.session_id}] Re-arm skipped: {e.code}")

    # =========================================================================
    # TEARDOWN
    # =========================================================================

    def close(self) -> None:
        """
        Tear the session down. Idempotent; safe when never opened.

        Cancels the decode loop, stops the stream, detaches the surface and
        resets the latch. ``on_close`` fires once per open period.
        """
        was_active = self._open or self._state is not SessionState.IDLE

        self._generation += 1
        self._open = False

        # A re-arm already in flight is left to finish; the generation check
        # in activate_camera() stops whatever stream it gets.
        self._release()

        self._already_reported = False
        self._last_error = None
        self._seen_values.clear()
        self._last_detection = None
        self._consecutive_faults = 0
        self._state = SessionState.IDLE

        if not was_active:
            return

        logger.info(f"🛑 [{self.session_id}] Session closed")
        self._notify_state()

        if self._on_close is not None:
            try:
                self._on_close()
            except Exception as e:
                logger.error(f"[{self.session_id}] on_close handler failed: {e}")

    def _release(self) -> None:
        """Cancel the decode loop and stop the stream, each at most once."""
        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            try:
                subscription.cancel()
            except Exception as e:
                logger.warning(f"[{self.session_id}] Decode cancel failed: {e}")

        stream, self._stream = self._stream, None
        if stream is not None:
            self._stop_stream(stream)

        self._surface.detach()

    def _stop_stream(self, stream: VideoStream) -> None:
        try:
            stream.stop_all_tracks()
        except Exception as e:
            logger.warning(f"[{self.session_id}] Stream stop failed: {e}")

    # =========================================================================
    # STATE NOTIFICATION
    # =========================================================================

    def _set_state(self, state: SessionState) -> None:
        if state is self._state:
            return
        logger.debug(f"[{self.session_id}] {self._state.value} → {state.value}")
        self._state = state
        self._notify_state()

    def _notify_state(self) -> None:
        if self._on_state_change is None:
            return
        try:
            self._on_state_change(self)
        except Exception as e:
            logger.error(f"[{self.session_id}] on_state_change handler failed: {e}")


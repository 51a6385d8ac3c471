"""
==============================================================================
Media Provider Module
==============================================================================

Camera acquisition through OpenCV.

A media provider hands out live video streams; a stream is read frame by
frame and released with ``stop_all_tracks()``. The facing preference is not
strict: when the preferred camera cannot be opened the other one is tried.

==============================================================================
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys
import threading
from typing import List, Optional, Protocol

import cv2
import numpy as np

from pos_scanner.config import Settings, get_settings
from .models import CameraAcquisitionError, ErrorKind, FacingMode


# Module logger
logger = logging.getLogger(__name__)


class VideoStream(Protocol):
    """Live video stream owned by one capture session."""

    @property
    def active(self) -> bool: ...

    def read(self) -> Optional[np.ndarray]: ...

    def stop_all_tracks(self) -> None: ...


class MediaProvider(Protocol):
    """Source of live video streams."""

    async def request_video_stream(self, facing: FacingMode) -> VideoStream: ...


class StreamReadError(RuntimeError):
    """A frame could not be read from an open stream."""


class OpenCVVideoStream:
    """
    Video stream backed by ``cv2.VideoCapture``.

    Reads happen in worker threads while release may be requested from the
    event loop, so both go through one lock.
    """

    def __init__(self, capture: "cv2.VideoCapture", device_index: int) -> None:
        self._capture = capture
        self._device_index = device_index
        self._lock = threading.Lock()
        self._released = False

    @property
    def device_index(self) -> int:
        return self._device_index

    @property
    def active(self) -> bool:
        return not self._released

    def read(self) -> Optional[np.ndarray]:
        """
        Grab the next frame.

        Returns:
            BGR frame, or None once the stream has been stopped

        Raises:
            StreamReadError: If the device stopped delivering frames
        """
        with self._lock:
            if self._released:
                return None
            ok, frame = self._capture.read()

        if not ok or frame is None:
            raise StreamReadError(f"camera {self._device_index} returned no frame")
        return frame

    def stop_all_tracks(self) -> None:
        """Release the device. Safe to call more than once."""
        with self._lock:
            if self._released:
                return
            self._released = True
            self._capture.release()
        logger.debug(f"📷 Camera {self._device_index} released")


class OpenCVMediaProvider:
    """
    Media provider for locally attached cameras.

    Example:
        >>> provider = OpenCVMediaProvider()
        >>> stream = await provider.request_video_stream(FacingMode.ENVIRONMENT)
        >>> frame = stream.read()
        >>> stream.stop_all_tracks()
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()

    def candidate_indexes(self, facing: FacingMode) -> List[int]:
        """Device indexes to try, preferred camera first."""
        environment = self._settings.environment_camera_index
        user = self._settings.user_camera_index

        ordered = [environment, user] if facing is FacingMode.ENVIRONMENT else [user, environment]

        candidates = []
        for index in ordered:
            if index not in candidates:
                candidates.append(index)
        return candidates

    async def request_video_stream(self, facing: FacingMode) -> OpenCVVideoStream:
        """
        Open the preferred camera, falling back to the other one.

        Raises:
            CameraAcquisitionError: If no candidate camera could be opened
        """
        denied = []

        for index in self.candidate_indexes(facing):
            if self._is_permission_denied(index):
                logger.warning(f"⚠️ No permission to open camera {index}")
                denied.append(index)
                continue

            capture = await self._open_in_thread(index)
            if capture is not None:
                logger.info(f"📷 Camera {index} opened ({facing.value} preferred)")
                return OpenCVVideoStream(capture, index)

        if denied:
            raise CameraAcquisitionError(
                ErrorKind.PERMISSION_DENIED,
                f"permission denied for camera(s) {denied}"
            )

        raise CameraAcquisitionError(ErrorKind.NO_DEVICE, "no camera could be opened")

    async def _open_in_thread(self, index: int) -> Optional["cv2.VideoCapture"]:
        """
        Run _open_capture in a worker thread.

        The worker cannot be interrupted. If the caller is cancelled while it
        runs, the device it opens is released as soon as it returns.
        """
        pending = asyncio.ensure_future(asyncio.to_thread(self._open_capture, index))
        try:
            return await asyncio.shield(pending)
        except asyncio.CancelledError:
            pending.add_done_callback(_release_abandoned_capture)
            raise

    def _open_capture(self, index: int) -> Optional["cv2.VideoCapture"]:
        """Open one device; returns None when it does not start."""
        capture = cv2.VideoCapture(index)

        if not capture.isOpened():
            capture.release()
            logger.debug(f"Camera {index} did not open")
            return None

        capture.set(cv2.CAP_PROP_FRAME_WIDTH, self._settings.camera_width)
        capture.set(cv2.CAP_PROP_FRAME_HEIGHT, self._settings.camera_height)
        return capture

    @staticmethod
    def device_path(index: int) -> Optional[str]:
        """V4L2 device node for an index (Linux only)."""
        if not sys.platform.startswith("linux"):
            return None
        return f"/dev/video{index}"

    def _is_permission_denied(self, index: int) -> bool:
        path = self.device_path(index)
        if path is None or not os.path.exists(path):
            return False
        return not os.access(path, os.R_OK | os.W_OK)


def _release_abandoned_capture(pending: "asyncio.Future") -> None:
    if pending.cancelled() or pending.exception() is not None:
        return
    capture = pending.result()
    if capture is not None:
        capture.release()
        logger.info("📷 Camera opened after the request was cancelled, released")

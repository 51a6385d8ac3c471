"""
==============================================================================
Video Surface Module
==============================================================================

The surface a capture session binds its stream to.

The decode engine pulls frames through the surface, so detaching the stream
is enough to starve the decode loop even before it has been cancelled.
Snapshots are JPEG previews with the last detection drawn on top.

==============================================================================
"""

from __future__ import annotations

import logging
import threading
from typing import Optional

import cv2
import numpy as np

from .models import DecodedValue


# Module logger
logger = logging.getLogger(__name__)


class SurfaceColors:
    """Colors for preview annotation (BGR format for OpenCV)."""

    GREEN = (0, 255, 0)
    TEXT_BLACK = (0, 0, 0)


class VideoSurface:
    """
    Holds the bound stream and the most recent frame.

    Attributes:
        playing: True between play() and detach()
    """

    def __init__(self) -> None:
        self._stream = None
        self._playing = False
        self._latest_frame: Optional[np.ndarray] = None
        self._lock = threading.Lock()

    @property
    def bound(self) -> bool:
        return self._stream is not None

    @property
    def playing(self) -> bool:
        return self._playing

    def attach(self, stream) -> None:
        """Bind a stream to the surface (replaces any previous binding)."""
        with self._lock:
            self._stream = stream
            self._playing = False
            self._latest_frame = None

    def play(self) -> None:
        """Start delivering frames from the bound stream."""
        if self._stream is None:
            logger.warning("play() called without a bound stream")
            return
        self._playing = True

    def detach(self) -> None:
        """Unbind the stream. Does not stop it; the session owns that."""
        with self._lock:
            self._stream = None
            self._playing = False
            self._latest_frame = None

    def read(self) -> Optional[np.ndarray]:
        """
        Read the next frame from the bound stream.

        Returns:
            Frame, or None when nothing is bound or playback has not started
        """
        stream = self._stream
        if stream is None or not self._playing:
            return None

        frame = stream.read()
        if frame is not None:
            with self._lock:
                if self._stream is stream:
                    self._latest_frame = frame
        return frame

    def latest_frame(self) -> Optional[np.ndarray]:
        with self._lock:
            return None if self._latest_frame is None else self._latest_frame.copy()

    def snapshot_jpeg(
        self,
        detection: Optional[DecodedValue] = None,
        quality: int = 80
    ) -> Optional[bytes]:
        """
        Encode the latest frame as JPEG.

        Args:
            detection: If given, its bounding box and text are drawn
            quality: JPEG quality (10-100)

        Returns:
            JPEG bytes, or None when no frame has been read yet
        """
        frame = self.latest_frame()
        if frame is None:
            return None

        if detection is not None and detection.rect:
            self._draw_detection(frame, detection)

        ok, buffer = cv2.imencode(".jpg", frame, [cv2.IMWRITE_JPEG_QUALITY, quality])
        if not ok:
            logger.error("JPEG encode failed")
            return None
        return buffer.tobytes()

    @staticmethod
    def _draw_detection(
        frame: np.ndarray,
        detection: DecodedValue,
        color: tuple = SurfaceColors.GREEN,
        thickness: int = 3
    ) -> None:
        """Draw a labeled bounding box for a detection."""
        rect = detection.rect
        x, y, w, h = rect["x"], rect["y"], rect["width"], rect["height"]

        cv2.rectangle(frame, (x, y), (x + w, y + h), color, thickness)

        font = cv2.FONT_HERSHEY_SIMPLEX
        font_scale = 0.6
        font_thickness = 2
        label = detection.text

        label_size, _ = cv2.getTextSize(label, font, font_scale, font_thickness)

        # Label above the box unless it would leave the frame
        label_y = y - 10 if y - 10 > label_size[1] else y + h + label_size[1] + 10
        cv2.rectangle(
            frame,
            (x, label_y - label_size[1] - 5),
            (x + label_size[0] + 10, label_y + 5),
            color,
            -1
        )
        cv2.putText(
            frame, label,
            (x + 5, label_y),
            font, font_scale, SurfaceColors.TEXT_BLACK, font_thickness
        )

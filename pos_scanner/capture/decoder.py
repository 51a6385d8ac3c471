"""
==============================================================================
Decode Engine Module
==============================================================================

Continuous barcode decoding with pyzbar.

``start_decoding`` returns a subscription; every decode attempt produces one
tick delivered on the event loop:

- DecodedValue: a barcode was read
- NotFoundSignal: nothing readable in the frame (the normal case)
- DecodeFault: reading or decoding the frame failed

Frame grabs and pyzbar calls run in worker threads. No tick is delivered
after ``cancel()`` returns.

==============================================================================
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional, Protocol

import cv2
import numpy as np
from pyzbar.pyzbar import decode

from pos_scanner.config import Settings, get_settings
from .models import NOT_FOUND, DecodedValue, DecodeEvent, DecodeFault
from .surface import VideoSurface


# Module logger
logger = logging.getLogger(__name__)


TickCallback = Callable[[DecodeEvent], None]


class Subscription(Protocol):
    """Handle of a running decode loop."""

    @property
    def cancelled(self) -> bool: ...

    def cancel(self) -> None: ...


class DecodeEngine(Protocol):
    """Anything that can run a decode loop against a surface."""

    def start_decoding(self, surface: VideoSurface, on_tick: TickCallback) -> Subscription: ...


class DecodeSubscription:
    """Cancellable decode loop started by PyzbarDecodeEngine."""

    def __init__(self) -> None:
        self._cancelled = False
        self._task: Optional[asyncio.Task] = None
        self.ticks = 0

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Stop the loop. Idempotent."""
        if self._cancelled:
            return
        self._cancelled = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
        logger.debug(f"Decode loop cancelled after {self.ticks} ticks")

    def _bind(self, task: asyncio.Task) -> None:
        self._task = task


class PyzbarDecodeEngine:
    """
    Decode engine reading frames from a VideoSurface.

    Example:
        >>> engine = PyzbarDecodeEngine()
        >>> subscription = engine.start_decoding(surface, session.on_decode_tick)
        >>> subscription.cancel()
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()

    @staticmethod
    def decode_frame(frame: np.ndarray) -> DecodeEvent:
        """
        Decode the first barcode found in a frame.

        Args:
            frame: BGR or grayscale image

        Returns:
            DecodedValue or NotFoundSignal
        """
        if frame is None or frame.size == 0:
            return NOT_FOUND

        gray = cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY) if frame.ndim == 3 else frame

        for barcode in decode(gray):
            text = barcode.data.decode("utf-8").strip()
            if not text:
                continue
            return DecodedValue(
                text=text,
                symbology=barcode.type,
                rect={
                    "x": barcode.rect.left,
                    "y": barcode.rect.top,
                    "width": barcode.rect.width,
                    "height": barcode.rect.height
                }
            )

        return NOT_FOUND

    def start_decoding(self, surface: VideoSurface, on_tick: TickCallback) -> DecodeSubscription:
        """
        Start the decode loop. Must be called from a running event loop.

        Args:
            surface: Surface to read frames from
            on_tick: Called once per decode attempt

        Returns:
            Subscription handle
        """
        subscription = DecodeSubscription()
        task = asyncio.get_running_loop().create_task(
            self._run(surface, subscription, on_tick)
        )
        subscription._bind(task)
        return subscription

    def _grab_and_decode(self, surface: VideoSurface) -> Optional[DecodeEvent]:
        frame = surface.read()
        if frame is None:
            return None
        return self.decode_frame(frame)

    async def _run(
        self,
        surface: VideoSurface,
        subscription: DecodeSubscription,
        on_tick: TickCallback
    ) -> None:
        interval = self._settings.decode_interval_seconds
        logger.debug(f"🔍 Decode loop started ({self._settings.decode_fps:g} fps)")

        while not subscription.cancelled:
            try:
                event = await asyncio.to_thread(self._grab_and_decode, surface)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                event = DecodeFault(e)

            if subscription.cancelled:
                break

            if event is not None:
                subscription.ticks += 1
                try:
                    on_tick(event)
                except Exception as e:
                    logger.error(f"Decode tick handler error: {e}")

            await asyncio.sleep(interval)

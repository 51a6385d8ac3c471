"""
==============================================================================
Capture Package - Live Barcode Capture
==============================================================================

Camera acquisition, decode loop and the capture session state machine.

Classes:
--------
- CaptureSession: one open-to-close scanning lifecycle
- OpenCVMediaProvider: camera streams via OpenCV
- PyzbarDecodeEngine: cancellable decode loop via pyzbar
- VideoSurface: stream binding and annotated snapshots

==============================================================================
"""

from .models import (
    CameraAcquisitionError,
    DecodedValue,
    DecodeFault,
    ErrorKind,
    FacingMode,
    NotFoundSignal,
    NOT_FOUND,
    ScanPolicy,
    SessionState,
)
from .media import (
    MediaProvider,
    OpenCVMediaProvider,
    OpenCVVideoStream,
    StreamReadError,
    VideoStream,
)
from .surface import VideoSurface
from .decoder import DecodeEngine, DecodeSubscription, PyzbarDecodeEngine
from .session import CaptureSession

__all__ = [
    "CameraAcquisitionError",
    "CaptureSession",
    "DecodeEngine",
    "DecodeFault",
    "DecodeSubscription",
    "DecodedValue",
    "ErrorKind",
    "FacingMode",
    "MediaProvider",
    "NOT_FOUND",
    "NotFoundSignal",
    "OpenCVMediaProvider",
    "OpenCVVideoStream",
    "PyzbarDecodeEngine",
    "ScanPolicy",
    "SessionState",
    "StreamReadError",
    "VideoStream",
    "VideoSurface",
]

"""
==============================================================================
Capture Models Module
==============================================================================

Value types shared by the capture session and its collaborators.

Types:
------
- ScanPolicy: what happens after a value is reported
- SessionState: Idle / Acquiring / Streaming / Reporting
- ErrorKind: user-visible failure categories
- FacingMode: camera facing preference
- DecodedValue / NotFoundSignal / DecodeFault: decode tick events
- CameraAcquisitionError: raised by media providers

==============================================================================
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Dict, Optional, Union

from pos_scanner.core import exceptions
from pos_scanner.core.exceptions import AppException


class ScanPolicy(str, enum.Enum):
    """Emission policy applied after a value is reported."""

    CLOSE_ON_FIRST_SCAN = "close_on_first_scan"
    STAY_OPEN_DEDUPE_BY_VALUE = "stay_open_dedupe_by_value"
    STAY_OPEN_ALLOW_REPEATS = "stay_open_allow_repeats"

    @property
    def stays_open(self) -> bool:
        return self is not ScanPolicy.CLOSE_ON_FIRST_SCAN


class SessionState(str, enum.Enum):
    """Capture session lifecycle states."""

    IDLE = "idle"
    ACQUIRING = "acquiring"
    STREAMING = "streaming"
    REPORTING = "reporting"


class ErrorKind(str, enum.Enum):
    """Failure categories surfaced to the user."""

    PERMISSION_DENIED = "permission_denied"
    NO_DEVICE = "no_device"
    DECODE_ENGINE_FAULT = "decode_engine_fault"

    @property
    def display_message(self) -> str:
        return _ERROR_MESSAGES[self]


_ERROR_MESSAGES = {
    ErrorKind.PERMISSION_DENIED: (
        "Camera access was denied. Check the device permissions and press "
        "'Activate camera' again, or enter the code manually."
    ),
    ErrorKind.NO_DEVICE: (
        "The camera could not be started. Make sure a camera is connected and "
        "not in use, then press 'Activate camera' again, or enter the code manually."
    ),
    ErrorKind.DECODE_ENGINE_FAULT: (
        "The barcode reader stopped responding. Activate the camera again "
        "or enter the code manually."
    ),
}


class FacingMode(str, enum.Enum):
    """Preferred camera direction."""

    ENVIRONMENT = "environment"
    USER = "user"


# =============================================================================
# DECODE EVENTS
# =============================================================================

@dataclass(frozen=True)
class DecodedValue:
    """A barcode read from one frame."""

    text: str
    symbology: Optional[str] = None
    rect: Optional[Dict[str, int]] = None


@dataclass(frozen=True)
class NotFoundSignal:
    """The frame held no recognizable barcode."""


@dataclass(frozen=True)
class DecodeFault:
    """Any decode failure other than a plain miss."""

    error: BaseException = field(compare=False)

    @property
    def message(self) -> str:
        return f"{type(self.error).__name__}: {self.error}"


DecodeEvent = Union[DecodedValue, NotFoundSignal, DecodeFault]

NOT_FOUND = NotFoundSignal()


# =============================================================================
# ERRORS
# =============================================================================

class CameraAcquisitionError(AppException):
    """
    Camera could not be acquired.

    Carries the ErrorKind so the session can expose it as ``last_error``.
    """

    def __init__(self, kind: ErrorKind, reason: Optional[str] = None):
        template = (
            exceptions.camera_permission_denied()
            if kind is ErrorKind.PERMISSION_DENIED
            else exceptions.camera_not_found()
        )
        details = {"kind": kind.value}
        if reason:
            details["reason"] = reason
        super().__init__(template.message, template.code, template.status_code, details)
        self.kind = kind
        self.reason = reason

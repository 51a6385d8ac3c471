"""
==============================================================================
Scanner WebSocket Module
==============================================================================

Barcode scanner modal for the register, served over a WebSocket.

Each connection owns one CaptureSession and one SaleDraft. Scanned codes
are added to the draft as they arrive.

Protocol:
---------
Client → server:
    {"type": "open", "start_camera": true, "policy": "close_on_first_scan"}
    {"type": "activate"}                      retry the camera
    {"type": "manual", "value": "750..."}     typed code
    {"type": "close"}                         dismiss the modal
    {"type": "snapshot"}                      JPEG preview (base64)
    {"type": "increase" | "decrease" | "remove", "product_id": "p1"}
    {"type": "discount", "amount": 5}
    {"type": "get_sale"}
    {"type": "stop"}                          end the connection

Server → client:
    ready, state, scanned, sale, vibrate, closed, snapshot, error

==============================================================================
"""

import asyncio
import base64
import logging
from typing import Optional

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from pos_scanner.capture import CaptureSession, MediaProvider, ScanPolicy, SessionState
from pos_scanner.capture.decoder import DecodeEngine
from pos_scanner.catalog import ProductCatalog
from pos_scanner.config import Settings
from pos_scanner.core import exceptions
from pos_scanner.core.dependencies import (
    get_app_settings,
    get_decode_engine,
    get_media_provider,
    get_optional_catalog,
)
from pos_scanner.core.exceptions import AppException
from pos_scanner.sales import SaleDraft


# Module logger
logger = logging.getLogger(__name__)

router = APIRouter()

FLUSH_TIMEOUT_SECONDS = 1.0


class ScannerWebSocketHandler:
    """
    Handler for one register's scanner connection.

    Session and draft callbacks run synchronously on the event loop and only
    queue messages; a single sender task writes them to the socket in order.
    Camera acquisition runs in its own task so a dismissal is read while the
    camera is still starting.
    """

    def __init__(
        self,
        websocket: WebSocket,
        media_provider: MediaProvider,
        decode_engine: DecodeEngine,
        catalog: Optional[ProductCatalog],
        settings: Settings
    ):
        self._websocket = websocket
        self._settings = settings
        self._outbox: asyncio.Queue = asyncio.Queue()
        self._draft = SaleDraft(catalog) if catalog is not None else None
        self._session = CaptureSession(
            media_provider,
            decode_engine,
            on_scanned=self._on_scanned,
            on_close=self._on_close,
            on_state_change=self._on_state_change,
            policy=ScanPolicy(settings.scan_policy),
            haptic=self._on_haptic,
            haptic_duration_ms=settings.haptic_duration_ms,
            decode_fault_limit=settings.decode_fault_limit,
        )
        self._acquisition: Optional[asyncio.Task] = None

    @property
    def session(self) -> CaptureSession:
        return self._session

    # =========================================================================
    # OUTBOX
    # =========================================================================

    def _post(self, message: dict) -> None:
        self._outbox.put_nowait(message)

    def _post_error(self, error: AppException) -> None:
        self._post({
            "type": "error",
            "code": error.code,
            "message": error.message,
            "details": error.details
        })

    def _post_sale(self, line: Optional[dict] = None) -> None:
        self._post({
            "type": "sale",
            "line": line,
            "sale": self._draft.to_dict()
        })

    async def _drain_outbox(self) -> None:
        while True:
            message = await self._outbox.get()
            try:
                await self._websocket.send_json(message)
            except (WebSocketDisconnect, RuntimeError) as e:
                logger.debug(f"Send stopped: {e}")
                self._outbox.task_done()
                return
            self._outbox.task_done()

    # =========================================================================
    # SESSION CALLBACKS
    # =========================================================================

    def _on_scanned(self, value: str) -> None:
        self._post({"type": "scanned", "value": value})

        if self._draft is None:
            self._post_error(exceptions.catalog_not_loaded())
            return

        try:
            line = self._draft.add_by_identifier(value)
        except AppException as e:
            self._post_error(e)
            return

        self._post_sale(line.to_dict())

    def _on_close(self) -> None:
        self._post({"type": "closed", "session_id": self._session.session_id})

    def _on_state_change(self, session: CaptureSession) -> None:
        self._post({"type": "state", **session.snapshot()})

    def _on_haptic(self, duration_ms: int) -> None:
        self._post({"type": "vibrate", "duration_ms": duration_ms})

    # =========================================================================
    # CLIENT MESSAGES
    # =========================================================================

    async def handle_open(self, data: dict) -> None:
        """Open the modal, optionally with a different scan policy."""
        policy = data.get("policy")
        if policy:
            if self._session.is_open:
                raise exceptions.session_busy(self._session.state.value)
            try:
                self._session.policy = ScanPolicy(policy)
            except ValueError:
                raise AppException(
                    f"Unknown scan policy: {policy}",
                    "INVALID_POLICY",
                    400,
                    {"policy": policy}
                )

        await self._session.open(start_camera=False)

        if _flag(data.get("start_camera"), default=True):
            self._start_acquisition()

    async def handle_activate(self) -> None:
        """Start the camera, or retry after a failed attempt."""
        await self._session.open(start_camera=False)
        self._start_acquisition()

    def _start_acquisition(self) -> None:
        if self._acquisition is not None and not self._acquisition.done():
            raise exceptions.session_busy(SessionState.ACQUIRING.value)
        self._acquisition = asyncio.create_task(self._acquire())

    async def _acquire(self) -> None:
        if not self._session.is_open:
            # Dismissed before the task got to run
            return
        try:
            await self._session.activate_camera()
        except AppException as e:
            self._post_error(e)
        except Exception as e:
            logger.error(f"Camera acquisition failed: {e}")
            self._post_error(exceptions.internal_error(str(e)))

    def handle_manual(self, data: dict) -> None:
        value = data.get("value")
        if not (value or "").strip():
            self._post_error(exceptions.invalid_manual_input())
            return
        self._session.manual_entry(value)

    def handle_snapshot(self) -> None:
        jpeg = self._session.surface.snapshot_jpeg(
            self._session.last_detection,
            quality=self._settings.snapshot_jpeg_quality
        )
        self._post({
            "type": "snapshot",
            "image": base64.b64encode(jpeg).decode("ascii") if jpeg else None
        })

    def handle_sale_action(self, msg_type: str, data: dict) -> None:
        if self._draft is None:
            raise exceptions.catalog_not_loaded()

        if msg_type == "get_sale":
            self._post_sale()
            return

        if msg_type == "discount":
            self._draft.set_discount(data.get("amount"))
            self._post_sale()
            return

        product_id = data.get("product_id") or ""

        if msg_type == "increase":
            self._post_sale(self._draft.increase(product_id).to_dict())
        elif msg_type == "decrease":
            self._post_sale(self._draft.decrease(product_id).to_dict())
        elif msg_type == "remove":
            self._draft.remove(product_id)
            self._post_sale()

    async def handle_message(self, data: dict) -> bool:
        """
        Dispatch one client message.

        Returns:
            False when the client asked to stop
        """
        msg_type = data.get("type")

        if msg_type == "open":
            await self.handle_open(data)
        elif msg_type == "activate":
            await self.handle_activate()
        elif msg_type == "manual":
            self.handle_manual(data)
        elif msg_type == "close":
            self._session.close()
        elif msg_type == "snapshot":
            self.handle_snapshot()
        elif msg_type in ("increase", "decrease", "remove", "discount", "get_sale"):
            self.handle_sale_action(msg_type, data)
        elif msg_type == "stop":
            logger.info("🛑 Client requested stop")
            return False
        else:
            self._post_error(AppException(
                f"Unknown message type: {msg_type}",
                "UNKNOWN_MESSAGE",
                400
            ))

        return True

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def run(self) -> None:
        """Main handler loop."""
        await self._websocket.accept()
        logger.info(f"📱 Scanner WebSocket connected [{self._session.session_id}]")

        sender = asyncio.create_task(self._drain_outbox())
        self._post({
            "type": "ready",
            "session_id": self._session.session_id,
            "policy": self._session.policy.value,
            "catalog_loaded": self._draft is not None
        })

        try:
            while True:
                data = await self._websocket.receive_json()
                try:
                    if not await self.handle_message(data):
                        break
                except AppException as e:
                    self._post_error(e)

        except WebSocketDisconnect:
            logger.info("📱 Client disconnected")
        except Exception as e:
            logger.error(f"WebSocket error: {e}")
            self._post_error(exceptions.internal_error(str(e)))
        finally:
            self._session.close()
            await self._cancel_acquisition()
            await self._shutdown(sender)
            logger.info("✅ Scanner WebSocket closed")

    async def _cancel_acquisition(self) -> None:
        acquisition, self._acquisition = self._acquisition, None
        if acquisition is None or acquisition.done():
            return
        acquisition.cancel()
        await asyncio.gather(acquisition, return_exceptions=True)

    async def _shutdown(self, sender: asyncio.Task) -> None:
        if not sender.done():
            try:
                await asyncio.wait_for(self._outbox.join(), timeout=FLUSH_TIMEOUT_SECONDS)
            except asyncio.TimeoutError:
                logger.warning("Outbox not flushed before close")
            sender.cancel()

        if self._websocket.client_state == WebSocketState.CONNECTED:
            try:
                await self._websocket.close()
            except RuntimeError as e:
                logger.debug(f"Close skipped: {e}")


@router.websocket("/ws/scan")
async def websocket_scan(
    websocket: WebSocket,
    media_provider: MediaProvider = Depends(get_media_provider),
    decode_engine: DecodeEngine = Depends(get_decode_engine),
    catalog: Optional[ProductCatalog] = Depends(get_optional_catalog),
    settings: Settings = Depends(get_app_settings)
):
    """Barcode scanner modal with live sale draft."""
    handler = ScannerWebSocketHandler(websocket, media_provider, decode_engine, catalog, settings)
    await handler.run()


def _flag(value, default: bool) -> bool:
    """Read a boolean message field; strings such as "false" count as False."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "on")
    return bool(value)

# answerprep/services/capture_service.py
import asyncio
import base64
import binascii
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Set

logger = logging.getLogger(__name__)

Send = Callable[[dict], Awaitable[None]]

DEFAULT_MIME_TYPE = "audio/webm"


class CaptureError(Exception):
    """Microphone capture could not be started or finished."""


class CapturePermissionDenied(CaptureError):
    """The user declined microphone access."""


class CaptureUnavailable(CaptureError):
    """No browser is reachable to do the capture (not connected, gone, or silent)."""


@dataclass(frozen=True)
class AudioArtifact:
    data: bytes
    mime_type: str = DEFAULT_MIME_TYPE
    artifact_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def size(self) -> int:
        return len(self.data)


class CaptureHandle(ABC):
    """An active recording. `stop()` releases the microphone and returns the audio."""

    @abstractmethod
    async def stop(self) -> AudioArtifact:
        ...


class AudioCapture(ABC):
    @abstractmethod
    async def request_capture(self) -> CaptureHandle:
        """Ask for the microphone; raises CaptureError subclasses on failure."""


class BrowserCaptureHandle(CaptureHandle):
    def __init__(self, owner: "BrowserCapture", mime_type: str):
        self._owner = owner
        self.mime_type = mime_type
        self._chunks: List[bytes] = []
        self._artifact: Optional[AudioArtifact] = None

    @property
    def stopped(self) -> bool:
        return self._artifact is not None

    def feed(self, data: bytes) -> None:
        if self._artifact is None and data:
            self._chunks.append(data)

    async def stop(self) -> AudioArtifact:
        if self._artifact is not None:
            return self._artifact
        await self._owner._finish(self)
        self._artifact = AudioArtifact(data=b"".join(self._chunks), mime_type=self.mime_type)
        logger.info("Capture finished: %d chunks, %d bytes", len(self._chunks), self._artifact.size)
        return self._artifact


class BrowserCapture(AudioCapture):
    """
    Microphone capture done by the browser (getUserMedia + MediaRecorder),
    driven over the session websocket:

    - server -> browser: capture_request, capture_stop
    - browser -> server: capture_granted {mimeType}, capture_denied {reason},
      audio_chunk {data: base64}, capture_stopped
    """

    def __init__(self, request_timeout: float = 30.0, stop_timeout: float = 5.0):
        self.request_timeout = request_timeout
        self.stop_timeout = stop_timeout
        self._send: Optional[Send] = None
        self._pending: Optional[asyncio.Future] = None
        self._flush: Optional[asyncio.Future] = None
        self._active: Optional[BrowserCaptureHandle] = None
        self._background: Set[asyncio.Task] = set()

    @property
    def connected(self) -> bool:
        return self._send is not None

    def attach(self, send: Send) -> None:
        self._send = send

    def detach(self) -> None:
        self._send = None
        if self._pending is not None and not self._pending.done():
            self._pending.set_exception(
                CaptureUnavailable("Browser disconnected before answering the microphone request")
            )
        if self._flush is not None and not self._flush.done():
            self._flush.set_result(None)

    async def request_capture(self) -> CaptureHandle:
        if self._send is None:
            raise CaptureUnavailable("No browser is connected to this practice session")
        if self._pending is not None:
            raise CaptureError("A microphone request is already pending")

        self._pending = asyncio.get_running_loop().create_future()
        try:
            try:
                await self._send({"type": "capture_request"})
            except Exception as e:
                raise CaptureUnavailable(f"Could not reach the browser: {e}") from e
            mime_type = await asyncio.wait_for(self._pending, self.request_timeout)
        except asyncio.TimeoutError:
            raise CaptureUnavailable("Browser did not answer the microphone request") from None
        finally:
            self._pending = None

        handle = BrowserCaptureHandle(self, mime_type or DEFAULT_MIME_TYPE)
        self._active = handle
        return handle

    async def _finish(self, handle: BrowserCaptureHandle) -> None:
        """Tell the browser to stop and wait for its last chunk."""
        try:
            if self._send is None:
                return
            self._flush = asyncio.get_running_loop().create_future()
            try:
                await self._send({"type": "capture_stop"})
                await asyncio.wait_for(self._flush, self.stop_timeout)
            except asyncio.TimeoutError:
                logger.warning("Browser did not confirm capture stop, keeping chunks received so far")
            except Exception as e:
                logger.warning("Could not send capture_stop: %s", e)
        finally:
            self._flush = None
            if self._active is handle:
                self._active = None

    def _release_late_grant(self) -> None:
        logger.warning("Microphone granted after the request was given up, stopping it")
        send = self._send
        if send is None:
            return

        async def _stop():
            try:
                await send({"type": "capture_stop"})
            except Exception as e:
                logger.warning("Could not send capture_stop: %s", e)

        task = asyncio.get_running_loop().create_task(_stop())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def handle_message(self, msg: dict) -> bool:
        """Route one browser message; returns False when it is not a capture message."""
        t = msg.get("type")
        if t == "capture_granted":
            if self._pending is not None:
                if not self._pending.done():
                    self._pending.set_result(msg.get("mimeType") or DEFAULT_MIME_TYPE)
            elif self._active is None:
                # nobody waits for this grant any more, so switch the mic back off
                self._release_late_grant()
        elif t == "capture_denied":
            if self._pending is not None and not self._pending.done():
                reason = msg.get("reason") or "Microphone permission was denied"
                self._pending.set_exception(CapturePermissionDenied(reason))
        elif t == "audio_chunk":
            if self._active is None:
                logger.debug("Dropping audio chunk with no active capture")
                return True
            try:
                self._active.feed(base64.b64decode(msg.get("data") or "", validate=True))
            except (binascii.Error, ValueError) as e:
                logger.warning("Dropping malformed audio chunk: %s", e)
        elif t == "capture_stopped":
            if self._flush is not None and not self._flush.done():
                self._flush.set_result(None)
        else:
            return False
        return True

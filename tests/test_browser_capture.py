import asyncio
import base64

import pytest

from answerprep.services.capture_service import (
    BrowserCapture,
    CaptureError,
    CapturePermissionDenied,
    CaptureUnavailable,
)


class Browser:
    """Records what the server sends and answers like a scripted browser would."""

    def __init__(self, capture, replies=None):
        self.capture = capture
        self.sent = []
        self.replies = replies or {}

    async def send(self, msg):
        self.sent.append(msg)
        for reply in self.replies.get(msg["type"], []):
            # answer on a later loop turn, like a real socket
            asyncio.get_running_loop().call_soon(self.capture.handle_message, reply)


def chunk(data: bytes) -> dict:
    return {"type": "audio_chunk", "data": base64.b64encode(data).decode()}


def test_request_without_browser_is_unavailable():
    async def scenario():
        await BrowserCapture().request_capture()

    with pytest.raises(CaptureUnavailable):
        asyncio.run(scenario())


def test_granted_capture_collects_chunks_until_stopped():
    async def scenario():
        capture = BrowserCapture(stop_timeout=1)
        browser = Browser(capture, {
            "capture_request": [{"type": "capture_granted", "mimeType": "audio/ogg"}],
            "capture_stop": [chunk(b"tail"), {"type": "capture_stopped"}],
        })
        capture.attach(browser.send)

        handle = await capture.request_capture()
        capture.handle_message(chunk(b"head-"))
        artifact = await handle.stop()
        return browser, artifact, handle

    browser, artifact, handle = asyncio.run(scenario())
    assert [m["type"] for m in browser.sent] == ["capture_request", "capture_stop"]
    assert artifact.data == b"head-tail"
    assert artifact.mime_type == "audio/ogg"
    assert handle.stopped


def test_denied_capture_raises_permission_error():
    async def scenario():
        capture = BrowserCapture()
        browser = Browser(capture, {
            "capture_request": [{"type": "capture_denied", "reason": "NotAllowedError"}],
        })
        capture.attach(browser.send)
        await capture.request_capture()

    with pytest.raises(CapturePermissionDenied, match="NotAllowedError"):
        asyncio.run(scenario())


def test_silent_browser_times_out():
    async def scenario():
        capture = BrowserCapture(request_timeout=0.05)
        capture.attach(Browser(capture).send)
        await capture.request_capture()

    with pytest.raises(CaptureUnavailable):
        asyncio.run(scenario())


def test_disconnect_while_waiting_for_permission():
    async def scenario():
        capture = BrowserCapture(request_timeout=5)
        capture.attach(Browser(capture).send)
        asyncio.get_running_loop().call_later(0.01, capture.detach)
        await capture.request_capture()

    with pytest.raises(CaptureUnavailable):
        asyncio.run(scenario())


def test_send_failure_is_unavailable():
    async def broken(msg):
        raise RuntimeError("socket closed")

    async def scenario():
        capture = BrowserCapture()
        capture.attach(broken)
        await capture.request_capture()

    with pytest.raises(CaptureUnavailable):
        asyncio.run(scenario())


def test_stop_without_confirmation_keeps_received_chunks():
    async def scenario():
        capture = BrowserCapture(stop_timeout=0.05)
        browser = Browser(capture, {"capture_request": [{"type": "capture_granted"}]})
        capture.attach(browser.send)
        handle = await capture.request_capture()
        capture.handle_message(chunk(b"partial"))
        return await handle.stop()

    artifact = asyncio.run(scenario())
    assert artifact.data == b"partial"
    assert artifact.mime_type == "audio/webm"


def test_stop_after_disconnect_returns_immediately():
    async def scenario():
        capture = BrowserCapture(stop_timeout=5)
        browser = Browser(capture, {"capture_request": [{"type": "capture_granted"}]})
        capture.attach(browser.send)
        handle = await capture.request_capture()
        capture.handle_message(chunk(b"abc"))
        capture.detach()
        artifact = await asyncio.wait_for(handle.stop(), 1)
        return browser, artifact

    browser, artifact = asyncio.run(scenario())
    assert artifact.data == b"abc"
    assert [m["type"] for m in browser.sent] == ["capture_request"]


def test_repeated_stop_returns_same_artifact():
    async def scenario():
        capture = BrowserCapture(stop_timeout=1)
        browser = Browser(capture, {
            "capture_request": [{"type": "capture_granted"}],
            "capture_stop": [{"type": "capture_stopped"}],
        })
        capture.attach(browser.send)
        handle = await capture.request_capture()
        first = await handle.stop()
        second = await handle.stop()
        return browser, first, second

    browser, first, second = asyncio.run(scenario())
    assert first is second
    assert [m["type"] for m in browser.sent].count("capture_stop") == 1


def test_chunks_after_stop_are_dropped():
    async def scenario():
        capture = BrowserCapture(stop_timeout=1)
        browser = Browser(capture, {
            "capture_request": [{"type": "capture_granted"}],
            "capture_stop": [{"type": "capture_stopped"}],
        })
        capture.attach(browser.send)
        handle = await capture.request_capture()
        capture.handle_message(chunk(b"kept"))
        artifact = await handle.stop()
        assert capture.handle_message(chunk(b"late")) is True
        return artifact

    assert asyncio.run(scenario()).data == b"kept"


def test_malformed_chunk_is_ignored():
    async def scenario():
        capture = BrowserCapture(stop_timeout=0)
        browser = Browser(capture, {"capture_request": [{"type": "capture_granted"}]})
        capture.attach(browser.send)
        handle = await capture.request_capture()
        capture.handle_message({"type": "audio_chunk", "data": "%%% not base64"})
        capture.handle_message(chunk(b"ok"))
        return await handle.stop()

    assert asyncio.run(scenario()).data == b"ok"


def test_second_request_while_pending_is_rejected():
    async def scenario():
        capture = BrowserCapture(request_timeout=5)
        capture.attach(Browser(capture).send)
        first = asyncio.ensure_future(capture.request_capture())
        await asyncio.sleep(0)
        try:
            with pytest.raises(CaptureError):
                await capture.request_capture()
        finally:
            capture.detach()
            with pytest.raises(CaptureUnavailable):
                await first

    asyncio.run(scenario())


def test_unknown_message_is_not_consumed():
    assert BrowserCapture().handle_message({"type": "transcript", "text": "hi"}) is False


def test_late_grant_after_timeout_switches_mic_off():
    async def scenario():
        capture = BrowserCapture(request_timeout=0.05)
        browser = Browser(capture)
        capture.attach(browser.send)
        with pytest.raises(CaptureUnavailable):
            await capture.request_capture()

        assert capture.handle_message({"type": "capture_granted"}) is True
        await asyncio.sleep(0.01)
        return browser

    browser = asyncio.run(scenario())
    assert [m["type"] for m in browser.sent] == ["capture_request", "capture_stop"]


def test_repeated_grant_keeps_active_capture_running():
    async def scenario():
        capture = BrowserCapture(stop_timeout=0)
        browser = Browser(capture, {"capture_request": [{"type": "capture_granted"}]})
        capture.attach(browser.send)
        handle = await capture.request_capture()
        capture.handle_message({"type": "capture_granted"})
        await asyncio.sleep(0.01)
        sent = [m["type"] for m in browser.sent]
        await handle.stop()
        return sent

    assert asyncio.run(scenario()) == ["capture_request"]

# answerprep/routers/practice.py
import json
import logging
from typing import Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response, WebSocket, WebSocketDisconnect

from answerprep.models.schemas import SessionStateOut, TranscriptUpdate, session_state_out
from answerprep.models.session_store import PracticeSession, SessionStore
from answerprep.services.session_controller import SessionStateError

router = APIRouter()
ws_router = APIRouter()
log = logging.getLogger(__name__)


class ConnectionManager:
    def __init__(self):
        self.active_connections: Dict[str, WebSocket] = {}

    async def connect(self, websocket: WebSocket, session_id: str):
        await websocket.accept()
        self.active_connections[session_id] = websocket
        log.info("WebSocket connected for session: %s", session_id)

    def disconnect(self, session_id: str, websocket: WebSocket) -> bool:
        # a newer tab may have taken over the session meanwhile
        if self.active_connections.get(session_id) is not websocket:
            return False
        self.active_connections.pop(session_id, None)
        log.info("WebSocket disconnected for session: %s", session_id)
        return True

    async def send_json(self, session_id: str, data: dict):
        ws = self.active_connections.get(session_id)
        if ws:
            await ws.send_text(json.dumps(data))


manager = ConnectionManager()


def get_store(request: Request) -> SessionStore:
    return request.app.state.store


def _session(store: SessionStore, session_id: str) -> PracticeSession:
    try:
        return store.get(session_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Session not found")


async def push_state(s: PracticeSession):
    await manager.send_json(s.session_id, {"type": "state", "data": session_state_out(s).model_dump()})


def _state_pusher(s: PracticeSession):
    async def _push(_state):
        await push_state(s)
    return _push


# ------------ Session lifecycle -------------
@router.post("/sessions", response_model=SessionStateOut)
async def create_session(store: SessionStore = Depends(get_store)):
    s = store.create()
    s.controller.on_change = _state_pusher(s)
    return session_state_out(s)


@router.get("/{session_id}", response_model=SessionStateOut)
async def get_session(session_id: str, store: SessionStore = Depends(get_store)):
    return session_state_out(_session(store, session_id))


@router.delete("/{session_id}")
async def delete_session(session_id: str, store: SessionStore = Depends(get_store)):
    if not await store.remove(session_id):
        raise HTTPException(status_code=404, detail="Session not found")
    return {"ok": True, "message": "Session deleted", "session_id": session_id}


# ------------ Recording -------------
@router.post("/{session_id}/start", response_model=SessionStateOut)
async def start_recording(session_id: str, store: SessionStore = Depends(get_store)):
    s = _session(store, session_id)
    try:
        await s.controller.start_recording()
    except SessionStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return session_state_out(s)


@router.post("/{session_id}/stop", response_model=SessionStateOut)
async def stop_recording(
    session_id: str,
    body: Optional[TranscriptUpdate] = None,
    store: SessionStore = Depends(get_store),
):
    s = _session(store, session_id)
    # the page sends its final transcript here; socket edits may still be in flight
    if body is not None and s.controller.state.is_recording:
        await s.controller.set_transcript_text(body.text)
    await s.controller.stop_recording()
    return session_state_out(s)


@router.post("/{session_id}/next", response_model=SessionStateOut)
async def next_question(session_id: str, store: SessionStore = Depends(get_store)):
    s = _session(store, session_id)
    try:
        await s.controller.advance_question()
    except SessionStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return session_state_out(s)


@router.put("/{session_id}/transcript", response_model=SessionStateOut)
async def set_transcript(session_id: str, body: TranscriptUpdate, store: SessionStore = Depends(get_store)):
    s = _session(store, session_id)
    await s.controller.set_transcript_text(body.text)
    return session_state_out(s)


# ------------ Results -------------
@router.get("/{session_id}/audio")
async def recorded_audio(session_id: str, store: SessionStore = Depends(get_store)):
    artifact = _session(store, session_id).controller.state.recorded_audio
    if artifact is None:
        raise HTTPException(status_code=404, detail="No recording for the current question")
    return Response(content=artifact.data, media_type=artifact.mime_type)


@router.get("/{session_id}/summary")
async def practice_summary(session_id: str, store: SessionStore = Depends(get_store)):
    _session(store, session_id)
    return store.summary(session_id)


# ------------ Browser channel -------------
@ws_router.websocket("/ws/practice/{session_id}")
async def practice_socket(websocket: WebSocket, session_id: str):
    store: SessionStore = websocket.app.state.store
    s = store.sessions.get(session_id)
    if s is None:
        await websocket.close(code=4404)
        return

    await manager.connect(websocket, session_id)
    store.cancel_expiry(session_id)
    s.capture.attach(lambda data: manager.send_json(session_id, data))
    try:
        await push_state(s)
        while True:
            try:
                msg = json.loads(await websocket.receive_text())
            except json.JSONDecodeError:
                log.warning("Skipping malformed websocket frame (%s)", session_id)
                continue
            if not isinstance(msg, dict):
                continue
            if s.capture.handle_message(msg):
                continue
            if msg.get("type") == "transcript":
                await s.controller.set_transcript_text(str(msg.get("text") or ""))
            else:
                log.debug("Ignoring websocket message %r (%s)", msg.get("type"), session_id)
    except WebSocketDisconnect:
        pass
    except Exception as e:
        log.error("WebSocket error (%s): %s", session_id, e)
    finally:
        if manager.disconnect(session_id, websocket):
            s.capture.detach()
            if session_id in store:
                store.expire_later(session_id)

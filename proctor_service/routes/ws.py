# proctor_service/routes/ws.py
from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Depends
from pydantic import ValidationError
from typing import Optional
import asyncio
import json
import logging

from ..deps import get_ws_service
from ..errors import ProctoringError
from ..schemas import SessionCreate
from ..services.lifecycle import ReportedTally
from ..services.proctoring import ProctoringService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ws", tags=["ws"])

# "focus-event" and "object-detection" are the names older clients emit
EVENT_MESSAGE_TYPES = {"detection-event", "focus-event", "object-detection"}


async def handle_message(service: ProctoringService, payload: dict) -> dict:
    msg_type = payload.pop("type", None)
    if msg_type in EVENT_MESSAGE_TYPES:
        result = await service.ingest(payload)
        return {"ok": True, "type": msg_type, **result.model_dump()}

    if msg_type == "interview-start":
        try:
            request = SessionCreate.model_validate(payload)
        except ValidationError as exc:
            return {"ok": False, "type": msg_type, "error": "invalid_message", "detail": exc.errors(include_url=False)}
        if request.session_id is None:
            return {"ok": False, "type": msg_type, "error": "invalid_message", "detail": "session_id required"}
        agg = await service.start_session(request.session_id, request.candidate_name)
        return {"ok": True, "type": msg_type, "session_id": agg.session_id, "status": agg.status.value}

    if msg_type == "interview-end":
        session_id = payload.pop("session_id", None)
        if not session_id:
            return {"ok": False, "type": msg_type, "error": "invalid_message", "detail": "session_id required"}
        try:
            reported = ReportedTally.model_validate(payload) if payload else None
        except ValidationError as exc:
            return {"ok": False, "type": msg_type, "error": "invalid_message", "detail": exc.errors(include_url=False)}
        agg = await service.end_session(session_id, reported)
        return {
            "ok": True,
            "type": msg_type,
            "session_id": agg.session_id,
            "status": agg.status.value,
            "integrity_score": agg.integrity_score,
            "duration_seconds": agg.duration_seconds,
        }

    return {"ok": False, "type": msg_type, "error": "invalid_message", "detail": f"unknown message type {msg_type!r}"}


@router.websocket("/stream")
async def stream_ws(websocket: WebSocket, service: ProctoringService = Depends(get_ws_service)):
    """
    Receives JSON messages from the monitoring client, e.g.
    {
      "type": "detection-event",
      "session_id": "abc123",
      "kind": "focus-loss",
      "severity": "warning",
      "message": "Candidate looked away",
      "occurred_at": 169xxxxxx (optional),
      "event_id": "c-17" (optional)
    }
    Every message gets one reply; rejected messages never close the connection.
    """
    await websocket.accept()
    try:
        while True:
            data = await websocket.receive_text()
            try:
                payload = json.loads(data)
            except json.JSONDecodeError:
                await websocket.send_json({"ok": False, "error": "invalid_json"})
                continue
            if not isinstance(payload, dict):
                await websocket.send_json({"ok": False, "error": "invalid_message", "detail": "expected an object"})
                continue

            # handled in order so ingestion order matches arrival order
            try:
                reply = await handle_message(service, payload)
            except ProctoringError as exc:
                reply = {"ok": False, **exc.to_dict()}
            await websocket.send_json(reply)
    except WebSocketDisconnect:
        return


@router.websocket("/monitor")
async def monitor_ws(
    websocket: WebSocket,
    session_id: Optional[str] = None,
    service: ProctoringService = Depends(get_ws_service),
):
    """
    Interviewer view: pushes focus-alert / object-alert messages for accepted events,
    optionally only for one session.
    """
    # subscribed before the handshake completes so no alert is missed
    queue = service.notifier.subscribe(session_id)

    async def forward():
        while True:
            await websocket.send_json(await queue.get())

    async def watch_disconnect():
        while True:
            msg = await websocket.receive()
            if msg["type"] == "websocket.disconnect":
                return

    try:
        await websocket.accept()
        logger.info("Monitor connected (session filter: %s)", session_id or "all")
        tasks = {asyncio.create_task(forward()), asyncio.create_task(watch_disconnect())}
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        for task in done:
            exc = task.exception()
            if exc is not None and not isinstance(exc, WebSocketDisconnect):
                raise exc
    finally:
        service.notifier.unsubscribe(queue)
        logger.info("Monitor disconnected")

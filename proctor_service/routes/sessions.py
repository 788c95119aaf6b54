# proctor_service/routes/sessions.py
from fastapi import APIRouter, Body, Depends, Response
from typing import Any, Dict, List, Optional
from uuid import uuid4

from ..deps import get_service
from ..models import SessionAggregate, SessionSummary
from ..schemas import SessionCreate
from ..services.ingestor import IngestResult
from ..services.lifecycle import ReportedTally
from ..services.proctoring import ProctoringService

router = APIRouter(prefix="/api", tags=["sessions"])


@router.post("/sessions", status_code=201, response_model=SessionAggregate)
async def create_session(payload: SessionCreate, service: ProctoringService = Depends(get_service)):
    session_id = payload.session_id or uuid4().hex
    return await service.start_session(session_id, payload.candidate_name)


@router.get("/sessions", response_model=List[SessionSummary])
async def list_sessions(service: ProctoringService = Depends(get_service)):
    return await service.list_sessions()


@router.get("/sessions/{session_id}", response_model=SessionAggregate)
async def get_session(session_id: str, service: ProctoringService = Depends(get_service)):
    return await service.get_session(session_id)


@router.post("/sessions/{session_id}/events", status_code=201, response_model=IngestResult)
async def post_event(
    session_id: str,
    response: Response,
    payload: Dict[str, Any] = Body(...),
    service: ProctoringService = Depends(get_service),
):
    """
    Accept one detection event posted by the client.
    A repeat of an already-seen ``event_id`` is acknowledged with 200 and not counted.
    """
    result = await service.ingest({**payload, "session_id": session_id})
    if result.duplicate:
        response.status_code = 200
    return result


@router.post("/sessions/{session_id}/end", response_model=SessionAggregate)
async def end_session(
    session_id: str,
    reported: Optional[ReportedTally] = Body(default=None),
    service: ProctoringService = Depends(get_service),
):
    return await service.end_session(session_id, reported)


@router.post("/sessions/{session_id}/cancel", response_model=SessionAggregate)
async def cancel_session(session_id: str, service: ProctoringService = Depends(get_service)):
    return await service.cancel_session(session_id)

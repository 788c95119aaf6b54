# proctor_service/routes/videos.py
from fastapi import APIRouter, Depends, UploadFile, File
from ..deps import get_service
from ..models import SessionAggregate
from ..services.proctoring import ProctoringService
from ..services.storage import save_upload_file

router = APIRouter(prefix="/api", tags=["recordings"])


@router.post("/sessions/{session_id}/recording", response_model=SessionAggregate)
async def upload_recording(
    session_id: str,
    file: UploadFile = File(...),
    service: ProctoringService = Depends(get_service),
):
    """
    Upload the recorded interview video and attach it to the session.
    """
    # 404 before writing anything
    await service.get_session(session_id)
    saved = await save_upload_file(file, session_id)
    return await service.attach_recording(session_id, saved["path"], saved["size_bytes"])

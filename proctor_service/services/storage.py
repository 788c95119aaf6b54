# proctor_service/services/storage.py
from pathlib import Path
from fastapi import UploadFile, HTTPException
from ..config import settings
from ..models import utcnow

CHUNK_SIZE = 1024 * 1024


async def save_upload_file(upload_file: UploadFile, session_id: str, destination_folder: str = None) -> dict:
    """
    Stream an uploaded recording to disk as <session_id>-<ms>.<ext>.
    Raises 413 once MAX_UPLOAD_SIZE_MB is exceeded; the partial file is removed.
    """
    dest_root = Path(destination_folder or settings.RECORDING_STORAGE_PATH)
    dest_root.mkdir(parents=True, exist_ok=True)

    ext = Path(upload_file.filename or "").suffix or ".webm"
    stamp = int(utcnow().timestamp() * 1000)
    filename = f"{session_id}-{stamp}{ext}"
    full_path = dest_root / filename
    limit = settings.MAX_UPLOAD_SIZE_MB * 1024 * 1024

    size = 0
    try:
        with full_path.open("wb") as out_file:
            while True:
                chunk = await upload_file.read(CHUNK_SIZE)
                if not chunk:
                    break
                size += len(chunk)
                if size > limit:
                    raise HTTPException(
                        status_code=413,
                        detail=f"Recording exceeds {settings.MAX_UPLOAD_SIZE_MB} MB limit",
                    )
                out_file.write(chunk)
    except BaseException:
        # no truncated recordings left on disk
        full_path.unlink(missing_ok=True)
        raise
    finally:
        await upload_file.close()
    return {"filename": filename, "path": str(full_path), "size_bytes": size}

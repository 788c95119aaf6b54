# proctor_service/main.py
import logging
import uvicorn
from fastapi import FastAPI, Request
from contextlib import asynccontextmanager
from .config import settings
from .errors import ProctoringError
from .routes import reports, sessions, videos, ws
from .services.proctoring import ProctoringService
from .services.session_store import get_repository
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # startup
    store = get_repository()
    if store.backend == "mongo":
        from .db import create_indexes

        await create_indexes(store.col)
        logger.info("DB indexes created")
    app.state.proctoring = ProctoringService(store=store)
    logger.info("Proctoring service ready (store=%s)", store.backend)
    yield
    # shutdown
    await app.state.proctoring.close()
    if store.backend == "mongo":
        from .db import close_client

        close_client()
    logger.info("Shutting down...")

app = FastAPI(title="Proctoring Session Service", version="1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(sessions.router)
app.include_router(reports.router)
app.include_router(videos.router)
app.include_router(ws.router)


@app.exception_handler(ProctoringError)
async def proctoring_error_handler(request: Request, exc: ProctoringError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.get("/health")
async def health():
    return JSONResponse({"status": "ok"})

if __name__ == "__main__":
    uvicorn.run("proctor_service.main:app", host=settings.HOST, port=settings.PORT, reload=True)

# proctor_service/deps.py
from fastapi import Request, WebSocket

from .services.proctoring import ProctoringService


def get_service(request: Request) -> ProctoringService:
    return request.app.state.proctoring


def get_ws_service(websocket: WebSocket) -> ProctoringService:
    return websocket.app.state.proctoring

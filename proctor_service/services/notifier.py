# proctor_service/services/notifier.py
import asyncio
import logging
from typing import Dict, Optional

from ..config import settings
from ..models import EventKind, EventRecord

logger = logging.getLogger(__name__)

# alert names the interviewer view listens for
ALERT_TYPES = {
    EventKind.FOCUS_LOSS: "focus-alert",
    EventKind.FACE_ABSENCE: "focus-alert",
    EventKind.MULTIPLE_FACES: "focus-alert",
    EventKind.OBJECT_DETECTION: "object-alert",
}


class EventBroadcaster:
    """Fan-out of accepted events to connected monitors. Never blocks the publisher."""

    def __init__(self, queue_size: Optional[int] = None) -> None:
        self.queue_size = queue_size or settings.MONITOR_QUEUE_SIZE
        self._subscribers: Dict[asyncio.Queue, Optional[str]] = {}

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self, session_id: Optional[str] = None) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        self._subscribers[queue] = session_id
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        self._subscribers.pop(queue, None)

    def publish(self, event: EventRecord) -> int:
        message = {
            "type": ALERT_TYPES[event.kind],
            "session_id": event.session_id,
            "event": event.model_dump(mode="json"),
        }
        delivered = 0
        for queue, session_filter in list(self._subscribers.items()):
            if session_filter is not None and session_filter != event.session_id:
                continue
            try:
                queue.put_nowait(message)
                delivered += 1
            except asyncio.QueueFull:
                logger.warning("Monitor queue full, dropping %s for session %s", message["type"], event.session_id)
        return delivered

# proctor_service/services/ingestor.py
import logging
from collections import Counter
from typing import Any, Mapping, Optional, Union

from pydantic import BaseModel, ValidationError

from ..config import settings
from ..errors import InvalidEvent, ProctoringError, SessionClosed
from ..models import EventRecord, SessionAggregate, SessionStatus, utcnow
from .notifier import EventBroadcaster
from .session_store import SessionRepository

logger = logging.getLogger(__name__)


class IngestResult(BaseModel):
    session_id: str
    accepted: bool
    duplicate: bool = False
    total_events: int
    focus_loss_count: int
    face_absence_count: int


class EventIngestor:
    """
    Validates detection events and appends them to their session's event log.

    Rejections (invalid payload, unknown session, closed session) are raised as
    typed errors and counted in ``rejections``; they never affect other sessions.
    Events carrying an ``event_id`` already present among the session's last
    ``dedup_window`` events are acknowledged without being appended again.
    """

    def __init__(
        self,
        store: SessionRepository,
        notifier: Optional[EventBroadcaster] = None,
        dedup_window: Optional[int] = None,
    ) -> None:
        self.store = store
        self.notifier = notifier
        self.dedup_window = settings.DEDUP_WINDOW if dedup_window is None else dedup_window
        self.rejections: Counter = Counter()

    def validate(self, payload: Union[EventRecord, Mapping[str, Any]]) -> EventRecord:
        if isinstance(payload, EventRecord):
            return payload
        data = dict(payload)
        data["received_at"] = utcnow()
        try:
            return EventRecord.model_validate(data)
        except ValidationError as exc:
            errors = [
                {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
                for err in exc.errors()
            ]
            raise InvalidEvent("Invalid event payload", session_id=data.get("session_id"), detail=errors)

    def _is_duplicate(self, agg: SessionAggregate, event: EventRecord) -> bool:
        if not event.event_id or self.dedup_window <= 0:
            return False
        recent = agg.events[-self.dedup_window:]
        return any(e.event_id == event.event_id for e in recent)

    def _apply(self, event: EventRecord):
        def mutator(agg: SessionAggregate) -> bool:
            if agg.status != SessionStatus.IN_PROGRESS:
                state = "has not started" if agg.status == SessionStatus.SCHEDULED else f"is {agg.status.value}"
                raise SessionClosed(
                    f"Session {agg.session_id} {state}, event rejected", session_id=agg.session_id
                )
            if self._is_duplicate(agg, event):
                return False
            agg.append_event(event)
            return True

        return mutator

    async def ingest(self, payload: Union[EventRecord, Mapping[str, Any]]) -> IngestResult:
        try:
            event = self.validate(payload)
            agg, appended = await self.store.atomic_update(event.session_id, self._apply(event))
        except ProctoringError as exc:
            self.rejections[exc.code] += 1
            logger.warning("Rejected event for session %s: %s", exc.session_id, exc.message)
            raise

        if appended:
            logger.debug("Accepted %s/%s for session %s", event.kind.value, event.severity.value, event.session_id)
            self._publish(event)
        else:
            logger.info("Duplicate event %s for session %s ignored", event.event_id, event.session_id)

        return IngestResult(
            session_id=agg.session_id,
            accepted=appended,
            duplicate=not appended,
            total_events=len(agg.events),
            focus_loss_count=agg.focus_loss_count,
            face_absence_count=agg.face_absence_count,
        )

    def _publish(self, event: EventRecord) -> None:
        if self.notifier is None:
            return
        try:
            self.notifier.publish(event)
        except Exception:
            # the append is already committed
            logger.exception("Failed to publish event for session %s", event.session_id)

# proctor_service/services/lifecycle.py
import logging
from datetime import datetime
from typing import Callable, Dict, FrozenSet, Optional

from pydantic import BaseModel, Field

from ..errors import InvalidTransition
from ..models import Recording, SessionAggregate, SessionStatus, utcnow
from ..utils.scoring import score
from .session_store import SessionRepository

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: Dict[SessionStatus, FrozenSet[SessionStatus]] = {
    SessionStatus.SCHEDULED: frozenset({SessionStatus.IN_PROGRESS, SessionStatus.CANCELLED}),
    SessionStatus.IN_PROGRESS: frozenset({SessionStatus.COMPLETED, SessionStatus.CANCELLED}),
    SessionStatus.COMPLETED: frozenset(),
    SessionStatus.CANCELLED: frozenset(),
}


class ReportedTally(BaseModel):
    """Client-computed totals sent with an end request. Compared, never stored."""

    focus_loss_count: Optional[int] = Field(default=None, ge=0)
    face_absence_count: Optional[int] = Field(default=None, ge=0)
    total_events: Optional[int] = Field(default=None, ge=0)
    integrity_score: Optional[int] = Field(default=None, ge=0, le=100)


def _check_transition(agg: SessionAggregate, target: SessionStatus) -> None:
    if target not in ALLOWED_TRANSITIONS[agg.status]:
        raise InvalidTransition(
            f"Cannot move session {agg.session_id} from {agg.status.value} to {target.value}",
            session_id=agg.session_id,
        )


def _tally_mismatches(agg: SessionAggregate, reported: ReportedTally) -> Dict[str, tuple]:
    authoritative = {
        "focus_loss_count": agg.focus_loss_count,
        "face_absence_count": agg.face_absence_count,
        "total_events": len(agg.events),
        "integrity_score": agg.integrity_score,
    }
    out = {}
    for field, expected in authoritative.items():
        claimed = getattr(reported, field)
        if claimed is not None and claimed != expected:
            out[field] = (claimed, expected)
    return out


class LifecycleManager:
    def __init__(self, store: SessionRepository, clock: Optional[Callable[[], datetime]] = None) -> None:
        self.store = store
        self.clock = clock or utcnow

    async def start_session(self, session_id: str, candidate_name: str) -> SessionAggregate:
        agg = SessionAggregate(
            session_id=session_id,
            candidate_name=candidate_name,
            status=SessionStatus.IN_PROGRESS,
            started_at=self.clock(),
        )
        created = await self.store.create(agg)
        logger.info("Session %s started for %s", session_id, candidate_name)
        return created

    async def end_session(self, session_id: str, reported: Optional[ReportedTally] = None) -> SessionAggregate:
        ended_at = self.clock()
        mismatches: Dict[str, tuple] = {}

        def mutator(agg: SessionAggregate) -> None:
            _check_transition(agg, SessionStatus.COMPLETED)
            agg.status = SessionStatus.COMPLETED
            agg.ended_at = ended_at
            agg.integrity_score = score(agg)
            if reported is not None:
                mismatches.clear()
                mismatches.update(_tally_mismatches(agg, reported))
                agg.reported_tally_mismatch = bool(mismatches)

        agg, _ = await self.store.atomic_update(session_id, mutator)
        if mismatches:
            logger.warning(
                "Client tally for session %s disagrees with server log: %s",
                session_id,
                {k: {"reported": c, "server": s} for k, (c, s) in mismatches.items()},
            )
        logger.info(
            "Session %s completed: %d events, score %s, %ss",
            session_id, len(agg.events), agg.integrity_score, agg.duration_seconds,
        )
        return agg

    async def cancel_session(self, session_id: str) -> SessionAggregate:
        ended_at = self.clock()

        def mutator(agg: SessionAggregate) -> None:
            _check_transition(agg, SessionStatus.CANCELLED)
            agg.status = SessionStatus.CANCELLED
            agg.ended_at = ended_at

        agg, _ = await self.store.atomic_update(session_id, mutator)
        logger.info("Session %s cancelled", session_id)
        return agg

    async def attach_recording(self, session_id: str, path: str, size_bytes: int) -> SessionAggregate:
        recording = Recording(path=path, size_bytes=size_bytes, uploaded_at=self.clock())

        def mutator(agg: SessionAggregate) -> None:
            agg.recording = recording

        agg, _ = await self.store.atomic_update(session_id, mutator)
        logger.info("Recording %s (%d bytes) attached to session %s", path, size_bytes, session_id)
        return agg

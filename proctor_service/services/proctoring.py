# proctor_service/services/proctoring.py
import logging
from datetime import datetime
from typing import Any, Callable, List, Mapping, Optional, Union

from ..errors import SessionNotFound
from ..models import EventRecord, SessionAggregate, SessionSummary
from .ingestor import EventIngestor, IngestResult
from .lifecycle import LifecycleManager, ReportedTally
from .notifier import EventBroadcaster
from .report_service import Report, StatsSummary, build_report, summarize_sessions
from .session_store import SessionRepository, get_repository

logger = logging.getLogger(__name__)


class ProctoringService:
    """
    Entry point used by the transport layer. Owns one session store and wires
    the lifecycle manager, the event ingestor and the monitor broadcaster to it.
    """

    def __init__(
        self,
        store: Optional[SessionRepository] = None,
        notifier: Optional[EventBroadcaster] = None,
        clock: Optional[Callable[[], datetime]] = None,
        dedup_window: Optional[int] = None,
    ) -> None:
        self.store = store or get_repository()
        self.notifier = notifier or EventBroadcaster()
        self.lifecycle = LifecycleManager(self.store, clock=clock)
        self.ingestor = EventIngestor(self.store, self.notifier, dedup_window=dedup_window)

    async def start_session(self, session_id: str, candidate_name: str) -> SessionAggregate:
        return await self.lifecycle.start_session(session_id, candidate_name)

    async def ingest(self, payload: Union[EventRecord, Mapping[str, Any]]) -> IngestResult:
        return await self.ingestor.ingest(payload)

    async def end_session(self, session_id: str, reported: Optional[ReportedTally] = None) -> SessionAggregate:
        return await self.lifecycle.end_session(session_id, reported)

    async def cancel_session(self, session_id: str) -> SessionAggregate:
        return await self.lifecycle.cancel_session(session_id)

    async def attach_recording(self, session_id: str, path: str, size_bytes: int) -> SessionAggregate:
        return await self.lifecycle.attach_recording(session_id, path, size_bytes)

    async def get_session(self, session_id: str) -> SessionAggregate:
        agg = await self.store.get(session_id)
        if agg is None:
            raise SessionNotFound(f"Session {session_id} not found", session_id=session_id)
        return agg

    async def get_report(self, session_id: str, live: bool = False) -> Report:
        return build_report(await self.get_session(session_id), live=live)

    async def list_sessions(self) -> List[SessionSummary]:
        return [SessionSummary.from_aggregate(a) for a in await self.store.list()]

    async def stats_summary(self) -> StatsSummary:
        return summarize_sessions(await self.store.list(), self.ingestor.rejections)

    async def close(self) -> None:
        await self.store.close()

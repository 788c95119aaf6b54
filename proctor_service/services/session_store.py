# proctor_service/services/session_store.py
"""
Session State Store.

Repositories hold one ``SessionAggregate`` per session id and serialize every
mutation of a given session through ``atomic_update``. Mutators receive a
private copy of the aggregate; the copy is committed only if the mutator
returns without raising.
"""
import asyncio
import logging
from typing import Callable, Dict, List, Optional, TypeVar

from pymongo.errors import DuplicateKeyError

from ..config import settings
from ..errors import ConcurrentUpdateError, DuplicateSession, SessionNotFound
from ..models import SessionAggregate

logger = logging.getLogger(__name__)

T = TypeVar("T")
Mutator = Callable[[SessionAggregate], T]


class SessionRepository:
    backend: str = "base"

    async def create(self, aggregate: SessionAggregate) -> SessionAggregate:
        raise NotImplementedError

    async def get(self, session_id: str) -> Optional[SessionAggregate]:
        raise NotImplementedError

    async def atomic_update(self, session_id: str, mutator: Mutator) -> tuple:
        """
        Apply ``mutator`` to the session under the per-session write guard.
        Returns ``(committed_aggregate, mutator_result)``.
        Raises ``SessionNotFound`` when the id is unknown.
        """
        raise NotImplementedError

    async def list(self) -> List[SessionAggregate]:
        """All aggregates, most recent ``started_at`` first."""
        raise NotImplementedError

    async def close(self) -> None:
        return None


class InMemorySessionRepository(SessionRepository):
    backend: str = "memory"

    def __init__(self) -> None:
        self._sessions: Dict[str, SessionAggregate] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    async def create(self, aggregate: SessionAggregate) -> SessionAggregate:
        # no await between the check and the insert
        if aggregate.session_id in self._sessions:
            raise DuplicateSession(
                f"Session {aggregate.session_id} already exists", session_id=aggregate.session_id
            )
        self._locks[aggregate.session_id] = asyncio.Lock()
        self._sessions[aggregate.session_id] = aggregate.model_copy(deep=True)
        return aggregate.model_copy(deep=True)

    async def get(self, session_id: str) -> Optional[SessionAggregate]:
        agg = self._sessions.get(session_id)
        return agg.model_copy(deep=True) if agg is not None else None

    async def atomic_update(self, session_id: str, mutator: Mutator) -> tuple:
        lock = self._locks.get(session_id)
        if lock is None:
            raise SessionNotFound(f"Session {session_id} not found", session_id=session_id)
        async with lock:
            draft = self._sessions[session_id].model_copy(deep=True)
            result = mutator(draft)
            draft.version += 1
            self._sessions[session_id] = draft
            return draft.model_copy(deep=True), result

    async def list(self) -> List[SessionAggregate]:
        snapshot = [agg.model_copy(deep=True) for agg in self._sessions.values()]
        return sorted(snapshot, key=lambda a: a.started_at, reverse=True)


class MongoSessionRepository(SessionRepository):
    """
    Document-per-session store. Writes are compare-and-swap on ``version``;
    a lost race re-reads the document and re-applies the mutator.
    """

    backend: str = "mongo"

    def __init__(self, collection, max_retries: Optional[int] = None) -> None:
        self.col = collection
        self.max_retries = settings.UPDATE_MAX_RETRIES if max_retries is None else max_retries

    @staticmethod
    def _to_doc(agg: SessionAggregate) -> dict:
        doc = agg.model_dump(mode="python")
        doc["_id"] = agg.session_id
        # reloaded as enum values by pydantic
        doc["status"] = agg.status.value
        for e in doc["events"]:
            e["kind"] = e["kind"].value
            e["severity"] = e["severity"].value
        return doc

    @staticmethod
    def _from_doc(doc: dict) -> SessionAggregate:
        doc = dict(doc)
        doc.pop("_id", None)
        return SessionAggregate.model_validate(doc)

    async def create(self, aggregate: SessionAggregate) -> SessionAggregate:
        try:
            await self.col.insert_one(self._to_doc(aggregate))
        except DuplicateKeyError:
            raise DuplicateSession(
                f"Session {aggregate.session_id} already exists", session_id=aggregate.session_id
            )
        return aggregate

    async def get(self, session_id: str) -> Optional[SessionAggregate]:
        doc = await self.col.find_one({"_id": session_id})
        return self._from_doc(doc) if doc else None

    async def atomic_update(self, session_id: str, mutator: Mutator) -> tuple:
        for attempt in range(self.max_retries):
            doc = await self.col.find_one({"_id": session_id})
            if not doc:
                raise SessionNotFound(f"Session {session_id} not found", session_id=session_id)
            draft = self._from_doc(doc)
            expected = draft.version
            result = mutator(draft)
            draft.version = expected + 1
            res = await self.col.replace_one(
                {"_id": session_id, "version": expected}, self._to_doc(draft)
            )
            if res.matched_count == 1:
                return draft, result
            logger.debug("Version conflict on %s (attempt %d)", session_id, attempt + 1)
        raise ConcurrentUpdateError(
            f"Session {session_id} is being updated concurrently, retry later", session_id=session_id
        )

    async def list(self) -> List[SessionAggregate]:
        cursor = self.col.find().sort("started_at", -1)
        out = []
        async for doc in cursor:
            out.append(self._from_doc(doc))
        return out


def get_repository(backend: Optional[str] = None) -> SessionRepository:
    backend = (backend or settings.STORE_BACKEND).lower()
    if backend == "memory":
        return InMemorySessionRepository()
    if backend == "mongo":
        from ..db import get_sessions_collection

        return MongoSessionRepository(get_sessions_collection())
    raise ValueError(f"Unknown STORE_BACKEND {backend!r}, expected 'mongo' or 'memory'")

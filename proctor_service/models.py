# proctor_service/models.py
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List, Any

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EventKind(str, Enum):
    FOCUS_LOSS = "focus-loss"
    FACE_ABSENCE = "face-absence"
    MULTIPLE_FACES = "multiple-faces"
    OBJECT_DETECTION = "object-detection"


class Severity(str, Enum):
    WARNING = "warning"
    DANGER = "danger"


class SessionStatus(str, Enum):
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({SessionStatus.COMPLETED, SessionStatus.CANCELLED})


def _from_unix(value: Any) -> Any:
    """
    UNIX seconds become UTC datetimes. Strings and datetimes are left to pydantic.
    """
    if isinstance(value, bool):
        raise ValueError("timestamp must not be a boolean")
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(float(value), tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            raise ValueError("timestamp out of range")
    return value


def _assume_utc(value: Optional[datetime]) -> Optional[datetime]:
    # naive producer clocks are taken as UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class EventDetail(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    object_type: Optional[str] = None  # object-detection label
    duration: Optional[float] = Field(default=None, ge=0)  # seconds, focus/absence


class EventRecord(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    session_id: str = Field(min_length=1)
    kind: EventKind
    severity: Severity
    message: str
    occurred_at: datetime = Field(default_factory=utcnow)
    detail: Optional[EventDetail] = None
    event_id: Optional[str] = None  # producer idempotency key
    received_at: datetime = Field(default_factory=utcnow)

    @field_validator("occurred_at", "received_at", mode="before")
    @classmethod
    def _parse_unix(cls, v):
        return _from_unix(v)

    @field_validator("occurred_at", "received_at")
    @classmethod
    def _normalize_timestamp(cls, v):
        return _assume_utc(v)


class Recording(BaseModel):
    path: str
    size_bytes: int
    uploaded_at: datetime = Field(default_factory=utcnow)

    @field_validator("uploaded_at", mode="before")
    @classmethod
    def _parse_unix(cls, v):
        return _from_unix(v)

    @field_validator("uploaded_at")
    @classmethod
    def _normalize_timestamp(cls, v):
        return _assume_utc(v)


class SessionAggregate(BaseModel):
    """
    Authoritative state of one interview session.

    Counters and duration are projections of ``events`` and the time bounds;
    they are computed on access and cannot drift from the event log.
    """

    model_config = ConfigDict(extra="ignore")

    session_id: str = Field(min_length=1)
    candidate_name: str = Field(min_length=1)
    status: SessionStatus = SessionStatus.SCHEDULED
    started_at: datetime = Field(default_factory=utcnow)
    ended_at: Optional[datetime] = None
    events: List[EventRecord] = Field(default_factory=list)
    integrity_score: Optional[int] = Field(default=None, ge=0, le=100)
    recording: Optional[Recording] = None
    reported_tally_mismatch: bool = False
    version: int = 0

    @field_validator("started_at", "ended_at", mode="before")
    @classmethod
    def _parse_unix(cls, v):
        return _from_unix(v)

    @field_validator("started_at", "ended_at")
    @classmethod
    def _normalize_timestamp(cls, v):
        return _assume_utc(v)

    @computed_field
    @property
    def duration_seconds(self) -> Optional[int]:
        if self.ended_at is None:
            return None
        return max(0, round((self.ended_at - self.started_at).total_seconds()))

    @computed_field
    @property
    def focus_loss_count(self) -> int:
        return self.count(EventKind.FOCUS_LOSS)

    @computed_field
    @property
    def face_absence_count(self) -> int:
        return self.count(EventKind.FACE_ABSENCE)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def count(self, *kinds: EventKind) -> int:
        return sum(1 for e in self.events if e.kind in kinds)

    def append_event(self, event: EventRecord) -> None:
        if event.session_id != self.session_id:
            raise ValueError("event belongs to another session")
        self.events.append(event)


class SessionSummary(BaseModel):
    session_id: str
    candidate_name: str
    status: SessionStatus
    started_at: datetime
    ended_at: Optional[datetime] = None
    duration_seconds: Optional[int] = None
    focus_loss_count: int = 0
    face_absence_count: int = 0
    total_events: int = 0
    integrity_score: Optional[int] = None

    @classmethod
    def from_aggregate(cls, agg: SessionAggregate) -> "SessionSummary":
        return cls(
            session_id=agg.session_id,
            candidate_name=agg.candidate_name,
            status=agg.status,
            started_at=agg.started_at,
            ended_at=agg.ended_at,
            duration_seconds=agg.duration_seconds,
            focus_loss_count=agg.focus_loss_count,
            face_absence_count=agg.face_absence_count,
            total_events=len(agg.events),
            integrity_score=agg.integrity_score,
        )

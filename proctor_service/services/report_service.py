# proctor_service/services/report_service.py
import pandas as pd
from reportlab.lib.pagesizes import letter
from reportlab.pdfgen import canvas
from io import BytesIO
from datetime import datetime
from typing import List, Dict, Optional

from pydantic import BaseModel

from ..models import EventKind, EventRecord, SessionAggregate, SessionStatus, utcnow
from ..utils.scoring import score


class Report(BaseModel):
    session_id: str
    candidate_name: str
    status: SessionStatus
    started_at: datetime
    ended_at: Optional[datetime] = None
    duration_seconds: Optional[int] = None
    focus_loss_count: int
    face_absence_count: int
    total_events: int
    focus_events: int
    object_events: int
    multiple_faces_events: int
    integrity_score: Optional[int] = None
    provisional: bool = False
    events: List[EventRecord]


def build_report(agg: SessionAggregate, live: bool = False) -> Report:
    """
    Read-only projection of a session. With ``live`` an in-progress session gets a
    provisional score computed from its current events; the aggregate is untouched.
    """
    integrity_score = agg.integrity_score
    provisional = False
    if integrity_score is None and live:
        integrity_score = score(agg)
        provisional = True

    return Report(
        session_id=agg.session_id,
        candidate_name=agg.candidate_name,
        status=agg.status,
        started_at=agg.started_at,
        ended_at=agg.ended_at,
        duration_seconds=agg.duration_seconds,
        focus_loss_count=agg.focus_loss_count,
        face_absence_count=agg.face_absence_count,
        total_events=len(agg.events),
        focus_events=agg.count(EventKind.FOCUS_LOSS, EventKind.FACE_ABSENCE),
        object_events=agg.count(EventKind.OBJECT_DETECTION),
        multiple_faces_events=agg.count(EventKind.MULTIPLE_FACES),
        integrity_score=integrity_score,
        provisional=provisional,
        events=list(agg.events),
    )


def _event_details(e: EventRecord) -> str:
    parts = [e.message]
    if e.detail is not None:
        if e.detail.object_type:
            parts.append(f"object={e.detail.object_type}")
        if e.detail.duration is not None:
            parts.append(f"duration={e.detail.duration:g}s")
    return " | ".join(parts)


def make_csv_report(report: Report) -> bytes:
    rows = [
        {
            "Time": e.occurred_at.isoformat(),
            "Event Type": e.kind.value,
            "Severity": e.severity.value,
            "Details": _event_details(e),
        }
        for e in report.events
    ]
    df = pd.DataFrame(rows, columns=["Time", "Event Type", "Severity", "Details"])
    return df.to_csv(index=False).encode("utf-8")


def make_pdf_report(report: Report) -> bytes:
    buffer = BytesIO()
    c = canvas.Canvas(buffer, pagesize=letter)
    W, H = letter
    y = H - 50

    c.setFont("Helvetica-Bold", 16)
    c.drawString(50, y, f"Proctoring Report - {report.candidate_name}")
    y -= 30

    c.setFont("Helvetica", 10)
    c.drawString(50, y, f"Generated: {utcnow().isoformat()}")
    y -= 20

    c.setFont("Helvetica-Bold", 12)
    c.drawString(50, y, "Summary")
    y -= 16
    c.setFont("Helvetica", 10)
    score_label = report.integrity_score if report.integrity_score is not None else "n/a"
    if report.provisional:
        score_label = f"{score_label} (provisional)"
    summary_lines = [
        f"Session: {report.session_id}",
        f"Status: {report.status.value}",
        f"Started: {report.started_at.isoformat()}",
        f"Ended: {report.ended_at.isoformat() if report.ended_at else '-'}",
        f"Duration (s): {report.duration_seconds if report.duration_seconds is not None else '-'}",
        f"Integrity Score: {score_label}",
        f"Focus lost: {report.focus_loss_count}",
        f"Face absent: {report.face_absence_count}",
        f"Multiple faces: {report.multiple_faces_events}",
        f"Objects detected: {report.object_events}",
        f"Total events: {report.total_events}",
    ]
    for line in summary_lines:
        c.drawString(60, y, line)
        y -= 12

    y -= 10
    c.setFont("Helvetica-Bold", 11)
    c.drawString(50, y, "Events (last 50):")
    y -= 16
    c.setFont("Helvetica", 9)
    for e in report.events[-50:]:
        s = f"{e.occurred_at.isoformat()} | {e.kind.value} | {e.severity.value} | {_event_details(e)}"
        if y < 60:
            c.showPage()
            c.setFont("Helvetica", 9)
            y = H - 50
        c.drawString(50, y, s[:150])
        y -= 12

    c.showPage()
    c.save()
    pdf = buffer.getvalue()
    buffer.close()
    return pdf


class RecentSession(BaseModel):
    session_id: str
    candidate_name: str
    ended_at: Optional[datetime] = None
    integrity_score: Optional[int] = None


class StatsSummary(BaseModel):
    total_sessions: int
    completed_sessions: int
    average_integrity_score: float
    recent_sessions: List[RecentSession]
    rejected_events: Dict[str, int]


def summarize_sessions(sessions: List[SessionAggregate], rejected: Optional[Dict[str, int]] = None) -> StatsSummary:
    completed = [s for s in sessions if s.status == SessionStatus.COMPLETED]
    scored = [s.integrity_score for s in completed if s.integrity_score is not None]
    recent = sorted(completed, key=lambda s: s.ended_at, reverse=True)[:5]
    return StatsSummary(
        total_sessions=len(sessions),
        completed_sessions=len(completed),
        average_integrity_score=sum(scored) / len(scored) if scored else 0.0,
        recent_sessions=[
            RecentSession(
                session_id=s.session_id,
                candidate_name=s.candidate_name,
                ended_at=s.ended_at,
                integrity_score=s.integrity_score,
            )
            for s in recent
        ],
        rejected_events=dict(rejected or {}),
    )

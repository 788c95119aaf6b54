# proctor_service/utils/scoring.py
from typing import Iterable, Dict

from ..models import EventKind, EventRecord, SessionAggregate, Severity

BASELINE = 100

# per-event deduction by kind and severity
DEFAULT_DEDUCTIONS: Dict[EventKind, Dict[Severity, int]] = {
    EventKind.FOCUS_LOSS: {Severity.WARNING: 2, Severity.DANGER: 5},
    EventKind.FACE_ABSENCE: {Severity.WARNING: 3, Severity.DANGER: 8},
    EventKind.MULTIPLE_FACES: {Severity.WARNING: 10, Severity.DANGER: 10},
    EventKind.OBJECT_DETECTION: {Severity.WARNING: 10, Severity.DANGER: 10},
}

# most a single kind can take off the baseline
CATEGORY_CAPS: Dict[EventKind, int] = {
    EventKind.FOCUS_LOSS: 30,
    EventKind.FACE_ABSENCE: 30,
    EventKind.MULTIPLE_FACES: 30,
    EventKind.OBJECT_DETECTION: 40,
}


def compute_integrity_score(events: Iterable[EventRecord]) -> Dict:
    counts = {kind.value: 0 for kind in EventKind}
    raw = {kind: 0 for kind in EventKind}
    for e in events:
        counts[e.kind.value] += 1
        raw[e.kind] += DEFAULT_DEDUCTIONS[e.kind][e.severity]

    deductions = {kind.value: min(CATEGORY_CAPS[kind], raw[kind]) for kind in EventKind}
    total_deduction = sum(deductions.values())
    score = max(0, min(BASELINE, BASELINE - total_deduction))
    return {
        "score": score,
        "counts": counts,
        "deductions": deductions,
        "total_deductions": total_deduction,
    }


def score(aggregate: SessionAggregate) -> int:
    return compute_integrity_score(aggregate.events)["score"]

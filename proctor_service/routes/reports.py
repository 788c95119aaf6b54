# proctor_service/routes/reports.py
from fastapi import APIRouter, Depends, HTTPException, Response

from ..deps import get_service
from ..services.proctoring import ProctoringService
from ..services.report_service import StatsSummary, make_csv_report, make_pdf_report

router = APIRouter(prefix="/api", tags=["reports"])


@router.get("/reports/{session_id}")
async def get_report(
    session_id: str,
    format: str = "json",
    live: bool = False,
    service: ProctoringService = Depends(get_service),
):
    """
    Session report as JSON | CSV | PDF.
    ``live`` adds a provisional score for sessions that are still running.
    """
    if format not in ("json", "csv", "pdf"):
        raise HTTPException(status_code=400, detail="format must be json|csv|pdf")

    report = await service.get_report(session_id, live=live)

    if format == "json":
        return report
    elif format == "csv":
        return Response(
            content=make_csv_report(report),
            media_type="text/csv",
            headers={"Content-Disposition": f"attachment; filename=proctoring-report-{session_id}.csv"},
        )
    else:
        return Response(
            content=make_pdf_report(report),
            media_type="application/pdf",
            headers={"Content-Disposition": f"attachment; filename=proctoring-report-{session_id}.pdf"},
        )


@router.get("/stats/summary", response_model=StatsSummary)
async def stats_summary(service: ProctoringService = Depends(get_service)):
    return await service.stats_summary()

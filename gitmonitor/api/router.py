from datetime import datetime
from fastapi import APIRouter, Depends, Query, Request
from ..models import ReportView
from ..runtime import Services

router = APIRouter(prefix="/api")


def get_services(request: Request) -> Services:
    return request.app.state.services


@router.get("/summary", response_model=list[ReportView])
async def list_summaries(
    since: datetime | None = None,
    limit: int = Query(50, ge=1, le=100),
    services: Services = Depends(get_services),
):
    """Most recent incident reports, newest first, optionally only those after ``since``."""
    reports = await services.store.list_reports(since=since, limit=limit)
    return [ReportView.from_report(report) for report in reports]

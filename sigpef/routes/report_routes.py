from datetime import date
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import Response
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from sigpef.auth.capabilities import Capabilities, Capability
from sigpef.auth.dependencies import require
from sigpef.database import get_db
from sigpef.routes.appointment_routes import AppointmentResponse, load_rows
from sigpef.routes.common import database_unavailable, ensure_database_ready
from sigpef.services.filtering import AppointmentRow, unique_values
from sigpef.services.reports import (
    ReportFilters,
    build_report,
    export_csv,
    month_range,
    report_filename,
    summarize,
)

router = APIRouter(tags=['reports'])


class StatusSummaryResponse(BaseModel):
    compareceu: int
    ausente: int
    falecimento: int
    pendente: int
    total: int
    outros: int = 0


class ReportResponse(BaseModel):
    start_date: str
    end_date: str
    perito: str
    rows: list[AppointmentResponse]
    summary: StatusSummaryResponse
    peritos: list[str]


def resolve_report_filters(
    year: str = '',
    month: str = '',
    start_date: date | None = None,
    end_date: date | None = None,
    perito: str = '',
    status_filter: str = '',
    search: str = '',
) -> ReportFilters:
    """Explicit bounds win over the year/month preset."""
    start = start_date.isoformat() if start_date else ''
    end = end_date.isoformat() if end_date else ''

    if not start and not end and year.strip():
        year = year.strip()
        if not year.isdigit() or len(year) != 4:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Ano inválido.')
        month = month.strip()
        if month and (not month.isdigit() or not 1 <= int(month) <= 12):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Mês inválido.')
        start, end = month_range(year, month)

    if start and end and start > end:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='A data inicial deve ser anterior à data final.',
        )

    return ReportFilters(
        start_date=start,
        end_date=end,
        perito=perito.strip(),
        status=status_filter.strip().upper(),
        search=search.strip(),
    )


def load_report(db: Session, filters: ReportFilters) -> tuple[list[AppointmentRow], list[AppointmentRow]]:
    """Unbounded rows for the perito picker and the period's rows for the report."""
    try:
        all_rows = load_rows(db)
        period_rows = load_rows(db, filters.start_date, filters.end_date)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc
    return all_rows, build_report(period_rows, filters)


@router.get('', response_model=ReportResponse)
def get_report(
    year: str = Query(default=''),
    month: str = Query(default=''),
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    perito: str = Query(default=''),
    status_filter: str = Query(default='', alias='status'),
    search: str = Query(default=''),
    capabilities: Capabilities = Depends(require(Capability.VIEW)),
    db: Session = Depends(get_db),
):
    ensure_database_ready()
    filters = resolve_report_filters(year, month, start_date, end_date, perito, status_filter, search)
    all_rows, rows = load_report(db, filters)
    summary = summarize(rows)

    return ReportResponse(
        start_date=filters.start_date,
        end_date=filters.end_date,
        perito=filters.perito,
        rows=[AppointmentResponse.from_row(row) for row in rows],
        summary=StatusSummaryResponse(**summary.__dict__),
        peritos=unique_values(all_rows, 'perito'),
    )


@router.get('/export')
def export_report(
    year: str = Query(default=''),
    month: str = Query(default=''),
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    perito: str = Query(default=''),
    status_filter: str = Query(default='', alias='status'),
    search: str = Query(default=''),
    capabilities: Capabilities = Depends(require(Capability.VIEW)),
    db: Session = Depends(get_db),
):
    ensure_database_ready()
    filters = resolve_report_filters(year, month, start_date, end_date, perito, status_filter, search)
    _, rows = load_report(db, filters)

    content = export_csv(rows, summarize(rows))
    filename = report_filename(filters.start_date, filters.end_date, filters.perito)
    return Response(
        content=content.encode('utf-8'),
        media_type='text/csv; charset=utf-8',
        headers={'Content-Disposition': f"attachment; filename*=UTF-8''{quote(filename)}"},
    )

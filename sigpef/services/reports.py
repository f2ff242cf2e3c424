"""Period reports over the appointment list and their CSV export."""

import calendar
import csv
import io
import re
from dataclasses import dataclass
from typing import Iterable

from sigpef.models.appointment import ObservationStatus
from sigpef.services.filtering import AppointmentRow, matches_status
from sigpef.services.normalization import canonical_observacao

CSV_BOM = '\ufeff'
CSV_HEADERS = ['Data', 'Periciado', 'Perito', 'Especialidade', 'Status']
PENDING_LABEL = 'PENDENTE'

_WHITESPACE = re.compile(r'\s+')


@dataclass(frozen=True)
class ReportFilters:
    start_date: str = ''
    end_date: str = ''
    perito: str = ''
    status: str = ''
    search: str = ''


@dataclass(frozen=True)
class StatusSummary:
    compareceu: int
    ausente: int
    falecimento: int
    pendente: int
    total: int
    outros: int = 0


def month_range(year: str, month: str = '') -> tuple[str, str]:
    """Inclusive date bounds for a whole year or a single month."""
    if not month:
        return f'{year}-01-01', f'{year}-12-31'
    month = month.zfill(2)
    last_day = calendar.monthrange(int(year), int(month))[1]
    return f'{year}-{month}-01', f'{year}-{month}-{last_day:02d}'


def matches_report(row: AppointmentRow, filters: ReportFilters) -> bool:
    if not row.data:
        return False
    if filters.start_date and row.data < filters.start_date:
        return False
    if filters.end_date and row.data > filters.end_date:
        return False
    if not matches_status(row.observacao, filters.status):
        return False
    if filters.perito and row.perito != filters.perito:
        return False
    if filters.search:
        needle = filters.search.strip().lower()
        haystacks = (row.periciado, row.perito, row.especialidade)
        if not any(needle in (value or '').lower() for value in haystacks):
            return False
    return True


def build_report(rows: Iterable[AppointmentRow], filters: ReportFilters) -> list[AppointmentRow]:
    selected = [row for row in rows if matches_report(row, filters)]
    return sorted(selected, key=lambda row: row.data)


def summarize(rows: Iterable[AppointmentRow]) -> StatusSummary:
    counts = {status: 0 for status in ObservationStatus.ALL}
    total = 0
    others = 0
    for row in rows:
        total += 1
        status = canonical_observacao(row.observacao)
        if status in counts:
            counts[status] += 1
        else:
            others += 1
    return StatusSummary(
        compareceu=counts[ObservationStatus.COMPARECEU],
        ausente=counts[ObservationStatus.NAO_COMPARECEU],
        falecimento=counts[ObservationStatus.FALECIMENTO],
        pendente=counts[ObservationStatus.PENDING],
        total=total,
        outros=others,
    )


def format_date_br(value: str) -> str:
    if not value:
        return '-'
    parts = value.split('-')
    if len(parts) == 3:
        return f'{parts[2]}/{parts[1]}/{parts[0]}'
    return value


def export_csv(rows: list[AppointmentRow], summary: StatusSummary) -> str:
    buffer = io.StringIO()
    buffer.write(CSV_BOM)
    writer = csv.writer(buffer, lineterminator='\n')
    writer.writerow(CSV_HEADERS)

    for row in rows:
        writer.writerow([
            format_date_br(row.data),
            row.periciado,
            row.perito,
            row.especialidade,
            row.observacao or PENDING_LABEL,
        ])

    padding = [''] * (len(CSV_HEADERS) - 2)
    writer.writerow([''] * len(CSV_HEADERS))
    writer.writerow(['RESUMO ESTATISTICO', ''] + padding)
    writer.writerow(['Compareceu', summary.compareceu] + padding)
    writer.writerow(['Nao Compareceu (Ausente)', summary.ausente] + padding)
    writer.writerow(['Falecimento', summary.falecimento] + padding)
    writer.writerow(['Pendente', summary.pendente] + padding)
    # Outcomes outside the four statuses are listed so the total still adds up.
    if summary.outros:
        writer.writerow(['Outros', summary.outros] + padding)
    writer.writerow(['TOTAL GERAL', summary.total] + padding)

    return buffer.getvalue()


def report_filename(start_date: str, end_date: str, perito: str = '') -> str:
    period = f'{start_date}_a_{end_date}' if start_date and end_date else 'Completo'
    perito_suffix = '_' + _WHITESPACE.sub('_', perito) if perito else ''
    return f'Relatorio_SIGPEF_{period}{perito_suffix}.csv'

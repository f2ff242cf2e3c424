"""In-memory filtering and stats over an appointment snapshot."""

from dataclasses import dataclass
from typing import Iterable

from sigpef.models.appointment import PENDING_FILTER_LABELS, Appointment
from sigpef.services.normalization import canonical_observacao


@dataclass(frozen=True)
class AppointmentRow:
    id: int | str
    data: str
    perito: str
    especialidade: str
    periciado: str
    observacao: str = ''

    @property
    def is_pending(self) -> bool:
        return not self.observacao

    @classmethod
    def from_model(cls, appointment: Appointment) -> 'AppointmentRow':
        data = appointment.data_pericia
        return cls(
            id=appointment.id,
            data=data.isoformat() if data else '',
            perito=appointment.perito or '',
            especialidade=appointment.especialidade or '',
            periciado=appointment.periciado or '',
            observacao=canonical_observacao(appointment.observacao),
        )


@dataclass(frozen=True)
class AppointmentFilters:
    search: str = ''
    perito: str = ''
    especialidade: str = ''
    status: str = ''
    year: str = ''
    month: str = ''
    day: str = ''

    def is_empty(self) -> bool:
        return not any(
            (self.search, self.perito, self.especialidade, self.status, self.year, self.month, self.day)
        )


@dataclass(frozen=True)
class Stats:
    total: int
    completed: int
    pending: int


def split_date(value: str) -> tuple[str, str, str] | None:
    if not value:
        return None
    parts = value.split('-')
    if len(parts) != 3:
        return None
    return parts[0], parts[1], parts[2]


def matches_status(observacao: str, status_filter: str) -> bool:
    if not status_filter:
        return True
    wanted = status_filter.strip().upper()
    if wanted in PENDING_FILTER_LABELS:
        return not observacao
    return (observacao or '').upper() == wanted


def matches(row: AppointmentRow, filters: AppointmentFilters) -> bool:
    search = filters.search.strip().lower()
    if search and search not in (row.periciado or '').lower():
        return False
    if filters.perito and row.perito != filters.perito:
        return False
    if filters.especialidade and row.especialidade != filters.especialidade:
        return False
    if not matches_status(row.observacao, filters.status):
        return False

    # Rows without a canonical date never match, even with no date filter.
    parts = split_date(row.data)
    if parts is None:
        return False
    year, month, day = parts
    if filters.year and year != filters.year:
        return False
    if filters.month and month != filters.month:
        return False
    if filters.day and day != filters.day:
        return False
    return True


def filter_appointments(
    rows: Iterable[AppointmentRow],
    filters: AppointmentFilters,
) -> list[AppointmentRow]:
    return [row for row in rows if matches(row, filters)]


def compute_stats(rows: Iterable[AppointmentRow]) -> Stats:
    total = 0
    completed = 0
    for row in rows:
        total += 1
        if row.observacao:
            completed += 1
    return Stats(total=total, completed=completed, pending=total - completed)


def unique_values(rows: Iterable[AppointmentRow], field: str) -> list[str]:
    return sorted({getattr(row, field) for row in rows if getattr(row, field)})

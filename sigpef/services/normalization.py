"""Canonicalize appointment rows coming from imports and the legacy sheet.

Raw rows arrive with field names in any casing (``perito``, ``PERITO``,
``Perito``) and dates in several formats. Normalization never raises: it
returns a :class:`ParseResult` so callers can quarantine rows whose date
cannot be read instead of storing something that no date filter matches.
"""

from dataclasses import dataclass, replace
from datetime import date, datetime
from typing import Any, Generic, TypeVar

from sigpef.models.appointment import ObservationStatus

T = TypeVar('T')

CANONICAL_PERITO_NAME = 'AGNALDO LIMA PEREIRA JÚNIOR'
_PERITO_MISSPELLING_FRAGMENTS = (
    'STA AGNAL DO LIMA PEREIRA JUNIOR',
    'AGNAL DO LIMA',
    'STA AGNALDO',
)
_PERITO_MISSPELLING_EXACT = frozenset({'AGNALDO LIMA'})

DATE_KEYS = ('data_pericia', 'data', 'DATA', 'Data')


@dataclass(frozen=True)
class ParseResult(Generic[T]):
    value: T | None = None
    raw: Any = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> 'ParseResult[T]':
        return cls(value=value)

    @classmethod
    def failure(cls, raw: Any, reason: str) -> 'ParseResult[T]':
        return cls(raw=raw, error=reason)


@dataclass(frozen=True)
class NormalizedAppointment:
    data: str
    perito: str
    especialidade: str
    periciado: str
    observacao: str


@dataclass(frozen=True)
class QuarantinedRow:
    index: int
    raw: dict
    reason: str


def _to_iso(year: str, month: str, day: str) -> str | None:
    if not (year.isdigit() and month.isdigit() and day.isdigit()):
        return None
    try:
        return date(int(year), int(month), int(day)).isoformat()
    except ValueError:
        return None


def normalize_date(raw: Any) -> ParseResult[str]:
    """Return the ``YYYY-MM-DD`` form of ``raw`` or a failure.

    Accepted: ``YYYY-MM-DD``, ``YYYY-MM-DD HH:MM:SS``, ``YYYY-MM-DDTHH:MM:SS``,
    ``DD/MM/YYYY`` and ``YYYY/MM/DD``. ``date`` and ``datetime`` objects keep
    their calendar day.
    """
    if isinstance(raw, datetime):
        return ParseResult.success(raw.date().isoformat())
    if isinstance(raw, date):
        return ParseResult.success(raw.isoformat())
    if raw is None:
        return ParseResult.failure(raw, 'missing')

    text = str(raw).strip()
    if not text:
        return ParseResult.failure(raw, 'missing')

    # Postgres "YYYY-MM-DD HH:MM:SS" and ISO "YYYY-MM-DDTHH:MM:SS"
    if ' ' in text:
        text = text.split(' ')[0]
    if 'T' in text:
        text = text.split('T')[0]

    iso = None
    if '/' in text:
        parts = text.split('/')
        if len(parts) == 3:
            if len(parts[2]) == 4:
                iso = _to_iso(parts[2], parts[1], parts[0])
            elif len(parts[0]) == 4:
                iso = _to_iso(parts[0], parts[1], parts[2])
    else:
        parts = text.split('-')
        if len(parts) == 3 and len(parts[0]) == 4:
            iso = _to_iso(parts[0], parts[1], parts[2])

    if iso is None:
        return ParseResult.failure(raw, f'unrecognized date: {raw!r}')
    return ParseResult.success(iso)


def normalize_text(value: Any) -> str:
    if value is None:
        return ''
    return str(value).strip().upper()


def normalize_perito_name(name: Any) -> str:
    clean = normalize_text(name)
    if not clean:
        return ''
    if clean in _PERITO_MISSPELLING_EXACT:
        return CANONICAL_PERITO_NAME
    if any(fragment in clean for fragment in _PERITO_MISSPELLING_FRAGMENTS):
        return CANONICAL_PERITO_NAME
    return clean


_OBSERVACAO_ALIASES = {
    '': ObservationStatus.PENDING,
    'PENDENTE': ObservationStatus.PENDING,
    'COMPARECEU': ObservationStatus.COMPARECEU,
    'PRESENTE': ObservationStatus.COMPARECEU,
    'NAO COMPARECEU': ObservationStatus.NAO_COMPARECEU,
    'NÃO COMPARECEU': ObservationStatus.NAO_COMPARECEU,
    'AUSENTE': ObservationStatus.NAO_COMPARECEU,
    'FALECIMENTO': ObservationStatus.FALECIMENTO,
    'FALECIDO': ObservationStatus.FALECIMENTO,
}


def normalize_observacao(value: Any) -> ParseResult[str]:
    text = ' '.join(normalize_text(value).split())
    if text in _OBSERVACAO_ALIASES:
        return ParseResult.success(_OBSERVACAO_ALIASES[text])
    return ParseResult.failure(value, f'unrecognized observacao: {value!r}')


def canonical_observacao(value: Any) -> str:
    """Canonical status for a stored outcome; unknown values stay uppercased."""
    result = normalize_observacao(value)
    if result.ok:
        return result.value
    return ' '.join(normalize_text(value).split())


def pick_field(raw: dict, name: str) -> Any:
    """Look ``name`` up as lowercase, UPPERCASE and Capitalized."""
    for key in (name, name.upper(), name.capitalize()):
        value = raw.get(key)
        if value is not None:
            return value
    return None


def normalize_raw_appointment(raw: dict) -> ParseResult[NormalizedAppointment]:
    raw_date = next((raw[key] for key in DATE_KEYS if raw.get(key) is not None), None)
    parsed_date = normalize_date(raw_date)
    if not parsed_date.ok:
        return ParseResult.failure(raw, parsed_date.error)

    return ParseResult.success(
        NormalizedAppointment(
            data=parsed_date.value,
            perito=normalize_perito_name(pick_field(raw, 'perito')),
            especialidade=normalize_text(pick_field(raw, 'especialidade')),
            periciado=normalize_text(pick_field(raw, 'periciado')),
            observacao=normalize_text(pick_field(raw, 'observacao')),
        )
    )


def partition_raw_appointments(
    rows: list[dict],
) -> tuple[list[NormalizedAppointment], list[QuarantinedRow]]:
    accepted: list[NormalizedAppointment] = []
    quarantined: list[QuarantinedRow] = []

    for index, raw in enumerate(rows):
        result = normalize_raw_appointment(raw)
        if not result.ok:
            quarantined.append(QuarantinedRow(index=index, raw=raw, reason=result.error))
            continue
        record = result.value
        if not record.periciado:
            quarantined.append(QuarantinedRow(index=index, raw=raw, reason='missing periciado'))
            continue
        observacao = normalize_observacao(record.observacao)
        if not observacao.ok:
            quarantined.append(QuarantinedRow(index=index, raw=raw, reason=observacao.error))
            continue
        accepted.append(replace(record, observacao=observacao.value))

    return accepted, quarantined

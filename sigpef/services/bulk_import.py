"""Schedule (pauta) upload, row ingestion and scoped undo by batch id."""

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

import httpx
from sqlalchemy.orm import Session

from sigpef.core import config
from sigpef.models.appointment import Appointment
from sigpef.models.import_batch import ImportBatch
from sigpef.services.normalization import NormalizedAppointment, QuarantinedRow, partition_raw_appointments

logger = logging.getLogger(__name__)

UPLOAD_SUCCESS_MESSAGE = 'Arquivo enviado e processado com sucesso!'
NETWORK_FAILURE_MESSAGE = 'Falha na conexão de rede.'
GENERIC_DUPLICATE_MESSAGE = (
    'REGRA DE NEGÓCIO: Um ou mais periciados no PDF já possuem agendamento para a mesma data. '
    'Importação interrompida.'
)

_DUPLICATE_MARKERS = ('duplicate key value', 'unique constraint')
_DUPLICATE_KEY_PATTERN = re.compile(r'Key \(periciado, data_pericia\)=\(([^,]+), ([^)]+)\)')


class ImportUploadError(Exception):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class UndoWindowExpired(Exception):
    pass


@dataclass
class IngestResult:
    inserted: int = 0
    duplicates: list[NormalizedAppointment] = field(default_factory=list)
    quarantined: list[QuarantinedRow] = field(default_factory=list)


def duplicate_message(periciado: str, data: str) -> str:
    return (
        f'REGRA DE NEGÓCIO: O periciado "{periciado}" já está cadastrado para o dia {data}. '
        'Importação interrompida por duplicidade.'
    )


def translate_pipeline_error(status_code: int, reason_phrase: str, body: str) -> str:
    """Turn a failed pipeline response into the message shown to the user."""
    message = f"Erro no servidor: {reason_phrase or 'Falha no processamento'}"

    if any(marker in body for marker in _DUPLICATE_MARKERS):
        match = _DUPLICATE_KEY_PATTERN.search(body)
        if match:
            return duplicate_message(match.group(1), match.group(2))
        return GENERIC_DUPLICATE_MESSAGE

    try:
        payload = json.loads(body)
    except ValueError:
        return message
    if isinstance(payload, dict) and payload.get('message'):
        return str(payload['message'])
    return message


def upload_schedule(
    file_name: str,
    content: bytes,
    content_type: str | None,
    batch_id: str,
    transport: httpx.BaseTransport | None = None,
) -> str:
    if not config.IMPORT_WEBHOOK_URL:
        raise ImportUploadError('URL do webhook de importação não configurada (IMPORT_WEBHOOK_URL).')

    files = {'file': (file_name, content, content_type or 'application/pdf')}
    try:
        with httpx.Client(transport=transport, timeout=config.IMPORT_WEBHOOK_TIMEOUT_SECONDS) as client:
            response = client.post(config.IMPORT_WEBHOOK_URL, files=files, data={'batchId': batch_id})
    except httpx.TransportError as exc:
        logger.warning('Schedule upload for batch %s failed: %s', batch_id, exc)
        raise ImportUploadError(NETWORK_FAILURE_MESSAGE) from exc

    if response.is_success:
        return UPLOAD_SUCCESS_MESSAGE

    logger.warning('Import pipeline rejected batch %s with HTTP %s', batch_id, response.status_code)
    raise ImportUploadError(
        translate_pipeline_error(response.status_code, response.reason_phrase, response.text),
        status_code=response.status_code,
    )


def recent_batches(db: Session, email: str, limit: int = config.RECENT_UPLOADS_LIMIT) -> list[ImportBatch]:
    return (
        db.query(ImportBatch)
        .filter(ImportBatch.created_by == email, ImportBatch.undone_at.is_(None))
        .order_by(ImportBatch.created_at.desc())
        .limit(limit)
        .all()
    )


def is_recent_duplicate(db: Session, email: str, file_name: str) -> bool:
    return any(batch.file_name == file_name for batch in recent_batches(db, email))


def undo_deadline(batch: ImportBatch, window: timedelta) -> datetime:
    return batch.created_at + window


def check_undo_allowed(batch: ImportBatch, window: timedelta, now: datetime | None = None) -> None:
    now = now or datetime.now()
    if now > undo_deadline(batch, window):
        minutes = int(window.total_seconds() // 60)
        raise UndoWindowExpired(f'O prazo de {minutes} minutos para desfazer esta importação expirou.')


def delete_batch_rows(db: Session, batch_id: str) -> int:
    count = (
        db.query(Appointment)
        .filter(Appointment.import_batch_id == batch_id)
        .delete(synchronize_session=False)
    )
    return count or 0


def ingest_rows(db: Session, batch_id: str, rows: list[dict]) -> IngestResult:
    """Insert pipeline rows tagged with ``batch_id``.

    Malformed rows are quarantined and rows repeating an examinee on the same
    day are skipped; the caller commits.
    """
    accepted, quarantined = partition_raw_appointments(rows)
    result = IngestResult(quarantined=quarantined)

    seen: set[tuple[str, str]] = set()
    for record in accepted:
        key = (record.periciado, record.data)
        exam_date = date.fromisoformat(record.data)
        exists = key in seen or db.query(Appointment.id).filter(
            Appointment.periciado == record.periciado,
            Appointment.data_pericia == exam_date,
        ).first() is not None
        if exists:
            result.duplicates.append(record)
            continue

        seen.add(key)
        db.add(
            Appointment(
                data_pericia=exam_date,
                perito=record.perito,
                especialidade=record.especialidade,
                periciado=record.periciado,
                observacao=record.observacao,
                import_batch_id=batch_id,
            )
        )
        result.inserted += 1

    return result

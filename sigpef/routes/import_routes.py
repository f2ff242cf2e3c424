import hmac
import logging
import uuid
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, File, Header, HTTPException, UploadFile, status
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from sigpef.auth.capabilities import Capabilities, Capability
from sigpef.auth.dependencies import require
from sigpef.core import config
from sigpef.database import get_db
from sigpef.models.appointment import Appointment
from sigpef.models.import_batch import ImportBatch
from sigpef.routes.common import database_unavailable, ensure_database_ready
from sigpef.services import bulk_import
from sigpef.services.audit import log_system_action, request_ip
from sigpef.services.change_feed import change_feed

router = APIRouter(tags=['imports'])
logger = logging.getLogger(__name__)

TABLE_NAME = 'pericias'


class ImportBatchResponse(BaseModel):
    batch_id: str
    file_name: str
    created_at: datetime
    expires_at: datetime
    can_undo: bool


class UploadResponse(BaseModel):
    sequence: int
    message: str
    batch: ImportBatchResponse


class UndoResponse(BaseModel):
    sequence: int
    deleted: int
    warning: bool
    message: str


class IngestRowsRequest(BaseModel):
    rows: list[dict[str, Any]]


class QuarantinedRowResponse(BaseModel):
    index: int
    reason: str
    raw: dict[str, Any]


class DuplicateRowResponse(BaseModel):
    periciado: str
    data: str


class IngestRowsResponse(BaseModel):
    sequence: int
    inserted: int
    duplicates: list[DuplicateRowResponse]
    quarantined: list[QuarantinedRowResponse]


def batch_response(batch: ImportBatch, capabilities: Capabilities, now: datetime | None = None) -> ImportBatchResponse:
    now = now or datetime.now()
    expires_at = bulk_import.undo_deadline(batch, capabilities.undo_window)
    return ImportBatchResponse(
        batch_id=batch.batch_id,
        file_name=batch.file_name,
        created_at=batch.created_at,
        expires_at=expires_at,
        can_undo=batch.undone_at is None and now <= expires_at,
    )


def verify_callback_token(x_import_token: str = Header(default='')) -> None:
    if not config.IMPORT_CALLBACK_TOKEN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Import callback is disabled (IMPORT_CALLBACK_TOKEN not set).',
        )
    if not hmac.compare_digest(x_import_token, config.IMPORT_CALLBACK_TOKEN):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail='Invalid import token.')


@router.get('/recent', response_model=list[ImportBatchResponse])
def list_recent_imports(
    capabilities: Capabilities = Depends(require(Capability.EDIT)),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        batches = bulk_import.recent_batches(db, capabilities.email)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    now = datetime.now()
    return [batch_response(batch, capabilities, now) for batch in batches]


@router.post('', response_model=UploadResponse, status_code=status.HTTP_201_CREATED)
def upload_schedule_file(
    file: UploadFile = File(...),
    capabilities: Capabilities = Depends(require(Capability.EDIT)),
    ip_address: str = Depends(request_ip),
    db: Session = Depends(get_db),
):
    ensure_database_ready()
    file_name = file.filename or 'pauta.pdf'

    try:
        if bulk_import.is_recent_duplicate(db, capabilities.email, file_name):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=(
                    f'O arquivo "{file_name}" já foi enviado recentemente. Para reenviar, '
                    'exclua o registro anterior ou renomeie o arquivo.'
                ),
            )

        # The pipeline posts rows back while the upload is still open, so the
        # batch must exist before the file is sent.
        batch = ImportBatch(batch_id=str(uuid.uuid4()), file_name=file_name, created_by=capabilities.email)
        db.add(batch)
        db.commit()
        db.refresh(batch)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    try:
        message = bulk_import.upload_schedule(file_name, file.file.read(), file.content_type, batch.batch_id)
    except bulk_import.ImportUploadError as exc:
        discard_failed_batch(db, batch)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=exc.message) from exc

    event = change_feed.publish(TABLE_NAME, 'IMPORT', batch.batch_id)
    log_system_action(
        db,
        capabilities.email,
        'UPLOAD PAUTA',
        f'Enviou arquivo: {file_name} (Lote: {batch.batch_id}). Msg: {message}',
        ip_address,
    )
    return UploadResponse(sequence=event.sequence, message=message, batch=batch_response(batch, capabilities))


def discard_failed_batch(db: Session, batch: ImportBatch) -> None:
    """Forget a failed upload unless the pipeline already stored rows for it."""
    try:
        has_rows = db.query(Appointment.id).filter(Appointment.import_batch_id == batch.batch_id).first()
        if has_rows is None:
            db.delete(batch)
            db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception('Failed to discard import batch %s', batch.batch_id)


@router.post('/{batch_id}/rows', response_model=IngestRowsResponse)
def ingest_import_rows(
    batch_id: str,
    data: IngestRowsRequest,
    _: None = Depends(verify_callback_token),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        batch = db.query(ImportBatch).filter(ImportBatch.batch_id == batch_id).first()
        if batch is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Lote não encontrado.')
        if batch.undone_at is not None:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail='Lote já desfeito.')

        result = bulk_import.ingest_rows(db, batch_id, data.rows)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    for row in result.quarantined:
        logger.warning('Quarantined row %s of batch %s: %s', row.index, batch_id, row.reason)

    event = change_feed.publish(TABLE_NAME, 'IMPORT', batch_id)
    return IngestRowsResponse(
        sequence=event.sequence,
        inserted=result.inserted,
        duplicates=[DuplicateRowResponse(periciado=row.periciado, data=row.data) for row in result.duplicates],
        quarantined=[
            QuarantinedRowResponse(index=row.index, reason=row.reason, raw=row.raw)
            for row in result.quarantined
        ],
    )


@router.delete('/{batch_id}', response_model=UndoResponse)
def undo_import(
    batch_id: str,
    capabilities: Capabilities = Depends(require(Capability.EDIT)),
    ip_address: str = Depends(request_ip),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        batch = db.query(ImportBatch).filter(ImportBatch.batch_id == batch_id).first()
        if batch is None or batch.undone_at is not None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Lote não encontrado.')
        if batch.created_by != capabilities.email and not capabilities.is_admin:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail='Somente quem enviou o arquivo pode desfazer esta importação.',
            )

        try:
            bulk_import.check_undo_allowed(batch, capabilities.undo_window)
        except bulk_import.UndoWindowExpired as exc:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc

        deleted = bulk_import.delete_batch_rows(db, batch_id)
        # A batch with no rows stays listed so the undo can be retried.
        if deleted:
            batch.undone_at = datetime.now()
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    event = change_feed.publish(TABLE_NAME, 'UNDO', batch_id)
    if deleted == 0:
        return UndoResponse(
            sequence=event.sequence,
            deleted=0,
            warning=True,
            message=(
                'O sistema processou o pedido, mas 0 registros foram encontrados para este lote. '
                'Verifique se a importação está salvando o "import_batch_id" corretamente.'
            ),
        )

    log_system_action(
        db,
        capabilities.email,
        'DESFAZER UPLOAD',
        f'Apagou lote {batch_id} do arquivo {batch.file_name} ({deleted} registros)',
        ip_address,
    )
    return UndoResponse(
        sequence=event.sequence,
        deleted=deleted,
        warning=False,
        message=f'Importação desfeita com sucesso. {deleted} registros foram removidos da base.',
    )

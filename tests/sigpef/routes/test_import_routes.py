import io
from datetime import date, datetime, timedelta

import pytest
from fastapi import HTTPException, UploadFile

from sigpef.models.appointment import Appointment
from sigpef.models.import_batch import ImportBatch
from sigpef.models.message import LogEntry
from sigpef.routes.import_routes import (
    IngestRowsRequest,
    batch_response,
    ingest_import_rows,
    list_recent_imports,
    undo_import,
    upload_schedule_file,
    verify_callback_token,
)
from sigpef.services import bulk_import


@pytest.fixture(autouse=True)
def skip_schema_check(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr('sigpef.routes.import_routes.ensure_database_ready', lambda: None)


def _upload(file_name: str = 'pauta.pdf') -> UploadFile:
    return UploadFile(file=io.BytesIO(b'%PDF-1.4 pauta'), filename=file_name)


def _batch(db, batch_id='batch-1', created_by='editor@sigpef.jus.br', created_at=None, rows=0) -> ImportBatch:
    batch = ImportBatch(
        batch_id=batch_id,
        file_name=f'{batch_id}.pdf',
        created_by=created_by,
        created_at=created_at or datetime.now(),
    )
    db.add(batch)
    for index in range(rows):
        db.add(
            Appointment(
                data_pericia=date(2025, 3, 10 + index),
                periciado=f'PERICIADO {batch_id} {index}',
                import_batch_id=batch_id,
            )
        )
    db.commit()
    return batch


def test_upload_schedule_file_creates_batch_and_logs(sigpef_db, editor, monkeypatch: pytest.MonkeyPatch) -> None:
    sent = {}

    def fake_upload(file_name, content, content_type, batch_id):
        sent.update(file_name=file_name, content=content, batch_id=batch_id)
        return bulk_import.UPLOAD_SUCCESS_MESSAGE

    monkeypatch.setattr(bulk_import, 'upload_schedule', fake_upload)

    response = upload_schedule_file(file=_upload(), capabilities=editor, ip_address='127.0.0.1', db=sigpef_db)

    assert response.message == bulk_import.UPLOAD_SUCCESS_MESSAGE
    assert response.batch.batch_id == sent['batch_id']
    assert response.batch.can_undo
    assert sent['content'] == b'%PDF-1.4 pauta'
    stored = sigpef_db.query(ImportBatch).one()
    assert (stored.file_name, stored.created_by) == ('pauta.pdf', editor.email)
    assert sigpef_db.query(LogEntry).filter(LogEntry.action == 'UPLOAD PAUTA').count() == 1


def test_upload_schedule_file_discards_batch_on_pipeline_error(
    sigpef_db,
    editor,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    def failing_upload(file_name, content, content_type, batch_id):
        raise bulk_import.ImportUploadError(bulk_import.GENERIC_DUPLICATE_MESSAGE, status_code=500)

    monkeypatch.setattr(bulk_import, 'upload_schedule', failing_upload)

    with pytest.raises(HTTPException) as exception_info:
        upload_schedule_file(file=_upload(), capabilities=editor, ip_address='127.0.0.1', db=sigpef_db)

    assert exception_info.value.status_code == 502
    assert exception_info.value.detail == bulk_import.GENERIC_DUPLICATE_MESSAGE
    assert sigpef_db.query(ImportBatch).count() == 0


def test_upload_schedule_file_rejects_recent_duplicate_name(sigpef_db, editor) -> None:
    _batch(sigpef_db, batch_id='pauta', created_by=editor.email)

    with pytest.raises(HTTPException) as exception_info:
        upload_schedule_file(file=_upload('pauta.pdf'), capabilities=editor, ip_address='127.0.0.1', db=sigpef_db)

    assert exception_info.value.status_code == 409
    assert 'pauta.pdf' in exception_info.value.detail


def test_list_recent_imports_reports_undo_state(sigpef_db, editor) -> None:
    _batch(sigpef_db, batch_id='old', created_by=editor.email, created_at=datetime.now() - timedelta(minutes=30))
    _batch(sigpef_db, batch_id='new', created_by=editor.email)

    batches = list_recent_imports(capabilities=editor, db=sigpef_db)

    assert [(batch.batch_id, batch.can_undo) for batch in batches] == [('new', True), ('old', False)]


def test_batch_response_uses_role_window(editor, admin) -> None:
    created_at = datetime(2025, 3, 10, 9, 0)
    batch = ImportBatch(batch_id='b', file_name='p.pdf', created_by='x', created_at=created_at)
    now = created_at + timedelta(minutes=30)

    assert not batch_response(batch, editor, now).can_undo
    assert batch_response(batch, admin, now).can_undo
    assert batch_response(batch, admin, now).expires_at == created_at + timedelta(minutes=60)


def test_verify_callback_token(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(bulk_import.config, 'IMPORT_CALLBACK_TOKEN', '')
    with pytest.raises(HTTPException) as disabled:
        verify_callback_token(x_import_token='anything')
    assert disabled.value.status_code == 403

    monkeypatch.setattr(bulk_import.config, 'IMPORT_CALLBACK_TOKEN', 's3cret')
    with pytest.raises(HTTPException) as mismatch:
        verify_callback_token(x_import_token='wrong')
    assert mismatch.value.status_code == 401

    assert verify_callback_token(x_import_token='s3cret') is None


def test_ingest_import_rows_stores_rows_for_batch(sigpef_db) -> None:
    _batch(sigpef_db, batch_id='batch-7')

    response = ingest_import_rows(
        batch_id='batch-7',
        data=IngestRowsRequest(rows=[
            {'DATA': '10/03/2025', 'PERICIADO': 'ana', 'PERITO': 'dr x', 'ESPECIALIDADE': 'orto'},
            {'DATA': '??', 'PERICIADO': 'bruno'},
        ]),
        _=None,
        db=sigpef_db,
    )

    assert response.inserted == 1
    assert [row.index for row in response.quarantined] == [1]
    assert sigpef_db.query(Appointment).filter(Appointment.import_batch_id == 'batch-7').count() == 1


def test_ingest_import_rows_rejects_unknown_batch(sigpef_db) -> None:
    with pytest.raises(HTTPException) as exception_info:
        ingest_import_rows(batch_id='missing', data=IngestRowsRequest(rows=[]), _=None, db=sigpef_db)

    assert exception_info.value.status_code == 404


def test_undo_import_deletes_batch_rows(sigpef_db, editor) -> None:
    _batch(sigpef_db, batch_id='batch-2', created_by=editor.email, rows=3)
    _batch(sigpef_db, batch_id='other', created_by=editor.email, rows=1)

    response = undo_import(batch_id='batch-2', capabilities=editor, ip_address='127.0.0.1', db=sigpef_db)

    assert response.deleted == 3
    assert response.warning is False
    assert sigpef_db.query(Appointment).count() == 1
    assert sigpef_db.query(ImportBatch).filter(ImportBatch.batch_id == 'batch-2').one().undone_at is not None
    assert sigpef_db.query(LogEntry).filter(LogEntry.action == 'DESFAZER UPLOAD').count() == 1


def test_undo_import_warns_when_no_rows_match(sigpef_db, editor) -> None:
    _batch(sigpef_db, batch_id='empty', created_by=editor.email)

    response = undo_import(batch_id='empty', capabilities=editor, ip_address='127.0.0.1', db=sigpef_db)

    assert response.deleted == 0
    assert response.warning is True
    assert sigpef_db.query(ImportBatch).one().undone_at is None


def test_undo_import_after_editor_window_expires(sigpef_db, editor, admin) -> None:
    created_at = datetime.now() - timedelta(minutes=20)
    _batch(sigpef_db, batch_id='late', created_by=editor.email, created_at=created_at, rows=1)

    with pytest.raises(HTTPException) as exception_info:
        undo_import(batch_id='late', capabilities=editor, ip_address='127.0.0.1', db=sigpef_db)

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail == 'O prazo de 10 minutos para desfazer esta importação expirou.'

    # Admins keep a longer window, also over other users' uploads.
    response = undo_import(batch_id='late', capabilities=admin, ip_address='127.0.0.1', db=sigpef_db)
    assert response.deleted == 1


def test_undo_import_rejects_other_editor(sigpef_db, editor) -> None:
    _batch(sigpef_db, batch_id='someone-else', created_by='outro@sigpef.jus.br', rows=1)

    with pytest.raises(HTTPException) as exception_info:
        undo_import(batch_id='someone-else', capabilities=editor, ip_address='127.0.0.1', db=sigpef_db)

    assert exception_info.value.status_code == 403

import logging
from datetime import date, datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from sigpef.auth.capabilities import Capabilities, Capability
from sigpef.auth.dependencies import require
from sigpef.core import config
from sigpef.database import get_db
from sigpef.models.appointment import Appointment
from sigpef.routes.common import database_unavailable, ensure_database_ready
from sigpef.services.audit import log_system_action, request_ip
from sigpef.services.bulk_import import duplicate_message
from sigpef.services.change_feed import change_feed
from sigpef.services.filtering import (
    AppointmentFilters,
    AppointmentRow,
    compute_stats,
    filter_appointments,
    unique_values,
)
from sigpef.services.normalization import normalize_observacao, normalize_perito_name, normalize_text

router = APIRouter(tags=['appointments'])
logger = logging.getLogger(__name__)

TABLE_NAME = 'pericias'


class AppointmentResponse(BaseModel):
    id: int
    data: str
    perito: str
    especialidade: str
    periciado: str
    observacao: str

    @classmethod
    def from_row(cls, row: AppointmentRow) -> 'AppointmentResponse':
        return cls(
            id=row.id,
            data=row.data,
            perito=row.perito,
            especialidade=row.especialidade,
            periciado=row.periciado,
            observacao=row.observacao,
        )


class StatsResponse(BaseModel):
    total: int
    completed: int
    pending: int


class AppointmentListResponse(BaseModel):
    sequence: int
    items: list[AppointmentResponse]
    stats: StatsResponse
    peritos: list[str]
    especialidades: list[str]


class AppointmentMutationResponse(BaseModel):
    sequence: int
    item: AppointmentResponse | None = None


class ChangeEventResponse(BaseModel):
    sequence: int
    table: str
    action: str
    row_id: int | str | None = None
    created_at: datetime


class ChangeFeedResponse(BaseModel):
    sequence: int
    truncated: bool
    events: list[ChangeEventResponse]


class CreateAppointmentRequest(BaseModel):
    data: date
    periciado: str
    perito: str
    especialidade: str

    @field_validator('periciado', 'especialidade')
    @classmethod
    def validate_required_text(cls, value: str) -> str:
        normalized = normalize_text(value)
        if not normalized:
            raise ValueError('Por favor, preencha todos os campos obrigatórios.')
        return normalized

    @field_validator('perito')
    @classmethod
    def validate_perito(cls, value: str) -> str:
        normalized = normalize_perito_name(value)
        if not normalized:
            raise ValueError('Por favor, preencha todos os campos obrigatórios.')
        return normalized


class UpdateAppointmentRequest(BaseModel):
    observacao: str | None = None
    periciado: str | None = None

    @field_validator('periciado')
    @classmethod
    def validate_periciado(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = normalize_text(value)
        if not normalized:
            raise ValueError('O nome do periciado não pode ficar vazio.')
        return normalized

    @field_validator('observacao')
    @classmethod
    def validate_observacao(cls, value: str | None) -> str | None:
        if value is None:
            return None
        result = normalize_observacao(value)
        if not result.ok:
            raise ValueError('Status inválido.')
        return result.value


def build_filters(
    search: str = '',
    perito: str = '',
    especialidade: str = '',
    status_filter: str = '',
    year: str = '',
    month: str = '',
    day: str = '',
) -> AppointmentFilters:
    return AppointmentFilters(
        search=search.strip(),
        perito=perito.strip(),
        especialidade=especialidade.strip(),
        status=status_filter.strip().upper(),
        year=year.strip(),
        month=month.strip().zfill(2) if month.strip() else '',
        day=day.strip().zfill(2) if day.strip() else '',
    )


def load_rows(db: Session, start_date: str = '', end_date: str = '') -> list[AppointmentRow]:
    """Oldest-first rows, optionally bounded by inclusive ISO dates before the fetch limit applies."""
    query = db.query(Appointment)
    if start_date:
        query = query.filter(Appointment.data_pericia >= date.fromisoformat(start_date))
    if end_date:
        query = query.filter(Appointment.data_pericia <= date.fromisoformat(end_date))
    appointments = (
        query.order_by(Appointment.data_pericia.asc(), Appointment.id.asc())
        .limit(config.APPOINTMENT_FETCH_LIMIT)
        .all()
    )
    return [AppointmentRow.from_model(appointment) for appointment in appointments]


def describe_edit(previous: Appointment, periciado: str | None, observacao: str | None) -> str:
    changed_name = periciado is not None and periciado != previous.periciado
    changed_status = observacao is not None and observacao != (previous.observacao or '')
    if changed_name and changed_status:
        return f"Alterou nome para '{periciado}' e status para '{observacao or 'PENDENTE'}'"
    if changed_name:
        return f"Corrigiu nome de '{previous.periciado}' para '{periciado}'"
    new_status = observacao if observacao is not None else previous.observacao
    return f"Alterou status de '{previous.periciado}' para '{new_status or 'PENDENTE'}'"


@router.get('', response_model=AppointmentListResponse)
def list_appointments(
    search: str = Query(default=''),
    perito: str = Query(default=''),
    especialidade: str = Query(default=''),
    status_filter: str = Query(default='', alias='status'),
    year: str = Query(default=''),
    month: str = Query(default=''),
    day: str = Query(default=''),
    capabilities: Capabilities = Depends(require(Capability.VIEW)),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    # Head is read before the query so the snapshot is never newer than its tag.
    sequence = change_feed.current()
    try:
        rows = load_rows(db)
    except SQLAlchemyError as exc:
        logger.exception('Failed to load appointments')
        raise database_unavailable() from exc

    filters = build_filters(search, perito, especialidade, status_filter, year, month, day)
    filtered = filter_appointments(rows, filters)
    stats = compute_stats(filtered)

    return AppointmentListResponse(
        sequence=sequence,
        items=[AppointmentResponse.from_row(row) for row in filtered],
        stats=StatsResponse(total=stats.total, completed=stats.completed, pending=stats.pending),
        peritos=unique_values(rows, 'perito'),
        especialidades=unique_values(rows, 'especialidade'),
    )


@router.get('/changes', response_model=ChangeFeedResponse)
def list_changes(
    since: int = Query(default=0, ge=0),
    capabilities: Capabilities = Depends(require(Capability.VIEW)),
):
    head, events = change_feed.events_since(since)
    return ChangeFeedResponse(
        sequence=head,
        truncated=change_feed.is_truncated(since),
        events=[
            ChangeEventResponse(
                sequence=event.sequence,
                table=event.table,
                action=event.action,
                row_id=event.row_id,
                created_at=event.created_at,
            )
            for event in events
        ],
    )


@router.post('', response_model=AppointmentMutationResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: CreateAppointmentRequest,
    capabilities: Capabilities = Depends(require(Capability.EDIT)),
    ip_address: str = Depends(request_ip),
    db: Session = Depends(get_db),
):
    ensure_database_ready()
    conflict = HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail=duplicate_message(data.periciado, data.data.isoformat()),
    )

    try:
        existing = db.query(Appointment.id).filter(
            Appointment.periciado == data.periciado,
            Appointment.data_pericia == data.data,
        ).first()
        if existing:
            raise conflict

        appointment = Appointment(
            data_pericia=data.data,
            periciado=data.periciado,
            perito=data.perito,
            especialidade=data.especialidade,
            observacao='',
        )
        db.add(appointment)
        db.commit()
        db.refresh(appointment)
    except IntegrityError as exc:
        db.rollback()
        raise conflict from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    event = change_feed.publish(TABLE_NAME, 'INSERT', appointment.id)
    log_system_action(db, capabilities.email, 'NOVA PERÍCIA', f'Cadastrou perícia: {data.periciado}', ip_address)

    return AppointmentMutationResponse(
        sequence=event.sequence,
        item=AppointmentResponse.from_row(AppointmentRow.from_model(appointment)),
    )


@router.patch('/{appointment_id}', response_model=AppointmentMutationResponse)
def update_appointment(
    appointment_id: int,
    data: UpdateAppointmentRequest,
    capabilities: Capabilities = Depends(require(Capability.EDIT)),
    ip_address: str = Depends(request_ip),
    db: Session = Depends(get_db),
):
    if data.observacao is None and data.periciado is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Nada para atualizar.',
        )

    ensure_database_ready()

    try:
        appointment = db.query(Appointment).filter(Appointment.id == appointment_id).first()
        if not appointment:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='Perícia não encontrada.',
            )

        log_detail = describe_edit(appointment, data.periciado, data.observacao)
        if data.periciado is not None:
            appointment.periciado = data.periciado
        if data.observacao is not None:
            appointment.observacao = data.observacao
        db.commit()
        db.refresh(appointment)
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=duplicate_message(data.periciado or '', appointment.data_pericia.isoformat()),
        ) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    event = change_feed.publish(TABLE_NAME, 'UPDATE', appointment.id)
    log_system_action(db, capabilities.email, 'EDIÇÃO PERÍCIA', log_detail, ip_address)

    return AppointmentMutationResponse(
        sequence=event.sequence,
        item=AppointmentResponse.from_row(AppointmentRow.from_model(appointment)),
    )


@router.delete('/{appointment_id}', response_model=AppointmentMutationResponse)
def delete_appointment(
    appointment_id: int,
    capabilities: Capabilities = Depends(require(Capability.DELETE_APPOINTMENT)),
    ip_address: str = Depends(request_ip),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointment = db.query(Appointment).filter(Appointment.id == appointment_id).first()
        if not appointment:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='Perícia não encontrada.',
            )

        details = f'Excluiu perícia de {appointment.periciado} ({appointment.data_pericia.isoformat()})'
        db.delete(appointment)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    event = change_feed.publish(TABLE_NAME, 'DELETE', appointment_id)
    log_system_action(db, capabilities.email, 'EXCLUSÃO PERÍCIA', details, ip_address)

    return AppointmentMutationResponse(sequence=event.sequence)

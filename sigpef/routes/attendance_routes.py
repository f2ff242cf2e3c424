from datetime import date, datetime

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from sigpef.auth.capabilities import Capabilities, Capability
from sigpef.auth.dependencies import require
from sigpef.database import get_db
from sigpef.models.attendance import AttendanceRecord
from sigpef.routes.common import database_unavailable, ensure_database_ready
from sigpef.services.attendance import calculate_duration, parse_clock
from sigpef.services.audit import log_system_action, request_ip
from sigpef.services.change_feed import change_feed
from sigpef.services.normalization import normalize_perito_name, normalize_text

router = APIRouter(tags=['attendance'])

TABLE_NAME = 'controle_presenca'
PUNCH_FIELDS = ('hora_chegada', 'hora_saida')


class AttendanceResponse(BaseModel):
    id: int
    data_pericia: date
    perito: str
    vara: str
    sala: str
    hora_chegada: str | None = None
    hora_saida: str | None = None
    duracao: str | None = None

    @classmethod
    def from_model(cls, record: AttendanceRecord) -> 'AttendanceResponse':
        return cls(
            id=record.id,
            data_pericia=record.data_pericia,
            perito=record.perito,
            vara=record.vara or '',
            sala=record.sala or '',
            hora_chegada=record.hora_chegada,
            hora_saida=record.hora_saida,
            duracao=calculate_duration(record.hora_chegada, record.hora_saida),
        )


class AttendanceMutationResponse(BaseModel):
    sequence: int
    item: AttendanceResponse | None = None


class AttendanceRequest(BaseModel):
    data_pericia: date
    perito: str
    vara: str = ''
    sala: str = ''
    hora_chegada: str | None = None
    hora_saida: str | None = None

    @field_validator('perito')
    @classmethod
    def validate_perito(cls, value: str) -> str:
        normalized = normalize_perito_name(value)
        if not normalized:
            raise ValueError('Por favor, preencha a Data e o Perito.')
        return normalized

    @field_validator('vara', 'sala')
    @classmethod
    def validate_location(cls, value: str) -> str:
        return normalize_text(value)

    @field_validator('hora_chegada', 'hora_saida')
    @classmethod
    def validate_clock(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        minutes = parse_clock(value)
        if minutes is None:
            raise ValueError('Horário deve estar no formato HH:MM.')
        return f'{minutes // 60:02d}:{minutes % 60:02d}'


class PunchRequest(BaseModel):
    field: str

    @field_validator('field')
    @classmethod
    def validate_field(cls, value: str) -> str:
        if value not in PUNCH_FIELDS:
            raise ValueError('Campo deve ser hora_chegada ou hora_saida.')
        return value


def current_clock(now: datetime | None = None) -> str:
    now = now or datetime.now()
    return f'{now.hour:02d}:{now.minute:02d}'


def get_record_or_404(db: Session, record_id: int) -> AttendanceRecord:
    record = db.query(AttendanceRecord).filter(AttendanceRecord.id == record_id).first()
    if not record:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='Registro de presença não encontrado.',
        )
    return record


@router.get('', response_model=list[AttendanceResponse])
def list_attendance(
    capabilities: Capabilities = Depends(require(Capability.VIEW)),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        records = db.query(AttendanceRecord).order_by(
            AttendanceRecord.data_pericia.desc(),
            AttendanceRecord.id.desc(),
        ).all()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    return [AttendanceResponse.from_model(record) for record in records]


@router.post('', response_model=AttendanceMutationResponse, status_code=status.HTTP_201_CREATED)
def create_attendance(
    data: AttendanceRequest,
    capabilities: Capabilities = Depends(require(Capability.EDIT)),
    ip_address: str = Depends(request_ip),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        record = AttendanceRecord(**data.model_dump())
        db.add(record)
        db.commit()
        db.refresh(record)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    event = change_feed.publish(TABLE_NAME, 'INSERT', record.id)
    log_system_action(
        db,
        capabilities.email,
        'CRIAÇÃO PRESENÇA',
        f'Criou presença de {data.perito} em {data.data_pericia.isoformat()}',
        ip_address,
    )
    return AttendanceMutationResponse(sequence=event.sequence, item=AttendanceResponse.from_model(record))


@router.put('/{record_id}', response_model=AttendanceMutationResponse)
def update_attendance(
    record_id: int,
    data: AttendanceRequest,
    capabilities: Capabilities = Depends(require(Capability.EDIT)),
    ip_address: str = Depends(request_ip),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        record = get_record_or_404(db, record_id)
        for key, value in data.model_dump().items():
            setattr(record, key, value)
        db.commit()
        db.refresh(record)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    event = change_feed.publish(TABLE_NAME, 'UPDATE', record.id)
    log_system_action(
        db,
        capabilities.email,
        'UPDATE PRESENÇA',
        f'Atualizou presença de {data.perito} em {data.data_pericia.isoformat()}',
        ip_address,
    )
    return AttendanceMutationResponse(sequence=event.sequence, item=AttendanceResponse.from_model(record))


@router.post('/{record_id}/punch', response_model=AttendanceMutationResponse)
def punch_attendance(
    record_id: int,
    data: PunchRequest,
    capabilities: Capabilities = Depends(require(Capability.EDIT)),
    ip_address: str = Depends(request_ip),
    db: Session = Depends(get_db),
):
    ensure_database_ready()
    clock = current_clock()

    try:
        record = get_record_or_404(db, record_id)
        setattr(record, data.field, clock)
        db.commit()
        db.refresh(record)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    event = change_feed.publish(TABLE_NAME, 'UPDATE', record.id)
    log_system_action(
        db,
        capabilities.email,
        'PONTO RÁPIDO',
        f'Marcou {data.field} como {clock} para registro ID {record_id}',
        ip_address,
    )
    return AttendanceMutationResponse(sequence=event.sequence, item=AttendanceResponse.from_model(record))


@router.delete('/{record_id}', response_model=AttendanceMutationResponse)
def delete_attendance(
    record_id: int,
    capabilities: Capabilities = Depends(require(Capability.EDIT)),
    ip_address: str = Depends(request_ip),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        record = get_record_or_404(db, record_id)
        db.delete(record)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    event = change_feed.publish(TABLE_NAME, 'DELETE', record_id)
    log_system_action(db, capabilities.email, 'EXCLUSÃO PRESENÇA', f'Excluiu registro ID {record_id}', ip_address)
    return AttendanceMutationResponse(sequence=event.sequence)

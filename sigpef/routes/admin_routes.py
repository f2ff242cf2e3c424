from datetime import date, datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from sigpef.auth.capabilities import Capabilities, Capability
from sigpef.auth.dependencies import require
from sigpef.core import config
from sigpef.database import get_db
from sigpef.models.message import LogEntry
from sigpef.models.user import USER_ROLES, UserProfile
from sigpef.routes.common import database_unavailable
from sigpef.services.audit import LogFilters, filter_logs, log_system_action, request_ip, unique_actions

router = APIRouter(tags=['admin'])


class UserResponse(BaseModel):
    id: int
    email: str
    full_name: str
    role: str
    approved: bool
    created_at: datetime | None = None

    @classmethod
    def from_model(cls, user: UserProfile) -> 'UserResponse':
        return cls(
            id=user.id,
            email=user.email,
            full_name=user.full_name or '',
            role=user.role,
            approved=bool(user.approved),
            created_at=user.created_at,
        )


class UpdateUserRequest(BaseModel):
    role: str | None = None
    approved: bool | None = None
    full_name: str | None = None

    @field_validator('role')
    @classmethod
    def validate_role(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip().lower()
        if normalized not in USER_ROLES:
            raise ValueError('Perfil inválido.')
        return normalized

    @field_validator('full_name')
    @classmethod
    def validate_full_name(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return ' '.join(value.split())


class LogEntryResponse(BaseModel):
    id: int
    user_email: str
    action: str
    details: str
    ip_address: str | None = None
    created_at: datetime

    class Config:
        from_attributes = True


@router.get('/users', response_model=list[UserResponse])
def list_users(
    search: str = Query(default=''),
    capabilities: Capabilities = Depends(require(Capability.ADMIN)),
    db: Session = Depends(get_db),
):
    try:
        users = db.query(UserProfile).order_by(UserProfile.created_at.desc(), UserProfile.id.desc()).all()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    needle = search.strip().lower()
    if needle:
        users = [
            user for user in users
            if needle in (user.email or '').lower() or needle in (user.full_name or '').lower()
        ]
    return [UserResponse.from_model(user) for user in users]


@router.patch('/users/{user_id}', response_model=UserResponse)
def update_user(
    user_id: int,
    data: UpdateUserRequest,
    capabilities: Capabilities = Depends(require(Capability.ADMIN)),
    ip_address: str = Depends(request_ip),
    db: Session = Depends(get_db),
):
    try:
        user = db.query(UserProfile).filter(UserProfile.id == user_id).first()
        if not user:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Usuário não encontrado.')

        if user.email == capabilities.email and (
            (data.role is not None and data.role != 'admin') or data.approved is False
        ):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='Você não pode remover o seu próprio acesso de administrador.',
            )

        changes = []
        if data.role is not None and data.role != user.role:
            changes.append(f"perfil '{user.role}' -> '{data.role}'")
            user.role = data.role
        if data.approved is not None and data.approved != user.approved:
            changes.append('aprovado' if data.approved else 'bloqueado')
            user.approved = data.approved
        if data.full_name is not None and data.full_name != (user.full_name or ''):
            changes.append(f"nome '{data.full_name}'")
            user.full_name = data.full_name

        db.commit()
        db.refresh(user)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    if changes:
        log_system_action(
            db,
            capabilities.email,
            'APROVAÇÃO USUÁRIO',
            f"Atualizou {user.email}: {', '.join(changes)}",
            ip_address,
        )
    return UserResponse.from_model(user)


def load_logs(db: Session) -> list[LogEntry]:
    try:
        return (
            db.query(LogEntry)
            .order_by(LogEntry.created_at.desc(), LogEntry.id.desc())
            .limit(config.LOG_FETCH_LIMIT)
            .all()
        )
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/logs', response_model=list[LogEntryResponse])
def list_logs(
    search: str = Query(default=''),
    action: str = Query(default=''),
    on_date: date | None = Query(default=None, alias='date'),
    capabilities: Capabilities = Depends(require(Capability.ADMIN)),
    db: Session = Depends(get_db),
):
    entries = load_logs(db)
    return filter_logs(entries, LogFilters(search=search, action=action.strip(), on_date=on_date))


@router.get('/logs/actions', response_model=list[str])
def list_log_actions(
    capabilities: Capabilities = Depends(require(Capability.ADMIN)),
    db: Session = Depends(get_db),
):
    return unique_actions(load_logs(db))

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from sigpef.auth.capabilities import Capabilities, Capability
from sigpef.auth.dependencies import get_current_user, require
from sigpef.core import config
from sigpef.database import get_db
from sigpef.models.message import GlobalMessage
from sigpef.models.user import UserProfile
from sigpef.routes.common import database_unavailable
from sigpef.services.audit import log_system_action, request_ip
from sigpef.services.change_feed import change_feed

router = APIRouter(tags=['messages'])

TABLE_NAME = 'global_messages'
MAX_MESSAGE_LENGTH = 2000


class MessageResponse(BaseModel):
    id: int
    message: str
    created_by: str
    created_at: datetime

    class Config:
        from_attributes = True


class MessageListResponse(BaseModel):
    unread: int
    items: list[MessageResponse]


class SendMessageRequest(BaseModel):
    message: str

    @field_validator('message')
    @classmethod
    def validate_message(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('A mensagem não pode ficar vazia.')
        if len(normalized) > MAX_MESSAGE_LENGTH:
            raise ValueError(f'A mensagem deve ter no máximo {MAX_MESSAGE_LENGTH} caracteres.')
        return normalized


@router.get('', response_model=MessageListResponse)
def list_messages(
    after_id: int = Query(default=0, ge=0),
    capabilities: Capabilities = Depends(require(Capability.VIEW)),
    db: Session = Depends(get_db),
):
    """Latest broadcasts; ``unread`` counts those newer than ``after_id``."""
    try:
        messages = (
            db.query(GlobalMessage)
            .order_by(GlobalMessage.created_at.desc(), GlobalMessage.id.desc())
            .limit(config.MESSAGE_FETCH_LIMIT)
            .all()
        )
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    unread = sum(1 for message in messages if message.id > after_id)
    return MessageListResponse(
        unread=unread,
        items=[MessageResponse.model_validate(message) for message in messages],
    )


@router.post('', response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
def send_message(
    data: SendMessageRequest,
    capabilities: Capabilities = Depends(require(Capability.ADMIN)),
    current_user: UserProfile = Depends(get_current_user),
    ip_address: str = Depends(request_ip),
    db: Session = Depends(get_db),
):
    author = current_user.full_name or current_user.email or 'Admin'
    try:
        message = GlobalMessage(message=data.message, created_by=author)
        db.add(message)
        db.commit()
        db.refresh(message)
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail='Erro ao enviar mensagem.',
        ) from exc

    change_feed.publish(TABLE_NAME, 'INSERT', message.id)
    log_system_action(db, capabilities.email, 'AVISO GLOBAL', f'Enviou aviso: {data.message[:120]}', ip_address)
    return message

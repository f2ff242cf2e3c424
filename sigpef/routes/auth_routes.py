import logging

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from sigpef.auth import jwt_handler
from sigpef.auth.capabilities import resolve_capabilities
from sigpef.auth.dependencies import get_current_user
from sigpef.auth.passwords import hash_password, verify_password
from sigpef.core import config
from sigpef.database import get_db
from sigpef.models.user import UserProfile
from sigpef.routes.common import database_unavailable

router = APIRouter(tags=['auth'])
logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


def normalize_email(value: str) -> str:
    normalized = value.strip().lower()
    if '@' not in normalized:
        raise ValueError('E-mail inválido.')
    return normalized


class SignupRequest(BaseModel):
    email: str
    password: str
    full_name: str
    accepted_terms: bool = False

    @field_validator('email')
    @classmethod
    def validate_email(cls, value: str) -> str:
        return normalize_email(value)

    @field_validator('full_name')
    @classmethod
    def validate_full_name(cls, value: str) -> str:
        normalized = ' '.join(value.split())
        if not normalized:
            raise ValueError('Por favor, informe seu nome completo.')
        return normalized

    @field_validator('password')
    @classmethod
    def validate_password(cls, value: str) -> str:
        if len(value) < MIN_PASSWORD_LENGTH:
            raise ValueError(f'A senha deve ter pelo menos {MIN_PASSWORD_LENGTH} caracteres.')
        return value


class LoginRequest(BaseModel):
    email: str
    password: str

    @field_validator('email')
    @classmethod
    def validate_email(cls, value: str) -> str:
        return value.strip().lower()


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = 'bearer'


class ProfileResponse(BaseModel):
    id: int
    email: str
    full_name: str
    role: str
    approved: bool
    capabilities: list[str]
    undo_window_minutes: int
    app_version: str


def profile_response(user: UserProfile) -> ProfileResponse:
    capabilities = resolve_capabilities(user)
    return ProfileResponse(
        id=user.id,
        email=user.email,
        full_name=user.full_name or '',
        role=capabilities.role,
        approved=capabilities.approved,
        capabilities=sorted(capability.value for capability in capabilities.granted),
        undo_window_minutes=int(capabilities.undo_window.total_seconds() // 60),
        app_version=config.APP_VERSION,
    )


@router.post('/signup', response_model=ProfileResponse, status_code=status.HTTP_201_CREATED)
def signup(data: SignupRequest, db: Session = Depends(get_db)):
    if not data.accepted_terms:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Você precisa aceitar os termos de uso para continuar.',
        )

    conflict = HTTPException(status_code=status.HTTP_409_CONFLICT, detail='E-mail já cadastrado.')
    try:
        if db.query(UserProfile.id).filter(UserProfile.email == data.email).first():
            raise conflict

        user = UserProfile(
            email=data.email,
            full_name=data.full_name,
            hashed_password=hash_password(data.password),
            role='viewer',
            approved=False,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
    except IntegrityError as exc:
        db.rollback()
        raise conflict from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    logger.info('New account %s awaiting approval', user.email)
    return profile_response(user)


@router.post('/login', response_model=TokenResponse)
def login(data: LoginRequest, db: Session = Depends(get_db)):
    try:
        user = db.query(UserProfile).filter(UserProfile.email == data.email).first()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    if user is None or not verify_password(data.password, user.hashed_password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail='Credenciais inválidas.')

    return TokenResponse(access_token=jwt_handler.create_access_token(subject=user.email))


@router.get('/me', response_model=ProfileResponse)
def me(current_user: UserProfile = Depends(get_current_user)):
    return profile_response(current_user)

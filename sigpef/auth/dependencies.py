from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt import PyJWTError
from sqlalchemy.orm import Session

from sigpef.auth import jwt_handler
from sigpef.auth.capabilities import Capabilities, Capability, resolve_capabilities
from sigpef.database import get_db
from sigpef.models.user import UserProfile

security = HTTPBearer()


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> UserProfile:
    token = credentials.credentials
    try:
        payload = jwt_handler.decode_access_token(token)
    except PyJWTError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from exc

    email = payload.get("sub")
    if not email:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token subject")

    user = db.query(UserProfile).filter(UserProfile.email == email).first()
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return user


def get_capabilities(current_user: UserProfile = Depends(get_current_user)) -> Capabilities:
    return resolve_capabilities(current_user)


def require(capability: Capability):
    def dependency(capabilities: Capabilities = Depends(get_capabilities)) -> Capabilities:
        check_capability(capabilities, capability)
        return capabilities

    return dependency


def check_capability(capabilities: Capabilities, capability: Capability) -> None:
    if not capabilities.approved:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Seu cadastro ainda não foi aprovado por um administrador.',
        )
    if not capabilities.has(capability):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Você não tem permissão para esta ação.',
        )

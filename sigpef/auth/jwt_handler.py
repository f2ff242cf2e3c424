from datetime import datetime, timedelta, timezone

import jwt

from sigpef.core import config

TOKEN_ISSUER = 'sigpef'


def create_access_token(subject: str, expires_minutes: int | None = None) -> str:
    """Bearer token for ``subject`` (the profile email)."""
    issued_at = datetime.now(timezone.utc)
    lifetime = timedelta(minutes=expires_minutes or config.JWT_EXPIRES_MINUTES)
    payload = {
        'sub': subject.strip().lower(),
        'iss': TOKEN_ISSUER,
        'iat': issued_at,
        'exp': issued_at + lifetime,
    }
    return jwt.encode(payload, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict:
    return jwt.decode(
        token,
        config.JWT_SECRET_KEY,
        algorithms=[config.JWT_ALGORITHM],
        issuer=TOKEN_ISSUER,
        options={'require': ['exp', 'sub']},
    )

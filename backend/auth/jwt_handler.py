from datetime import timedelta

import jwt

from backend.core import config
from backend.core.timeutils import utcnow


def create_access_token(subject: str, role: str | None = None, expires_minutes: int | None = None) -> str:
    issued_at = utcnow()
    expire = issued_at + timedelta(minutes=expires_minutes or config.JWT_EXPIRES_MINUTES)
    payload = {"sub": subject, "exp": expire, "iat": issued_at}
    if role:
        payload["role"] = role
    return jwt.encode(payload, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict:
    return jwt.decode(token, config.JWT_SECRET_KEY, algorithms=[config.JWT_ALGORITHM])

from datetime import datetime, timedelta, timezone

import jwt

from backend.auth.principal import ROLES, Principal
from backend.core import config


class InvalidTokenSubject(Exception):
    pass


def create_access_token(subject: int | str, role: str, expires_minutes: int | None = None) -> str:
    expire_minutes = expires_minutes or config.JWT_EXPIRES_MINUTES
    expire = datetime.now(timezone.utc) + timedelta(minutes=expire_minutes)
    payload = {"sub": str(subject), "role": role, "exp": expire, "iat": datetime.now(timezone.utc)}
    return jwt.encode(payload, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict:
    return jwt.decode(token, config.JWT_SECRET_KEY, algorithms=[config.JWT_ALGORITHM])


def principal_from_payload(payload: dict) -> Principal:
    """Read the caller out of a decoded token: ``sub`` is a numeric id, ``role`` a known role."""
    subject = payload.get("sub")
    role = payload.get("role")
    if not subject or role not in ROLES:
        raise InvalidTokenSubject()
    try:
        return Principal(id=int(subject), role=role)
    except (TypeError, ValueError) as exc:
        raise InvalidTokenSubject() from exc

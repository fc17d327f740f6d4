import secrets
from datetime import datetime, timedelta, timezone
from typing import Any

import bcrypt
import jwt

from .config import settings


ACCESS = "access"
REFRESH = "refresh"


class AuthError(Exception):
    pass


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def _secret_for(token_type: str) -> str:
    return settings.access_token_secret if token_type == ACCESS else settings.refresh_token_secret


def _create_token(subject: str, role: str, token_type: str, expires_minutes: int) -> str:
    now = datetime.now(timezone.utc)
    payload: dict[str, Any] = {
        "sub": subject,
        "role": role,
        "type": token_type,
        # Distinguishes tokens minted within the same second for the same actor.
        "jti": secrets.token_hex(8),
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=expires_minutes)).timestamp()),
    }
    return jwt.encode(payload, _secret_for(token_type), algorithm=settings.jwt_algorithm)


def create_access_token(subject: str, role: str, expires_minutes: int | None = None) -> str:
    return _create_token(subject, role, ACCESS, expires_minutes or settings.access_token_exp_minutes)


def create_refresh_token(subject: str, role: str, expires_minutes: int | None = None) -> str:
    return _create_token(subject, role, REFRESH, expires_minutes or settings.refresh_token_exp_minutes)


def decode_token(token: str, token_type: str) -> dict[str, Any]:
    try:
        payload = jwt.decode(token, _secret_for(token_type), algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError as exc:
        raise AuthError("Token expired") from exc
    except jwt.InvalidTokenError as exc:
        raise AuthError("Invalid token") from exc
    if "sub" not in payload or "role" not in payload or payload.get("type") != token_type:
        raise AuthError("Invalid token payload")
    return payload

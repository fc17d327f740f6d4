from collections.abc import Callable

from fastapi import Cookie, Depends, Header
from sqlalchemy.orm import Session

from .accounts import SessionActor, resolve_session
from .database import get_db_session
from .errors import Forbidden, Unauthenticated
from .models import UserRole
from .tenancy import TenantContext


def _parse_token(auth_header: str | None) -> str | None:
    if not auth_header:
        return None
    parts = auth_header.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise Unauthenticated("Invalid auth scheme")
    return parts[1].strip()


def get_current_actor(
    authorization: str | None = Header(default=None, alias="Authorization"),
    access_cookie: str | None = Cookie(default=None, alias="accessToken"),
    db: Session = Depends(get_db_session),
) -> SessionActor:
    token = access_cookie or _parse_token(authorization)
    return resolve_session(db, token)


def get_tenant(actor: SessionActor = Depends(get_current_actor)) -> TenantContext:
    return actor.context


def require_roles(*allowed_roles: UserRole) -> Callable:
    def dependency(actor: SessionActor = Depends(get_current_actor)) -> SessionActor:
        if actor.role not in allowed_roles:
            roles = ", ".join(role.value for role in allowed_roles)
            raise Forbidden(f"Access denied: Please login as {roles}")
        return actor

    return dependency

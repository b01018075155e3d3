"""Authentication dependencies: session users, role checks, cron secret."""

import hmac
from dataclasses import dataclass
from typing import Callable, Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from config import require_cron_secret
from database import get_db
from models.user import RESTORE_ROLES, User
from services.session_token import decode_session_token


auth_scheme = HTTPBearer(auto_error=False)


@dataclass
class AuthContext:
    user_id: str
    role: str
    email: Optional[str] = None


def _bearer_token(credentials: Optional[HTTPAuthorizationCredentials]) -> str:
    if not credentials or credentials.scheme.lower() != "bearer" or not credentials.credentials:
        raise HTTPException(status_code=401, detail="Missing Bearer token.")
    return credentials.credentials


async def get_auth_context(
    credentials: HTTPAuthorizationCredentials = Depends(auth_scheme),
    db: AsyncSession = Depends(get_db),
) -> AuthContext:
    """Resolve the session user; the stored role is authoritative over token claims."""
    try:
        payload = decode_session_token(_bearer_token(credentials))
    except ValueError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc

    user = await db.get(User, str(payload["sub"]))
    if user is None:
        raise HTTPException(status_code=401, detail="Session user no longer exists.")
    return AuthContext(user_id=user.id, role=user.role or "viewer", email=user.email)


def require_roles(*roles: str) -> Callable:
    """Dependency factory rejecting sessions whose role is not listed."""
    allowed = roles or RESTORE_ROLES

    async def _dependency(auth: AuthContext = Depends(get_auth_context)) -> AuthContext:
        if auth.role not in allowed:
            raise HTTPException(status_code=403, detail="Insufficient permissions.")
        return auth

    return _dependency


async def verify_cron_secret(
    credentials: HTTPAuthorizationCredentials = Depends(auth_scheme),
) -> None:
    """Scheduler triggers authenticate with `Authorization: Bearer <CRON_SECRET>`."""
    try:
        expected = require_cron_secret()
    except ValueError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    supplied = _bearer_token(credentials)
    if not hmac.compare_digest(supplied.encode("utf-8"), expected.encode("utf-8")):
        raise HTTPException(status_code=401, detail="Unauthorized")

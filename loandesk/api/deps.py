from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from loandesk.core.context import set_principal_id
from loandesk.core.permissions import Capability, Role, has_capability
from loandesk.core.security import decode_token
from loandesk.core.settings import settings
from loandesk.db.session import get_db
from loandesk.models import User


@dataclass(frozen=True, slots=True)
class Principal:
    """The authenticated caller, passed explicitly into every service call."""

    user_id: UUID
    role: Role
    ip_address: str | None = None
    user_agent: str | None = None

    @property
    def is_staff(self) -> bool:
        return self.role is not Role.APPLICANT

    def can(self, capability: Capability) -> bool:
        return has_capability(self.role, capability)


oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login", auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def enforce_inactivity(last_active_at: Optional[datetime], now: datetime) -> None:
    timeout = timedelta(minutes=settings.session_timeout_minutes)
    if last_active_at and now - last_active_at > timeout:
        raise _unauthorized("Session expired due to inactivity")


async def get_current_user(
    token: str | None = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    if not token:
        raise _unauthorized("Not authenticated")
    try:
        payload = decode_token(token, expected_type="access")
    except ValueError as exc:
        raise _unauthorized(str(exc)) from exc
    user_sub = payload.get("sub")
    token_version = payload.get("tv")
    if not user_sub:
        raise _unauthorized("Invalid token")

    result = await db.execute(select(User).where(User.id == user_sub))
    user = result.scalar_one_or_none()
    if not user:
        raise _unauthorized("User not found")
    if not user.is_active:
        raise _unauthorized("Inactive user")
    if token_version is not None and user.token_version != token_version:
        raise _unauthorized("Token revoked")

    now = datetime.now(timezone.utc)
    enforce_inactivity(user.last_active_at, now)
    user.last_active_at = now
    db.add(user)
    await db.commit()
    return user


async def require_authenticated_user(current_user: User = Depends(get_current_user)) -> User:
    """Simple guard to require an authenticated user (no role checks)."""
    return current_user


async def get_principal(
    request: Request,
    current_user: User = Depends(require_authenticated_user),
) -> Principal:
    set_principal_id(str(current_user.id))
    return Principal(
        user_id=current_user.id,
        role=Role.normalize(current_user.role),
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )


def require_roles(*roles: Role):
    allowed = frozenset(roles)

    async def dependency(principal: Principal = Depends(get_principal)) -> Principal:
        if principal.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "code": "forbidden",
                    "message": "Your role is not allowed to perform this action",
                    "details": {"role": principal.role.value},
                },
            )
        return principal

    return dependency


def require_capability(capability: Capability):
    async def dependency(principal: Principal = Depends(get_principal)) -> Principal:
        if not principal.can(capability):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Missing capability: {capability.value}",
            )
        return principal

    return dependency

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from loandesk.api import deps
from loandesk.core.errors import Forbidden, InvalidTransition, NotFound, ValidationError
from loandesk.core.permissions import STAFF_ROLES, Role
from loandesk.core.security import get_password_hash
from loandesk.models.loan_application import LoanApplication
from loandesk.models.user import User
from loandesk.schemas.auth import RegisterRequest
from loandesk.schemas.users import StaffCreateRequest, UserUpdateRequest
from loandesk.services.audit import model_snapshot, record_audit_log


logger = logging.getLogger(__name__)


def _normalize_email(email: str) -> str:
    return email.strip().lower()


def _hash_or_422(password: str) -> str:
    try:
        return get_password_hash(password)
    except ValueError as exc:
        raise ValidationError.for_field("password", str(exc)) from exc


async def _ensure_email_available(db: AsyncSession, email: str, *, exclude_id: UUID | None = None) -> None:
    stmt = select(User.id).where(func.lower(User.email) == email)
    if exclude_id is not None:
        stmt = stmt.where(User.id != exclude_id)
    if (await db.execute(stmt)).first() is not None:
        raise ValidationError.for_field("email", "A user with this email already exists")


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    stmt = select(User).where(func.lower(User.email) == _normalize_email(email))
    return (await db.execute(stmt)).scalar_one_or_none()


async def get_user(db: AsyncSession, user_id: UUID) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFound(message="User not found", details={"user_id": str(user_id)})
    return user


async def count_active_super_admins(db: AsyncSession, *, exclude_id: UUID | None = None) -> int:
    stmt = select(func.count()).select_from(User).where(
        User.role == Role.SUPER_ADMIN.value,
        User.is_active.is_(True),
    )
    if exclude_id is not None:
        stmt = stmt.where(User.id != exclude_id)
    return int((await db.execute(stmt)).scalar_one() or 0)


async def register_applicant(db: AsyncSession, payload: RegisterRequest) -> User:
    email = _normalize_email(payload.email)
    await _ensure_email_available(db, email)
    user = User(
        email=email,
        full_name=payload.full_name.strip(),
        phone_number=payload.phone_number,
        address=payload.address,
        hashed_password=_hash_or_422(payload.password),
        role=Role.APPLICANT.value,
        is_active=True,
        email_verified=False,
        token_version=0,
    )
    db.add(user)
    await db.flush()
    await record_audit_log(
        db,
        None,
        actor_id=user.id,
        action="user.registered",
        resource_type="user",
        resource_id=user.id,
        new_value=model_snapshot(user),
    )
    return user


async def create_staff(db: AsyncSession, principal: deps.Principal, payload: StaffCreateRequest) -> User:
    if payload.role not in STAFF_ROLES:
        raise ValidationError.for_field("role", "Staff accounts must be LOAN_OFFICER, APPROVER or SUPER_ADMIN")
    email = _normalize_email(payload.email)
    await _ensure_email_available(db, email)
    user = User(
        email=email,
        full_name=payload.full_name.strip(),
        phone_number=payload.phone_number,
        hashed_password=_hash_or_422(payload.password),
        role=payload.role.value,
        is_active=True,
        email_verified=True,
        token_version=0,
    )
    db.add(user)
    await db.flush()
    await record_audit_log(
        db,
        principal,
        action="user.staff_created",
        resource_type="user",
        resource_id=user.id,
        new_value=model_snapshot(user),
    )
    return user


async def list_users(
    db: AsyncSession,
    *,
    role: Role | None = None,
    is_active: bool | None = None,
    search: str | None = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[User], int]:
    conditions = []
    if role is not None:
        conditions.append(User.role == role.value)
    if is_active is not None:
        conditions.append(User.is_active.is_(is_active))
    if search:
        pattern = f"%{search.strip()}%"
        conditions.append(or_(User.email.ilike(pattern), User.full_name.ilike(pattern)))

    count_stmt = select(func.count()).select_from(User).where(*conditions)
    total = int((await db.execute(count_stmt)).scalar_one() or 0)
    stmt = (
        select(User)
        .where(*conditions)
        .order_by(User.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list((await db.execute(stmt)).scalars().all()), total


async def _guard_last_super_admin(db: AsyncSession, user: User) -> None:
    if await count_active_super_admins(db, exclude_id=user.id) == 0:
        raise InvalidTransition(
            message="The last active super admin cannot be deactivated or demoted",
            code="last_super_admin",
            details={"user_id": str(user.id)},
        )


async def update_user(
    db: AsyncSession,
    principal: deps.Principal,
    user_id: UUID,
    payload: UserUpdateRequest,
) -> User:
    user = await get_user(db, user_id)
    updates = payload.model_dump(exclude_unset=True)
    old_snapshot = model_snapshot(user)

    if "role" in updates and updates["role"] is not None:
        new_role = Role.normalize(updates["role"])
        if user.id == principal.user_id and new_role is not user.role_enum:
            raise Forbidden(message="You cannot change your own role", details={"user_id": str(user.id)})
        updates["role"] = new_role

    is_active_super_admin = user.role_enum is Role.SUPER_ADMIN and user.is_active
    demoting = "role" in updates and updates["role"] not in (None, Role.SUPER_ADMIN)
    deactivating = updates.get("is_active") is False
    if is_active_super_admin and (demoting or deactivating):
        await _guard_last_super_admin(db, user)

    if updates.get("email"):
        email = _normalize_email(updates["email"])
        if email != user.email:
            await _ensure_email_available(db, email, exclude_id=user.id)
        user.email = email
    for field in ("full_name", "phone_number", "address", "email_verified"):
        if field in updates and updates[field] is not None:
            setattr(user, field, updates[field])
    if updates.get("role") is not None:
        user.role = updates["role"].value
    if updates.get("is_active") is not None:
        if user.is_active and not updates["is_active"]:
            # Revoke outstanding tokens.
            user.token_version = (user.token_version or 0) + 1
        user.is_active = updates["is_active"]

    db.add(user)
    await db.flush()
    await record_audit_log(
        db,
        principal,
        action="user.updated",
        resource_type="user",
        resource_id=user.id,
        old_value=old_snapshot,
        new_value=model_snapshot(user),
    )
    return user


async def delete_user(db: AsyncSession, principal: deps.Principal, user_id: UUID) -> None:
    user = await get_user(db, user_id)
    if user.id == principal.user_id:
        raise Forbidden(message="You cannot delete your own account", details={"user_id": str(user.id)})
    if user.role_enum is Role.SUPER_ADMIN:
        raise Forbidden(message="Super admin accounts cannot be deleted", details={"user_id": str(user.id)})

    stmt = select(func.count()).select_from(LoanApplication).where(
        or_(LoanApplication.applicant_id == user.id, LoanApplication.assigned_officer_id == user.id)
    )
    linked = int((await db.execute(stmt)).scalar_one() or 0)
    if linked:
        raise InvalidTransition(
            message="Users with loan applications or loans cannot be deleted; deactivate them instead",
            code="user_has_applications",
            details={"user_id": str(user.id), "applications": linked},
        )

    old_snapshot = model_snapshot(user)
    await db.delete(user)
    await db.flush()
    await record_audit_log(
        db,
        principal,
        action="user.deleted",
        resource_type="user",
        resource_id=user_id,
        old_value=old_snapshot,
    )

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from loandesk.api import deps
from loandesk.core.permissions import Role
from loandesk.db.session import get_db
from loandesk.schemas.common import Pagination
from loandesk.schemas.users import StaffCreateRequest, UserListResponse, UserSummary, UserUpdateRequest
from loandesk.services import users as user_service

router = APIRouter(prefix="/admin", tags=["admin-users"])

_require_admin = deps.require_roles(Role.SUPER_ADMIN)


@router.get("/users", response_model=UserListResponse)
async def list_users(
    role: Role | None = Query(default=None),
    is_active: bool | None = Query(default=None),
    search: str | None = Query(default=None, max_length=255),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    _: deps.Principal = Depends(_require_admin),
) -> UserListResponse:
    items, total = await user_service.list_users(
        db, role=role, is_active=is_active, search=search, page=page, limit=limit
    )
    return UserListResponse(
        items=[UserSummary.model_validate(item) for item in items],
        pagination=Pagination.build(page=page, limit=limit, total=total),
    )


@router.post("/staff", response_model=UserSummary, status_code=status.HTTP_201_CREATED)
async def create_staff(
    payload: StaffCreateRequest,
    db: AsyncSession = Depends(get_db),
    principal: deps.Principal = Depends(_require_admin),
) -> UserSummary:
    user = await user_service.create_staff(db, principal, payload)
    await db.commit()
    await db.refresh(user)
    return UserSummary.model_validate(user)


@router.get("/users/{user_id}", response_model=UserSummary)
async def get_user(
    user_id: UUID,
    db: AsyncSession = Depends(get_db),
    _: deps.Principal = Depends(_require_admin),
) -> UserSummary:
    user = await user_service.get_user(db, user_id)
    return UserSummary.model_validate(user)


@router.patch("/users/{user_id}", response_model=UserSummary)
async def update_user(
    user_id: UUID,
    payload: UserUpdateRequest,
    db: AsyncSession = Depends(get_db),
    principal: deps.Principal = Depends(_require_admin),
) -> UserSummary:
    user = await user_service.update_user(db, principal, user_id, payload)
    await db.commit()
    await db.refresh(user)
    return UserSummary.model_validate(user)


@router.delete("/users/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    user_id: UUID,
    db: AsyncSession = Depends(get_db),
    principal: deps.Principal = Depends(_require_admin),
) -> None:
    await user_service.delete_user(db, principal, user_id)
    await db.commit()
    return None

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from loandesk.api import deps
from loandesk.core.permissions import Role
from loandesk.db.session import get_db
from loandesk.schemas.dashboard import AdminDashboard, ApproverDashboard, OfficerDashboard
from loandesk.services import dashboard

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("/admin", response_model=AdminDashboard, summary="System-wide totals for super admins")
async def get_admin_dashboard(
    _: deps.Principal = Depends(deps.require_roles(Role.SUPER_ADMIN)),
    db: AsyncSession = Depends(get_db),
) -> AdminDashboard:
    return await dashboard.build_admin_dashboard(db)


@router.get("/officer", response_model=OfficerDashboard, summary="Assigned workload for a loan officer")
async def get_officer_dashboard(
    principal: deps.Principal = Depends(deps.require_roles(Role.LOAN_OFFICER)),
    db: AsyncSession = Depends(get_db),
) -> OfficerDashboard:
    return await dashboard.build_officer_dashboard(db, principal)


@router.get("/approver", response_model=ApproverDashboard, summary="Decision queue for approvers")
async def get_approver_dashboard(
    _: deps.Principal = Depends(deps.require_roles(Role.APPROVER, Role.SUPER_ADMIN)),
    db: AsyncSession = Depends(get_db),
) -> ApproverDashboard:
    return await dashboard.build_approver_dashboard(db)

from fastapi import APIRouter

from loandesk.api.v1.routers import (
    admin_users,
    applications,
    audit_logs,
    auth,
    dashboard,
    documents,
    health,
    interest_rates,
    loans,
)

api_router = APIRouter()
api_router.include_router(health.router)
api_router.include_router(auth.router)
api_router.include_router(applications.router)
api_router.include_router(documents.router)
api_router.include_router(loans.router)
api_router.include_router(interest_rates.router)
api_router.include_router(dashboard.router)
api_router.include_router(admin_users.router)
api_router.include_router(audit_logs.router)

__all__ = ["api_router"]

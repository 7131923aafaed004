"""API route aggregation.

All routers registered here get mounted in main.py.

Learn: Role checks are applied at the include_router level using FastAPI's
dependencies parameter. This protects every route in the admin router
without touching individual handlers. Health and auth routers are open;
/auth/me does its own authentication check.
"""

from fastapi import APIRouter, Depends

from gatehouse.api.admin import router as admin_router
from gatehouse.api.auth import router as auth_router
from gatehouse.api.health import router as health_router
from gatehouse.auth.dependencies import require_role

api_router = APIRouter(prefix="/api/v1")

# Open routes (no auth required)
api_router.include_router(health_router, tags=["health"])
api_router.include_router(auth_router, tags=["auth"])

# Admin routes (require the admin role)
api_router.include_router(
    admin_router, tags=["admin"], dependencies=[Depends(require_role("admin"))]
)

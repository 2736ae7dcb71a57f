# haggle/api/router.py

from fastapi import APIRouter
from haggle.api.v1 import bargaining
from haggle.api.v1 import membership
from haggle.api.v1 import billing

# The main router for API v1
router = APIRouter(prefix="/api/v1")

router.include_router(
    membership.router,
    prefix="/memberships",
    tags=["Memberships"]
)
router.include_router(
    billing.router,
    prefix="/billing",
    tags=["Billing"]
)
router.include_router(
    bargaining.router,
    prefix="/bargaining",
    tags=["Bargaining"]
)

"""
API v1 routes.
"""

from fastapi import APIRouter

from drd.api.v1 import assignments, drd_review, notifications, permissions, policies
from drd.api.v1.submissions import ipr_router, research_router

router = APIRouter()

router.include_router(ipr_router, prefix="/ipr", tags=["IPR"])
router.include_router(research_router, prefix="/research", tags=["Research"])
router.include_router(drd_review.router, tags=["DRD Review"])
router.include_router(policies.router, prefix="/policies", tags=["Incentive Policies"])
router.include_router(assignments.router, prefix="/assignments", tags=["Reviewer Assignments"])
router.include_router(permissions.router, prefix="/permissions", tags=["Permissions"])
router.include_router(notifications.router, prefix="/notifications", tags=["Notifications"])

"""API routers for the milestone escrow backend."""
from fastapi import APIRouter

from . import admin, apikeys, disputes, health, milestones, notifications, projects, proposals, users


def get_api_router() -> APIRouter:
    """Return the root API router."""

    api_router = APIRouter()
    api_router.include_router(health.router)
    api_router.include_router(users.router)
    api_router.include_router(apikeys.router)
    api_router.include_router(projects.router)
    api_router.include_router(proposals.router)
    api_router.include_router(milestones.router)
    api_router.include_router(disputes.router)
    api_router.include_router(admin.router)
    api_router.include_router(notifications.router)
    return api_router

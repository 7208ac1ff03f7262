"""
API v1 Router
"""

from fastapi import APIRouter

from . import catalog, conventions, notifications, onboarding, point_services, sector_owners

router = APIRouter()

router.include_router(conventions.router, prefix="/conventions", tags=["Conventions"])
router.include_router(
    onboarding.admin_router, prefix="/admin/points-onboarding", tags=["Onboarding (admin)"]
)
router.include_router(onboarding.public_router, prefix="/onboarding/points", tags=["Onboarding"])
router.include_router(sector_owners.router, prefix="/admin/sector-owners", tags=["Sector owners"])
router.include_router(catalog.sectors_router, prefix="/admin/sectors", tags=["Catalogue"])
router.include_router(catalog.services_router, prefix="/admin/services", tags=["Catalogue"])
router.include_router(catalog.points_router, prefix="/admin/points", tags=["Catalogue"])
router.include_router(point_services.router, prefix="/point/services", tags=["Point services"])
router.include_router(
    notifications.router, prefix="/me/notifications", tags=["Notifications"]
)


@router.get("/", tags=["API"])
async def api_root():
    """API root: version and available endpoints."""
    return {
        "api": "v1",
        "version": "0.1.0",
        "endpoints": [
            "/conventions",
            "/admin/points-onboarding",
            "/onboarding/points",
            "/admin/sector-owners",
            "/admin/sectors",
            "/admin/services",
            "/admin/points",
            "/point/services",
            "/me/notifications",
        ],
    }

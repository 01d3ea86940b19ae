from fastapi import APIRouter

from marketmate.api.v1.endpoints.health import router as health_router
from marketmate.api.v1.endpoints.users import router as users_router
from marketmate.api.v1.endpoints.me import router as me_router
from marketmate.api.v1.endpoints.categories import router as categories_router
from marketmate.api.v1.endpoints.settings import router as settings_router
from marketmate.api.v1.endpoints.listings import router as listings_router
from marketmate.api.v1.endpoints.offers import router as offers_router
from marketmate.api.v1.endpoints.reports import router as reports_router
from marketmate.api.v1.endpoints.notifications import router as notifications_router
from marketmate.api.v1.endpoints.internal import router as internal_router


router = APIRouter(prefix="/v1")
router.include_router(health_router, tags=["health"])
router.include_router(users_router, tags=["users"])
router.include_router(me_router, tags=["me"])
router.include_router(categories_router, tags=["categories"])
router.include_router(settings_router, tags=["settings"])
router.include_router(listings_router, tags=["listings"])
router.include_router(offers_router, tags=["offers"])
router.include_router(reports_router, tags=["moderation"])
router.include_router(notifications_router, tags=["notifications"])
router.include_router(internal_router, tags=["internal"])

from fastapi import APIRouter

from app.api.v1.endpoints.health import router as health_router
from app.api.v1.endpoints.internal import router as internal_router
from app.api.v1.endpoints.me import router as me_router
from app.api.v1.endpoints.listings import router as listings_router
from app.api.v1.endpoints.bids import router as bids_router
from app.api.v1.endpoints.payments import router as payments_router
from app.api.v1.endpoints.disputes import router as disputes_router
from app.api.v1.endpoints.reviews import router as reviews_router
from app.api.v1.endpoints.wallet import router as wallet_router
from app.api.v1.endpoints.notifications import router as notifications_router
from app.api.v1.endpoints.conversations import router as conversations_router


router = APIRouter(prefix="/v1")
router.include_router(health_router, tags=["health"])
router.include_router(internal_router, tags=["internal"])
router.include_router(me_router, tags=["me"])
router.include_router(listings_router, tags=["listings"])
router.include_router(bids_router, tags=["bids"])
router.include_router(payments_router, tags=["payments"])
router.include_router(disputes_router, tags=["disputes"])
router.include_router(reviews_router, tags=["reviews"])
router.include_router(wallet_router, tags=["wallet"])
router.include_router(notifications_router, tags=["notifications"])
router.include_router(conversations_router, tags=["conversations"])

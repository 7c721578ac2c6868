from fastapi import APIRouter
from driver_identity.api.v1 import correlation

router = APIRouter()

router.include_router(correlation.router, prefix="/driver-correlation", tags=["driver-correlation"])

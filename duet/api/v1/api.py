from fastapi import APIRouter

from duet.api.v1.routes_auth import router as auth_router
from duet.api.v1.routes_pairing import router as pairing_router


api_router = APIRouter()

api_router.include_router(auth_router, prefix="/auth", tags=["auth"])
api_router.include_router(pairing_router, prefix="/pairing", tags=["pairing"])

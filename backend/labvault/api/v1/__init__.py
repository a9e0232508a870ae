"""API v1 router that aggregates all sub-routers."""

from fastapi import APIRouter

from labvault.api.v1.samples import router as samples_router
from labvault.api.v1.storage import router as storage_router

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(storage_router)
api_router.include_router(samples_router)

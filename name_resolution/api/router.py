"""API router aggregation."""

from fastapi import APIRouter

from name_resolution.api.health import router as health_router
from name_resolution.api.names import router as names_router

api_router = APIRouter()
api_router.include_router(health_router)
# Name resolution: lookup, review workflow and batch runs
api_router.include_router(names_router)

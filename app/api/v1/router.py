"""API v1 router configuration."""

from fastapi import APIRouter

from app.api.v1.endpoints import (
    auth,
    health,
    locations,
    rooms,
    tables,
    users,
)

api_router = APIRouter()

# Include routers
api_router.include_router(health.router, tags=["Health"])
api_router.include_router(auth.router, prefix="/auth", tags=["Authentication"])
api_router.include_router(users.router, tags=["Users"])
api_router.include_router(locations.router, tags=["Locations"])
api_router.include_router(tables.router, tags=["Tables"])
api_router.include_router(rooms.router, tags=["Rooms"])

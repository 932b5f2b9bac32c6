"""Location endpoints."""

from fastapi import APIRouter

from app.dependencies import CacheManagerDep, CurrentUser, Store
from app.models.locations import LocationDocument
from app.services.location_service import LocationService

router = APIRouter(prefix="/locations", tags=["locations"])


@router.get("", response_model=list[LocationDocument])
async def list_locations(
    store: Store,
    cache_manager: CacheManagerDep,
    current_user: CurrentUser,
):
    """List all locations with their zones and zone maps."""
    return await LocationService(store, cache_manager).get_locations()


@router.get("/{location_id}", response_model=LocationDocument)
async def get_location(
    location_id: str,
    store: Store,
    cache_manager: CacheManagerDep,
    current_user: CurrentUser,
):
    """Get a location by id."""
    return await LocationService(store, cache_manager).get_location(location_id)

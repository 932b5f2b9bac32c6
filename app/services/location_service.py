"""Location service for business logic."""

import structlog

from app.core.exceptions import NotFoundException
from app.core.redis_client import CacheManager
from app.models.locations import LOCATIONS_COLLECTION, LocationDocument, location_path
from app.store import DocumentStore

logger = structlog.get_logger(__name__)

DEFAULT_LOCATIONS: list[LocationDocument] = [
    LocationDocument(
        id="USN-Vestfold",
        name="USN - Campus Vestfold",
        image="/images/USN-Vestfold.jpg",
        zones=["alimento", "amfi"],
        zone_maps={
            "alimento": "/images/alimento-map.png",
            "amfi": "/images/amfi-map.jpeg",
        },
    ),
    LocationDocument(
        id="USN-Drammen",
        name="USN - Campus Drammen",
        image="/images/USN-Drammen.jpg",
        zones=["cafeteria", "library"],
        zone_maps={
            "cafeteria": "/images/drammen-cafeteria-map.png",
            "library": "/images/drammen-library-map.png",
        },
    ),
    LocationDocument(
        id="USN-Ringerike",
        name="USN - Campus Ringerike",
        image="/images/USN-Ringerike.jpg",
        zones=["main", "annex"],
        zone_maps={
            "main": "/images/ringerike-main-map.png",
            "annex": "/images/ringerike-annex-map.png",
        },
    ),
    LocationDocument(
        id="USN-Bo",
        name="USN - Campus Bø",
        image="/images/USN-Bo.jpg",
        zones=["canteen", "student-area"],
        zone_maps={
            "canteen": "/images/bo-canteen-map.png",
            "student-area": "/images/bo-student-area-map.png",
        },
    ),
]


class LocationService:
    """Service for location operations. Locations are read-only at runtime."""

    # Cache TTL in seconds
    LOCATION_CACHE_TTL = 900  # 15 minutes for individual locations
    LOCATION_LIST_CACHE_TTL = 300  # 5 minutes for the list

    LIST_CACHE_KEY = "location:list"

    def __init__(self, store: DocumentStore, cache_manager: CacheManager | None = None):
        """Initialize service with a document store and optional cache manager."""
        self.store = store
        self.cache = cache_manager

    @staticmethod
    def _get_location_cache_key(location_id: str) -> str:
        """Generate cache key for location."""
        return f"location:{location_id}"

    async def get_locations(self) -> list[LocationDocument]:
        """Get all locations ordered by name."""
        if self.cache:
            cached = self.cache.get_json(self.LIST_CACHE_KEY)
            if cached:
                return [LocationDocument.model_validate(item) for item in cached]

        documents = await self.store.query(LOCATIONS_COLLECTION, order_by="name")
        locations = [LocationDocument.from_document(document) for document in documents]

        if self.cache:
            self.cache.set_json(
                self.LIST_CACHE_KEY,
                [location.model_dump(by_alias=True) for location in locations],
                ttl=self.LOCATION_LIST_CACHE_TTL,
            )

        return locations

    async def get_location(self, location_id: str) -> LocationDocument:
        """Get location by id with caching."""
        if self.cache:
            cached = self.cache.get_json(self._get_location_cache_key(location_id))
            if cached:
                return LocationDocument.model_validate(cached)

        document = await self.store.get(location_path(location_id))
        if document is None:
            raise NotFoundException("Location not found")

        location = LocationDocument.from_document(document)
        if self.cache:
            self.cache.set_json(
                self._get_location_cache_key(location_id),
                location.model_dump(by_alias=True),
                ttl=self.LOCATION_CACHE_TTL,
            )
        return location

    async def seed_locations(
        self, locations: list[LocationDocument] | None = None
    ) -> list[str]:
        """
        Add the locations that do not exist yet.

        Existing locations are left untouched.

        Returns:
            Ids of the locations that were added
        """
        added = []
        for location in locations or DEFAULT_LOCATIONS:
            path = location_path(location.id)
            if await self.store.get(path) is not None:
                logger.info("location_exists", location_id=location.id)
                continue
            await self.store.set(path, location.to_document())
            added.append(location.id)
            logger.info("location_added", location_id=location.id, name=location.name)

        if added and self.cache:
            self.cache.delete(self.LIST_CACHE_KEY)
        return added

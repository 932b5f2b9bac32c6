"""Location document stored at ``locations/{id}``."""

from pydantic import BaseModel, ConfigDict, Field

from app.store import Document

LOCATIONS_COLLECTION = "locations"


def location_path(location_id: str) -> str:
    """Document path of a location."""
    return f"{LOCATIONS_COLLECTION}/{location_id}"


class LocationDocument(BaseModel):
    """A physical venue split into zones, each with its own map image."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = ""
    name: str
    image: str | None = None
    zones: list[str] = Field(default_factory=list)
    zone_maps: dict[str, str] = Field(default_factory=dict, alias="zoneMaps")

    @classmethod
    def from_document(cls, document: Document) -> "LocationDocument":
        return cls.model_validate({**document.data, "id": document.id})

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True, exclude={"id"})

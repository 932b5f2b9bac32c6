"""User document stored at ``users/{uid}``."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from app.store import Document

USERS_COLLECTION = "users"


def user_path(user_id: str) -> str:
    """Document path of a user."""
    return f"{USERS_COLLECTION}/{user_id}"


class CurrentTable(BaseModel):
    """Pointer to the single table a user is seated at."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    location_id: str = Field(..., alias="locationId")
    location_name: str = Field(default="", alias="locationName")
    title: str = ""
    joined_at: datetime | None = Field(default=None, alias="joinedAt")
    is_creator: bool = Field(default=False, alias="isCreator")


class TableHistoryEntry(BaseModel):
    """A past table membership, one per table id."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    title: str = "Untitled Table"
    location_id: str = Field(default="", alias="locationId")
    location_name: str = Field(default="", alias="locationName")
    date: datetime | None = None
    role: str | None = None
    ended_by: str | None = Field(default=None, alias="endedBy")


class UserDocument(BaseModel):
    """User profile and table membership state."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(default="", exclude=True)
    display_name: str | None = Field(default=None, alias="displayName")
    email: str | None = None
    current_table: CurrentTable | None = Field(default=None, alias="currentTable")
    table_history: list[TableHistoryEntry] = Field(default_factory=list, alias="tableHistory")
    # Display counters; nothing in the lifecycle increments them.
    tables_joined: int = Field(default=0, alias="tablesJoined")
    tables_created: int = Field(default=0, alias="tablesCreated")
    user_level: int = Field(default=1, alias="userLevel")
    created_at: datetime | None = Field(default=None, alias="createdAt")

    @classmethod
    def from_document(cls, document: Document) -> "UserDocument":
        return cls.model_validate({**document.data, "id": document.id})

    def has_history(self, table_id: str) -> bool:
        return any(entry.id == table_id for entry in self.table_history)

    def is_seated_at(self, table_id: str) -> bool:
        return self.current_table is not None and self.current_table.id == table_id

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True)

"""Table document stored at ``locations/{location_id}/tables/{table_id}``."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from app.models.locations import location_path
from app.store import Document


def tables_collection(location_id: str) -> str:
    """Collection path of the tables of a location."""
    return f"{location_path(location_id)}/tables"


def table_path(location_id: str, table_id: str) -> str:
    """Document path of a table."""
    return f"{tables_collection(location_id)}/{table_id}"


class TableStatus(str, Enum):
    """Table status. ``inactive`` is terminal."""

    ACTIVE = "active"
    INACTIVE = "inactive"


class ParticipantRole(str, Enum):
    """Role of a user at a table."""

    CREATOR = "creator"
    PARTICIPANT = "participant"


class TablePosition(BaseModel):
    """Pin position on the zone map, in percent of width and height."""

    left: float
    top: float


class ParticipationEntry(BaseModel):
    """One user's seat record at a table."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", use_enum_values=True)

    user_id: str = Field(..., alias="userId")
    display_name: str = Field(default="User", alias="displayName")
    joined_at: datetime | None = Field(default=None, alias="joinedAt")
    leave_at: datetime | None = Field(default=None, alias="leaveAt")
    role: ParticipantRole = ParticipantRole.PARTICIPANT
    status: TableStatus = TableStatus.ACTIVE


class TableDocument(BaseModel):
    """A bounded-capacity meetup table."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", use_enum_values=True)

    id: str = ""
    title: str
    description: str = ""
    seats: int
    available_seats: int = Field(..., alias="availableSeats")
    zone: str | None = None
    position: TablePosition | None = None
    location_id: str = Field(..., alias="locationId")
    location_name: str = Field(default="", alias="locationName")
    created_at: datetime | None = Field(default=None, alias="createdAt")
    status: TableStatus = TableStatus.ACTIVE
    creator_id: str = Field(..., alias="creatorID")
    created_by: str | None = Field(default=None, alias="createdBy")
    joined_users: list[str] = Field(default_factory=list, alias="joinedUsers")
    participation_history: list[ParticipationEntry] = Field(
        default_factory=list, alias="participationHistory"
    )
    conversation_prompt: str | None = Field(default=None, alias="conversationPrompt")
    prompt_updated_at: datetime | None = Field(default=None, alias="promptUpdatedAt")
    ended_at: datetime | None = Field(default=None, alias="endedAt")
    ended_by: str | None = Field(default=None, alias="endedBy")
    end_reason: str | None = Field(default=None, alias="endReason")
    notify_participants: bool = Field(default=False, alias="notifyParticipants")
    participants_to_notify: list[str] = Field(default_factory=list, alias="participantsToNotify")

    @classmethod
    def from_document(cls, document: Document) -> "TableDocument":
        return cls.model_validate({**document.data, "id": document.id})

    @property
    def is_active(self) -> bool:
        return self.status == TableStatus.ACTIVE

    def is_creator(self, user_id: str) -> bool:
        return user_id in (self.creator_id, self.created_by)

    def should_notify(self, user_id: str) -> bool:
        return self.notify_participants and user_id in self.participants_to_notify

    def history_to_document(self) -> list[dict]:
        return [entry.model_dump(by_alias=True) for entry in self.participation_history]

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True, exclude={"id"})

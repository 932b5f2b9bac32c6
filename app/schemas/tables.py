"""Table schemas for request/response validation."""

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.config import settings
from app.models.tables import TableDocument


class TablePositionIn(BaseModel):
    """Map pin position; values outside 0-100 are clamped onto the map."""

    left: float
    top: float

    @field_validator("left", "top")
    @classmethod
    def clamp_percent(cls, v: float) -> float:
        """Keep the pin inside the map."""
        return max(0.0, min(100.0, v))


class TableCreate(BaseModel):
    """Schema for creating a table."""

    title: str = Field(..., min_length=1, max_length=100)
    description: str = Field(default="", max_length=500)
    seats: int = Field(..., ge=settings.min_table_seats, le=settings.max_table_seats)
    zone: str = Field(..., min_length=1)
    position: TablePositionIn

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str) -> str:
        """Reject whitespace-only titles."""
        v = v.strip()
        if not v:
            raise ValueError("Title must not be blank")
        return v


class PromptUpdate(BaseModel):
    """Conversation prompt set by the table creator."""

    prompt: str = Field(..., min_length=1, max_length=settings.max_prompt_length)


class LeaveRequest(BaseModel):
    """Optional details sent when leaving a table."""

    is_creator: bool | None = None
    reason: str | None = Field(default=None, max_length=200)


class LeaveResponse(BaseModel):
    """Outcome of a leave call."""

    table_id: str
    ended_table: bool = False
    seat_released: bool = False
    redirect_to: str = "/home"


class TableRoomPayload(BaseModel):
    """Navigation state the ``/table-room`` route needs."""

    model_config = ConfigDict(populate_by_name=True)

    table: TableDocument
    is_creator: bool = Field(..., alias="isCreator")


class TableStatusResponse(BaseModel):
    """Whether the user is currently seated at a table."""

    user_id: str
    in_table: bool


class Participant(BaseModel):
    """Roster entry shown in a table room."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    display_name: str | None = Field(default=None, alias="displayName")
    is_creator: bool = Field(default=False, alias="isCreator")

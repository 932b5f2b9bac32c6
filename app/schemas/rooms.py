"""Table room events streamed over the room WebSocket."""

from enum import Enum
from typing import Any

from pydantic import BaseModel

from app.models.tables import TableDocument
from app.schemas.tables import Participant


class Route(str, Enum):
    """Client routes a room may redirect to."""

    LANDING = "/landing"
    AUTH = "/auth"
    HOME = "/home"
    PROFILE = "/profile"
    TABLE_ROOM = "/table-room"


class RoomState(str, Enum):
    """Room session states."""

    CONNECTING = "connecting"
    ACTIVE = "active"
    ENDING = "ending"
    DELETED = "deleted"
    ERROR = "error"
    CLOSED = "closed"


TERMINAL_STATES = frozenset({RoomState.ENDING, RoomState.DELETED, RoomState.ERROR, RoomState.CLOSED})


class RoomEventType(str, Enum):
    """Kinds of room events."""

    TABLE_UPDATED = "table_updated"
    PROMPT_UPDATED = "prompt_updated"
    ROSTER_UPDATED = "roster_updated"
    TABLE_ENDED = "table_ended"
    TABLE_DELETED = "table_deleted"
    TABLE_CLOSED = "table_closed"
    ERROR = "error"


class Redirect(BaseModel):
    """Where the client should navigate, and after how long."""

    to: Route
    after_seconds: float = 0


class RoomEvent(BaseModel):
    """A single message from a room session."""

    type: RoomEventType
    state: RoomState
    table: TableDocument | None = None
    conversation_prompt: str | None = None
    participants: list[Participant] | None = None
    message: str | None = None
    redirect: Redirect | None = None

    def to_message(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

"""Document models."""

from app.models.locations import LocationDocument, location_path
from app.models.tables import (
    ParticipantRole,
    ParticipationEntry,
    TableDocument,
    TablePosition,
    TableStatus,
    table_path,
    tables_collection,
)
from app.models.users import (
    USERS_COLLECTION,
    CurrentTable,
    TableHistoryEntry,
    UserDocument,
    user_path,
)

__all__ = [
    "USERS_COLLECTION",
    "CurrentTable",
    "LocationDocument",
    "ParticipantRole",
    "ParticipationEntry",
    "TableDocument",
    "TableHistoryEntry",
    "TablePosition",
    "TableStatus",
    "UserDocument",
    "location_path",
    "table_path",
    "tables_collection",
    "user_path",
]

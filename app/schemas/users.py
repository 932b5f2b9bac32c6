"""User schemas for request/response validation."""

from pydantic import BaseModel, ConfigDict, Field

from app.models.users import CurrentTable, TableHistoryEntry


class UserUpdate(BaseModel):
    """Schema for updating the user profile."""

    display_name: str | None = Field(None, min_length=1, max_length=50)


class UserResponse(BaseModel):
    """Profile of the signed-in user."""

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    id: str
    display_name: str | None = Field(default=None, alias="displayName")
    email: str | None = None
    current_table: CurrentTable | None = Field(default=None, alias="currentTable")
    table_history: list[TableHistoryEntry] = Field(default_factory=list, alias="tableHistory")
    tables_joined: int = Field(default=0, alias="tablesJoined")
    tables_created: int = Field(default=0, alias="tablesCreated")
    user_level: int = Field(default=1, alias="userLevel")

"""Table endpoints, nested under their location."""

from fastapi import APIRouter, Body, status

from app.dependencies import CurrentUser, TableServiceDep
from app.models.tables import TableDocument
from app.schemas.tables import (
    LeaveRequest,
    LeaveResponse,
    Participant,
    PromptUpdate,
    TableCreate,
    TableRoomPayload,
)

router = APIRouter(prefix="/locations/{location_id}/tables", tags=["tables"])


@router.get("", response_model=list[TableDocument])
async def list_tables(location_id: str, table_service: TableServiceDep, current_user: CurrentUser):
    """Active tables of a location, newest first."""
    return await table_service.list_active_tables(location_id)


@router.post("", response_model=TableRoomPayload, status_code=status.HTTP_201_CREATED)
async def create_table(
    location_id: str,
    table_data: TableCreate,
    table_service: TableServiceDep,
    current_user: CurrentUser,
):
    """
    Create a table and seat the caller as its creator.

    Raises:
        AlreadyInTable: The caller is seated at another table
    """
    table = await table_service.create_table(current_user, location_id, table_data)
    return TableRoomPayload(table=table, is_creator=True)


@router.get("/{table_id}", response_model=TableDocument)
async def get_table(
    location_id: str,
    table_id: str,
    table_service: TableServiceDep,
    current_user: CurrentUser,
):
    """Get a table by id."""
    return await table_service.get_table(location_id, table_id)


@router.post("/{table_id}/join", response_model=TableRoomPayload)
async def join_table(
    location_id: str,
    table_id: str,
    table_service: TableServiceDep,
    current_user: CurrentUser,
):
    """
    Take a seat at a table.

    Raises:
        AlreadyInTable, TableNotFound, TableInactive, TableFull
    """
    table = await table_service.join_table(current_user, location_id, table_id)
    return TableRoomPayload(table=table, is_creator=False)


@router.post("/{table_id}/leave", response_model=LeaveResponse)
async def leave_table(
    location_id: str,
    table_id: str,
    table_service: TableServiceDep,
    current_user: CurrentUser,
    leave_data: LeaveRequest | None = Body(None),
):
    """Leave a table. When the creator leaves, the table ends for everyone."""
    leave_data = leave_data or LeaveRequest()
    return await table_service.leave_table(
        current_user,
        location_id,
        table_id,
        is_creator=leave_data.is_creator,
        reason=leave_data.reason,
    )


@router.put("/{table_id}/prompt", response_model=TableDocument)
async def update_prompt(
    location_id: str,
    table_id: str,
    prompt_data: PromptUpdate,
    table_service: TableServiceDep,
    current_user: CurrentUser,
):
    """Set the conversation prompt (creator only)."""
    return await table_service.update_conversation_prompt(
        current_user, location_id, table_id, prompt_data.prompt
    )


@router.get("/{table_id}/participants", response_model=list[Participant])
async def get_participants(
    location_id: str,
    table_id: str,
    table_service: TableServiceDep,
    current_user: CurrentUser,
):
    """Profiles of the users seated at a table."""
    table = await table_service.get_table(location_id, table_id)
    return await table_service.get_participants(table)

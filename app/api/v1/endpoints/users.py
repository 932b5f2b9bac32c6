"""User endpoints."""

from fastapi import APIRouter, HTTPException, Query, status

from app.core.exceptions import NotFoundException
from app.dependencies import CacheManagerDep, CurrentUser, Store, TableServiceDep
from app.models.users import UserDocument
from app.schemas.rooms import Route
from app.schemas.tables import LeaveResponse, TableRoomPayload, TableStatusResponse
from app.schemas.users import UserResponse, UserUpdate
from app.services.auth_service import AuthService
from app.services.user_service import UserService

router = APIRouter(prefix="/users", tags=["users"])

PROFILE_LEAVE_REASON = "Left from profile page"


def _to_response(user: UserDocument) -> UserResponse:
    return UserResponse.model_validate({**user.model_dump(), "id": user.id})


@router.get("/me", response_model=UserResponse)
async def get_current_user_profile(store: Store, current_user: CurrentUser):
    """Get current user's profile, including the current table and table history."""
    user = await UserService(store).get_user(current_user.uid)

    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found",
        )

    return _to_response(user)


@router.patch("/me", response_model=UserResponse)
async def update_current_user_profile(
    user_data: UserUpdate,
    store: Store,
    current_user: CurrentUser,
):
    """Update current user's profile."""
    user = await UserService(store).update_user(current_user.uid, user_data)

    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found",
        )

    return _to_response(user)


@router.delete("/me", status_code=status.HTTP_204_NO_CONTENT)
async def delete_current_user(
    store: Store,
    cache_manager: CacheManagerDep,
    table_service: TableServiceDep,
    current_user: CurrentUser,
) -> None:
    """Delete the current user's account, leaving their table first."""
    auth_service = AuthService(cache_manager, UserService(store))
    await auth_service.delete_account(current_user, table_service)


@router.get("/me/table-status", response_model=TableStatusResponse)
async def get_table_status(
    table_service: TableServiceDep,
    current_user: CurrentUser,
    force: bool = Query(False, description="Bypass the status cache"),
):
    """Whether the current user is seated at a table."""
    in_table = await table_service.check_user_table_status(current_user.uid, force_check=force)
    return TableStatusResponse(user_id=current_user.uid, in_table=in_table)


@router.post("/me/current-table/rejoin", response_model=TableRoomPayload)
async def rejoin_current_table(table_service: TableServiceDep, current_user: CurrentUser):
    """
    Return to the table the user is seated at.

    A pointer to a deleted or ended table is cleared and reported as an error.
    """
    table = await table_service.rejoin_current_table(current_user)
    return TableRoomPayload(table=table, is_creator=table.is_creator(current_user.uid))


@router.post("/me/current-table/leave", response_model=LeaveResponse)
async def leave_current_table(
    store: Store,
    table_service: TableServiceDep,
    current_user: CurrentUser,
):
    """Leave the current table from the profile page."""
    user = await UserService(store).get_user(current_user.uid)
    if user is None or user.current_table is None:
        raise NotFoundException("You are not seated at a table")

    result = await table_service.leave_table(
        current_user,
        user.current_table.location_id,
        user.current_table.id,
        reason=PROFILE_LEAVE_REASON,
    )
    result.redirect_to = Route.PROFILE.value
    return result

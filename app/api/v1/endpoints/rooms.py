"""Table room WebSocket."""

import asyncio

import structlog
from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status

from app.config import settings
from app.dependencies import Store, TableServiceDep, user_from_token
from app.schemas.rooms import Redirect, RoomEvent, RoomEventType, RoomState, Route
from app.services.room_sync import RoomSession

logger = structlog.get_logger(__name__)

router = APIRouter()


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    # Clients have nothing to say; incoming frames are read only to notice the close.
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        return


@router.websocket("/locations/{location_id}/tables/{table_id}/room")
async def table_room(
    websocket: WebSocket,
    location_id: str,
    table_id: str,
    store: Store,
    table_service: TableServiceDep,
    token: str | None = Query(None),
) -> None:
    """
    Stream room events for a table until the session ends.

    Authenticates with an access token in the ``token`` query parameter.
    The socket is closed by the server once the session reaches a terminal
    state; events carry the redirect the client should follow.
    """
    await websocket.accept()

    user = user_from_token(token)
    if user is None:
        event = RoomEvent(
            type=RoomEventType.ERROR,
            state=RoomState.ERROR,
            message="Authentication required. Please log in.",
            redirect=Redirect(to=Route.AUTH, after_seconds=settings.room_deleted_redirect_seconds),
        )
        await websocket.send_json(event.to_message())
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    session = RoomSession(store, table_service, user.uid, location_id, table_id)

    async def _forward() -> None:
        async for event in session.events():
            await websocket.send_json(event.to_message())

    forward = asyncio.create_task(_forward())
    receive = asyncio.create_task(_wait_for_disconnect(websocket))
    try:
        done, _ = await asyncio.wait({forward, receive}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in (forward, receive):
            task.cancel()
        await asyncio.gather(forward, receive, return_exceptions=True)

    error = forward.exception() if forward in done else None
    if forward in done and error is None:
        await websocket.close()
    else:
        session.close()
        if error is not None:
            logger.warning("room_stream_failed", table_id=table_id, error=str(error))

    logger.info(
        "room_closed",
        table_id=table_id,
        user_id=user.uid,
        state=session.state.value,
    )

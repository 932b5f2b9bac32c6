"""Room sync: follows one table's document stream for one user.

A session walks ``connecting -> active -> ending | deleted | error``, or
``closed`` when the creator, or a user who never sat at the table, sees it
end. Terminal states stop the stream; the subscription is released on every
exit path.
"""

from collections.abc import AsyncIterator

import structlog

from app.config import settings
from app.models.tables import TableDocument, table_path
from app.models.users import UserDocument, user_path
from app.schemas.rooms import (
    TERMINAL_STATES,
    Redirect,
    RoomEvent,
    RoomEventType,
    RoomState,
    Route,
)
from app.schemas.tables import Participant
from app.services.table_service import TableService
from app.store import Document, DocumentStore

logger = structlog.get_logger(__name__)


class RoomSession:
    """Real-time view of a table room for a single user."""

    def __init__(
        self,
        store: DocumentStore,
        table_service: TableService,
        user_id: str,
        location_id: str,
        table_id: str,
        is_creator: bool | None = None,
    ):
        """
        Initialize a room session.

        Args:
            store: Document store to subscribe to
            table_service: Used for roster lookups and end acknowledgement
            user_id: User viewing the room
            location_id: Location of the table
            table_id: Table to follow
            is_creator: Whether the user created the table; read from the
                table record when omitted
        """
        self.store = store
        self.table_service = table_service
        self.user_id = user_id
        self.location_id = location_id
        self.table_id = table_id
        self.is_creator = is_creator
        self.state = RoomState.CONNECTING
        self.table: TableDocument | None = None
        self._end_handled = False

    @property
    def path(self) -> str:
        return table_path(self.location_id, self.table_id)

    @property
    def finished(self) -> bool:
        return self.state in TERMINAL_STATES

    def _event(self, event_type: RoomEventType, **fields) -> RoomEvent:
        return RoomEvent(type=event_type, state=self.state, **fields)

    async def events(self) -> AsyncIterator[RoomEvent]:
        """
        Stream room events until the session reaches a terminal state.

        The one-shot fetch only seeds the view; the subscription is
        authoritative from its first delivery on.
        """
        logger.info("room_session_started", table_id=self.table_id, user_id=self.user_id)
        try:
            initial = await self.store.get(self.path)
            async for event in self._apply(initial):
                yield event
            if self.finished:
                return

            async with self.store.subscribe(self.path) as subscription:
                async for snapshot in subscription:
                    async for event in self._apply(snapshot):
                        yield event
                    if self.finished:
                        return
        except Exception as e:
            yield self._fail(e)
        finally:
            logger.info(
                "room_session_stopped",
                table_id=self.table_id,
                user_id=self.user_id,
                state=self.state.value,
            )

    def close(self) -> None:
        """Mark the session closed after the client went away."""
        if not self.finished:
            self.state = RoomState.CLOSED

    def _fail(self, error: Exception) -> RoomEvent:
        self.state = RoomState.ERROR
        logger.warning(
            "room_subscription_error",
            table_id=self.table_id,
            user_id=self.user_id,
            error=str(error),
        )
        return self._event(
            RoomEventType.ERROR,
            message=f"Error connecting to the table: {error}",
            redirect=Redirect(to=Route.HOME, after_seconds=settings.room_deleted_redirect_seconds),
        )

    async def _apply(self, snapshot: Document | None) -> AsyncIterator[RoomEvent]:
        if snapshot is None:
            self.state = RoomState.DELETED
            logger.info("room_table_deleted", table_id=self.table_id, user_id=self.user_id)
            yield self._event(
                RoomEventType.TABLE_DELETED,
                message="This table has been deleted.",
                redirect=Redirect(
                    to=Route.HOME, after_seconds=settings.room_deleted_redirect_seconds
                ),
            )
            return

        table = TableDocument.from_document(snapshot)
        previous = self.table
        self.table = table
        if self.is_creator is None:
            self.is_creator = table.is_creator(self.user_id)
        if self.state == RoomState.CONNECTING:
            self.state = RoomState.ACTIVE

        if previous is None or previous != table:
            yield self._event(RoomEventType.TABLE_UPDATED, table=table)

        if table.conversation_prompt and (
            previous is None or previous.conversation_prompt != table.conversation_prompt
        ):
            yield self._event(
                RoomEventType.PROMPT_UPDATED, conversation_prompt=table.conversation_prompt
            )

        if table.joined_users and (previous is None or previous.joined_users != table.joined_users):
            roster = await self._roster(table)
            if roster is not None:
                yield self._event(RoomEventType.ROSTER_UPDATED, participants=roster)

        ending = await self._check_end(table)
        if ending is not None:
            yield ending

    async def _roster(self, table: TableDocument) -> list[Participant] | None:
        # The roster is a plain lookup; a failed read keeps the last one shown.
        try:
            return await self.table_service.get_participants(table)
        except Exception as e:
            logger.warning("room_roster_lookup_failed", table_id=table.id, error=str(e))
            return None

    async def _was_seated(self, table: TableDocument) -> bool:
        if self.user_id in table.joined_users or self.user_id in table.participants_to_notify:
            return True
        user_doc = await self.store.get(user_path(self.user_id))
        if user_doc is None:
            return False
        return UserDocument.from_document(user_doc).is_seated_at(table.id)

    async def _check_end(self, table: TableDocument) -> RoomEvent | None:
        if self._end_handled:
            return None

        if self.is_creator:
            if table.is_active:
                return None
            self._end_handled = True
            self.state = RoomState.CLOSED
            return self._event(
                RoomEventType.TABLE_CLOSED,
                table=table,
                redirect=Redirect(to=Route.HOME),
            )

        if not table.is_active:
            delay = settings.room_inactive_redirect_seconds
        elif table.should_notify(self.user_id):
            delay = settings.room_notified_redirect_seconds
        else:
            return None

        self._end_handled = True
        if not await self._was_seated(table):
            # Onlookers get no history entry for a table they never sat at.
            self.state = RoomState.CLOSED
            logger.info("room_table_ended_for_onlooker", table_id=table.id, user_id=self.user_id)
            return self._event(
                RoomEventType.TABLE_CLOSED,
                table=table,
                message="This table has ended.",
                redirect=Redirect(to=Route.HOME),
            )

        self.state = RoomState.ENDING
        try:
            await self.table_service.acknowledge_table_end(self.user_id, table)
        except Exception as e:
            logger.warning(
                "room_end_cleanup_failed",
                table_id=table.id,
                user_id=self.user_id,
                error=str(e),
            )
        logger.info("room_table_ended", table_id=table.id, user_id=self.user_id)
        return self._event(
            RoomEventType.TABLE_ENDED,
            table=table,
            message="The table creator has ended this table.",
            redirect=Redirect(to=Route.HOME, after_seconds=delay),
        )

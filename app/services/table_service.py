"""Table lifecycle service.

Every operation that touches both a table and a user record commits them in
one store transaction, so a table never exists without its creator's
``currentTable`` pointer and ``availableSeats`` never drops below zero, even
under concurrent joins.
"""

from collections.abc import Callable
from datetime import datetime
from enum import Enum

import structlog

from app.config import settings
from app.core.exceptions import (
    AlreadyInTable,
    ForbiddenException,
    MissingLocationInfo,
    NotAuthenticated,
    NotFoundException,
    TableFull,
    TableInactive,
    TableNotFound,
    ValidationException,
)
from app.core.redis_client import TableStatusCache, utcnow
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
from app.schemas.auth import AuthUser
from app.schemas.tables import LeaveResponse, Participant, TableCreate
from app.store import ArrayRemove, ArrayUnion, DocumentStore, Increment, Transaction

logger = structlog.get_logger(__name__)

DEFAULT_CREATOR_END_REASON = "Creator left the table"
ENDED_BY_CREATOR = "creator"


class ReconcileOutcome(str, Enum):
    """Result of checking a user's ``currentTable`` pointer."""

    NO_TABLE = "no_table"
    VALID = "valid"
    CLEARED_MISSING = "cleared_missing"
    CLEARED_INACTIVE = "cleared_inactive"
    CLEARED_ORPHAN = "cleared_orphan"


def _require_user(user: AuthUser | None) -> str:
    if user is None or not user.uid:
        raise NotAuthenticated()
    return user.uid


def _history_entry(
    table: TableDocument,
    role: ParticipantRole,
    now: datetime,
    ended_by: str | None = None,
) -> dict:
    entry = TableHistoryEntry(
        id=table.id,
        title=table.title or "Untitled Table",
        location_id=table.location_id,
        location_name=table.location_name,
        date=now,
        role=role.value,
        ended_by=ended_by,
    )
    return entry.model_dump(by_alias=True)


class TableService:
    """Create, join, leave and end tables."""

    def __init__(
        self,
        store: DocumentStore,
        status_cache: TableStatusCache | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """Initialize service with a document store and optional status cache."""
        self.store = store
        self.status_cache = status_cache
        self.clock = clock

    def _remember_status(self, user_id: str, in_table: bool) -> None:
        if self.status_cache:
            self.status_cache.set(user_id, in_table)

    def _forget_status(self, user_id: str) -> None:
        if self.status_cache:
            self.status_cache.invalidate(user_id)

    async def check_user_table_status(self, user_id: str | None, force_check: bool = False) -> bool:
        """
        Check whether a user is seated at a table.

        Args:
            user_id: User to check
            force_check: Bypass the cache and read the user document

        Returns:
            True if the user's ``currentTable`` pointer is set
        """
        if not user_id:
            return False

        if not force_check and self.status_cache:
            cached = self.status_cache.get(user_id)
            if cached is not None:
                return cached

        document = await self.store.get(user_path(user_id))
        in_table = bool(document and document.data.get("currentTable"))
        self._remember_status(user_id, in_table)
        return in_table

    async def get_location(self, location_id: str) -> LocationDocument:
        document = await self.store.get(location_path(location_id))
        if document is None:
            raise NotFoundException("Location not found")
        return LocationDocument.from_document(document)

    async def get_table(self, location_id: str, table_id: str) -> TableDocument:
        """Fetch a table or raise ``TableNotFound``."""
        if not location_id:
            raise MissingLocationInfo()
        document = await self.store.get(table_path(location_id, table_id))
        if document is None:
            raise TableNotFound()
        return TableDocument.from_document(document)

    async def list_active_tables(self, location_id: str) -> list[TableDocument]:
        """Active tables of a location, newest first."""
        documents = await self.store.query(
            tables_collection(location_id),
            filters=[("status", "==", TableStatus.ACTIVE.value)],
            order_by="createdAt",
            descending=True,
        )
        return [TableDocument.from_document(document) for document in documents]

    async def get_participants(self, table: TableDocument) -> list[Participant]:
        """Profiles of the users currently seated, in seating order."""
        documents = await self.store.get_all(USERS_COLLECTION, table.joined_users)
        by_id = {document.id: UserDocument.from_document(document) for document in documents}
        return [
            Participant(
                id=user_id,
                display_name=by_id[user_id].display_name,
                is_creator=table.is_creator(user_id),
            )
            for user_id in table.joined_users
            if user_id in by_id
        ]

    async def create_table(
        self,
        user: AuthUser | None,
        location_id: str | None,
        data: TableCreate,
    ) -> TableDocument:
        """
        Create a table with the creator seated in it.

        Raises:
            NotAuthenticated: No signed-in user
            MissingLocationInfo: No location selected
            NotFoundException: Location does not exist
            ValidationException: Zone is not part of the location
            AlreadyInTable: The creator is already seated somewhere
        """
        uid = _require_user(user)
        if not location_id:
            raise MissingLocationInfo("No location selected. Please select a location first.")

        location = await self.get_location(location_id)
        if location.zones and data.zone not in location.zones:
            raise ValidationException(f"Unknown zone '{data.zone}' for {location.name}")

        # Cheap cached answer first; the transaction below re-reads the pointer.
        if await self.check_user_table_status(uid):
            raise AlreadyInTable()

        now = self.clock()
        table = TableDocument(
            id=self.store.new_id(tables_collection(location_id)),
            title=data.title,
            description=data.description,
            seats=data.seats,
            available_seats=data.seats - 1,
            zone=data.zone,
            position=TablePosition(left=data.position.left, top=data.position.top),
            location_id=location_id,
            location_name=location.name,
            created_at=now,
            status=TableStatus.ACTIVE,
            creator_id=uid,
            created_by=uid,
            joined_users=[uid],
            participation_history=[
                ParticipationEntry(
                    user_id=uid,
                    display_name=user.display_name or "Table Creator",
                    joined_at=now,
                    leave_at=None,
                    role=ParticipantRole.CREATOR,
                    status=TableStatus.ACTIVE,
                )
            ],
        )
        pointer = CurrentTable(
            id=table.id,
            location_id=location_id,
            location_name=location.name,
            title=table.title,
            joined_at=now,
            is_creator=True,
        )

        async def _create(transaction: Transaction) -> None:
            user_doc = await transaction.get(user_path(uid))
            if user_doc and user_doc.data.get("currentTable"):
                raise AlreadyInTable()
            transaction.create(table_path(location_id, table.id), table.to_document())
            transaction.set(
                user_path(uid), {"currentTable": pointer.model_dump(by_alias=True)}, merge=True
            )

        try:
            await self.store.run_transaction(_create)
        except AlreadyInTable:
            self._remember_status(uid, True)
            raise

        self._remember_status(uid, True)
        logger.info(
            "table_created",
            table_id=table.id,
            location_id=location_id,
            creator_id=uid,
            seats=table.seats,
        )
        return table

    async def join_table(
        self,
        user: AuthUser | None,
        location_id: str | None,
        table_id: str,
    ) -> TableDocument:
        """
        Take a seat at a table.

        Preconditions are checked in order and the first failure wins. A
        failed precondition writes nothing.

        Raises:
            NotAuthenticated, AlreadyInTable, MissingLocationInfo,
            TableNotFound, TableInactive, TableFull
        """
        uid = _require_user(user)
        display_name = user.display_name or "User"

        async def _join(transaction: Transaction) -> TableDocument:
            user_doc = await transaction.get(user_path(uid))
            if user_doc and user_doc.data.get("currentTable"):
                raise AlreadyInTable()
            if not location_id:
                raise MissingLocationInfo()

            path = table_path(location_id, table_id)
            table_doc = await transaction.get(path)
            if table_doc is None:
                raise TableNotFound()
            table = TableDocument.from_document(table_doc)
            if not table.is_active:
                raise TableInactive()
            if table.available_seats <= 0:
                raise TableFull()

            now = self.clock()
            existing = next((e for e in table.participation_history if e.user_id == uid), None)
            if existing is not None:
                existing.joined_at = now
                existing.leave_at = None
                existing.status = TableStatus.ACTIVE.value
            else:
                table.participation_history.append(
                    ParticipationEntry(
                        user_id=uid,
                        display_name=display_name,
                        joined_at=now,
                        leave_at=None,
                        role=ParticipantRole.PARTICIPANT,
                        status=TableStatus.ACTIVE,
                    )
                )

            changes = {
                "joinedUsers": ArrayUnion([uid]),
                "participationHistory": table.history_to_document(),
            }
            # A seat held by a stale membership is reused, not taken twice.
            if uid not in table.joined_users:
                changes["availableSeats"] = Increment(-1)
                table.available_seats -= 1
                table.joined_users.append(uid)
            transaction.update(path, changes)

            pointer = CurrentTable(
                id=table.id,
                location_id=location_id,
                location_name=table.location_name,
                title=table.title,
                joined_at=now,
                is_creator=False,
            )
            transaction.set(
                user_path(uid), {"currentTable": pointer.model_dump(by_alias=True)}, merge=True
            )
            return table

        try:
            table = await self.store.run_transaction(_join)
        except AlreadyInTable:
            self._remember_status(uid, True)
            raise

        self._remember_status(uid, True)
        logger.info(
            "table_joined",
            table_id=table.id,
            location_id=location_id,
            user_id=uid,
            available_seats=table.available_seats,
        )
        return table

    async def leave_table(
        self,
        user: AuthUser | None,
        location_id: str | None,
        table_id: str | None,
        is_creator: bool | None = None,
        reason: str | None = None,
    ) -> LeaveResponse:
        """
        Leave a table, ending it when the caller is its creator.

        Whether the caller is the creator is read from the table record;
        ``is_creator`` is only checked against it.

        Args:
            user: Caller
            location_id: Location of the table
            table_id: Table to leave
            is_creator: Caller's own belief about being the creator
            reason: End reason stored when the creator ends the table

        Returns:
            What the call changed

        Raises:
            NotAuthenticated: No signed-in user
            MissingLocationInfo: Location or table id missing
            ForbiddenException: ``is_creator`` contradicts the table record
        """
        uid = _require_user(user)
        if not location_id or not table_id:
            raise MissingLocationInfo("Missing required information to leave table")

        path = table_path(location_id, table_id)

        async def _leave(transaction: Transaction) -> LeaveResponse:
            table_doc = await transaction.get(path)
            user_doc = await transaction.get(user_path(uid))
            record = UserDocument.from_document(user_doc) if user_doc else None

            if table_doc is None:
                if record and record.current_table:
                    transaction.set(user_path(uid), {"currentTable": None}, merge=True)
                return LeaveResponse(table_id=table_id)

            table = TableDocument.from_document(table_doc)
            creator = table.is_creator(uid)
            if is_creator is not None and is_creator != creator:
                raise ForbiddenException(
                    "Only the table creator can end this table"
                    if is_creator
                    else "You created this table; leaving it ends the table"
                )

            seated = uid in table.joined_users
            member = seated or creator or (record is not None and record.is_seated_at(table_id))
            if not member:
                return LeaveResponse(table_id=table_id)

            now = self.clock()
            response = LeaveResponse(table_id=table_id)
            changes: dict = {}

            history_changed = False
            for entry in table.participation_history:
                if entry.user_id == uid and entry.status == TableStatus.ACTIVE.value:
                    entry.status = TableStatus.INACTIVE.value
                    entry.leave_at = now
                    history_changed = True

            if creator:
                if table.is_active:
                    for entry in table.participation_history:
                        if entry.status == TableStatus.ACTIVE.value:
                            entry.status = TableStatus.INACTIVE.value
                            entry.leave_at = now
                    history_changed = True
                    changes.update(
                        {
                            "status": TableStatus.INACTIVE.value,
                            "endedAt": now,
                            "endedBy": uid,
                            "endReason": reason or DEFAULT_CREATOR_END_REASON,
                            "notifyParticipants": True,
                            "participantsToNotify": list(table.joined_users),
                        }
                    )
                    response.ended_table = True
            elif seated:
                changes["joinedUsers"] = ArrayRemove([uid])
                if table.available_seats < table.seats:
                    changes["availableSeats"] = Increment(1)
                response.seat_released = True

            if history_changed:
                changes["participationHistory"] = table.history_to_document()
            if changes:
                transaction.update(path, changes)

            user_changes: dict = {}
            if record is None or not record.has_history(table_id):
                role = ParticipantRole.CREATOR if creator else ParticipantRole.PARTICIPANT
                user_changes["tableHistory"] = ArrayUnion([_history_entry(table, role, now)])
            if record is not None and record.is_seated_at(table_id):
                user_changes["currentTable"] = None
            if user_changes:
                transaction.set(user_path(uid), user_changes, merge=True)

            return response

        response = await self.store.run_transaction(_leave)
        self._forget_status(uid)

        if response.ended_table:
            logger.info("table_ended", table_id=table_id, location_id=location_id, ended_by=uid)
        else:
            logger.info(
                "table_left",
                table_id=table_id,
                location_id=location_id,
                user_id=uid,
                seat_released=response.seat_released,
            )
        return response

    async def acknowledge_table_end(self, user_id: str, table: TableDocument) -> bool:
        """
        Record, on the user's own document, that the creator ended a table.

        Other users' documents are never written here.

        Returns:
            True if the user document changed
        """

        async def _acknowledge(transaction: Transaction) -> bool:
            user_doc = await transaction.get(user_path(user_id))
            if user_doc is None:
                return False
            record = UserDocument.from_document(user_doc)

            changes: dict = {}
            if not record.has_history(table.id):
                changes["tableHistory"] = ArrayUnion(
                    [
                        _history_entry(
                            table, ParticipantRole.PARTICIPANT, self.clock(), ENDED_BY_CREATOR
                        )
                    ]
                )
            if record.is_seated_at(table.id):
                changes["currentTable"] = None
            if changes:
                transaction.set(user_path(user_id), changes, merge=True)
            return bool(changes)

        changed = await self.store.run_transaction(_acknowledge)
        self._forget_status(user_id)
        if changed:
            logger.info("table_end_acknowledged", table_id=table.id, user_id=user_id)
        return changed

    async def update_conversation_prompt(
        self,
        user: AuthUser | None,
        location_id: str | None,
        table_id: str,
        prompt: str,
    ) -> TableDocument:
        """Set the conversation prompt of an active table (creator only)."""
        uid = _require_user(user)
        if not location_id:
            raise MissingLocationInfo()

        prompt = prompt.strip()
        if not prompt or len(prompt) > settings.max_prompt_length:
            raise ValidationException(
                f"Prompt must be between 1 and {settings.max_prompt_length} characters"
            )

        path = table_path(location_id, table_id)

        async def _update(transaction: Transaction) -> TableDocument:
            table_doc = await transaction.get(path)
            if table_doc is None:
                raise TableNotFound()
            table = TableDocument.from_document(table_doc)
            if not table.is_creator(uid):
                raise ForbiddenException("Only the table creator can set the conversation prompt")
            if not table.is_active:
                raise TableInactive()

            now = self.clock()
            transaction.update(path, {"conversationPrompt": prompt, "promptUpdatedAt": now})
            table.conversation_prompt = prompt
            table.prompt_updated_at = now
            return table

        table = await self.store.run_transaction(_update)
        logger.info("conversation_prompt_updated", table_id=table_id, user_id=uid)
        return table

    async def reconcile_user(self, user_id: str) -> tuple[ReconcileOutcome, TableDocument | None]:
        """
        Verify a user's ``currentTable`` pointer and clear it if it is stale.

        A pointer is stale when its table is missing, inactive, or no longer
        lists the user as seated.

        Returns:
            The outcome and, when the table still exists, its record
        """

        async def _reconcile(
            transaction: Transaction,
        ) -> tuple[ReconcileOutcome, TableDocument | None]:
            user_doc = await transaction.get(user_path(user_id))
            if user_doc is None:
                return ReconcileOutcome.NO_TABLE, None
            record = UserDocument.from_document(user_doc)
            pointer = record.current_table
            if pointer is None:
                return ReconcileOutcome.NO_TABLE, None
            if not pointer.location_id:
                raise MissingLocationInfo()

            table_doc = await transaction.get(table_path(pointer.location_id, pointer.id))
            if table_doc is None:
                transaction.set(user_path(user_id), {"currentTable": None}, merge=True)
                return ReconcileOutcome.CLEARED_MISSING, None

            table = TableDocument.from_document(table_doc)
            if table.is_active and user_id in table.joined_users:
                return ReconcileOutcome.VALID, table

            changes: dict = {"currentTable": None}
            if not record.has_history(table.id):
                role = (
                    ParticipantRole.CREATOR if table.is_creator(user_id) else ParticipantRole.PARTICIPANT
                )
                changes["tableHistory"] = ArrayUnion([_history_entry(table, role, self.clock())])
            transaction.set(user_path(user_id), changes, merge=True)
            outcome = (
                ReconcileOutcome.CLEARED_ORPHAN if table.is_active else ReconcileOutcome.CLEARED_INACTIVE
            )
            return outcome, table

        outcome, table = await self.store.run_transaction(_reconcile)
        if outcome in (ReconcileOutcome.NO_TABLE, ReconcileOutcome.VALID):
            self._remember_status(user_id, outcome == ReconcileOutcome.VALID)
        else:
            self._forget_status(user_id)
            logger.warning("current_table_cleared", user_id=user_id, outcome=outcome.value)
        return outcome, table

    async def rejoin_current_table(self, user: AuthUser | None) -> TableDocument:
        """
        Return the table the user is seated at, healing a stale pointer.

        Raises:
            NotFoundException: The user is not seated anywhere
            TableNotFound: The table was deleted (pointer cleared)
            TableInactive: The table has ended (pointer cleared)
        """
        uid = _require_user(user)
        outcome, table = await self.reconcile_user(uid)

        if outcome == ReconcileOutcome.VALID:
            return table
        if outcome == ReconcileOutcome.CLEARED_MISSING:
            raise TableNotFound("This table no longer exists")
        if outcome == ReconcileOutcome.CLEARED_INACTIVE:
            raise TableInactive()
        raise NotFoundException("You are not seated at a table")

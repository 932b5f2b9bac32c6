"""Tests for the table lifecycle service."""

import asyncio

import pytest

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
from app.models.tables import TableDocument, table_path, tables_collection
from app.models.users import user_path
from app.services.table_service import DEFAULT_CREATOR_END_REASON, ReconcileOutcome


async def read_table(store, table: TableDocument) -> dict:
    document = await store.get(table_path(table.location_id, table.id))
    return document.data


async def read_user(store, uid: str) -> dict:
    document = await store.get(user_path(uid))
    return document.data


@pytest.mark.asyncio
@pytest.mark.parametrize("seats", range(2, 13))
async def test_create_table_seats_creator(
    table_service, store, location, creator, make_table_data, seats
):
    """Creating a table seats the creator and takes one seat."""
    table = await table_service.create_table(creator, location.id, make_table_data(seats=seats))

    data = await read_table(store, table)
    assert data["availableSeats"] == seats - 1
    assert data["joinedUsers"] == [creator.uid]
    assert data["status"] == "active"
    assert data["creatorID"] == creator.uid
    assert data["createdBy"] == creator.uid
    assert data["locationName"] == location.name
    assert len(data["participationHistory"]) == 1
    assert data["participationHistory"][0]["role"] == "creator"
    assert data["participationHistory"][0]["status"] == "active"

    user = await read_user(store, creator.uid)
    assert user["currentTable"]["id"] == table.id
    assert user["currentTable"]["locationId"] == location.id
    assert user["currentTable"]["isCreator"] is True


@pytest.mark.asyncio
async def test_create_table_validates_location_and_zone(
    table_service, location, creator, make_table_data
):
    """Create fails on a missing location id, unknown location or unknown zone."""
    with pytest.raises(MissingLocationInfo):
        await table_service.create_table(creator, None, make_table_data())

    with pytest.raises(NotFoundException):
        await table_service.create_table(creator, "no-such-campus", make_table_data())

    with pytest.raises(ValidationException):
        await table_service.create_table(creator, location.id, make_table_data(zone="rooftop"))


@pytest.mark.asyncio
async def test_create_table_requires_user(table_service, location, make_table_data):
    """Anonymous callers cannot create tables."""
    with pytest.raises(NotAuthenticated):
        await table_service.create_table(None, location.id, make_table_data())


@pytest.mark.asyncio
async def test_join_takes_exactly_one_seat(
    table_service, store, location, creator, participant, make_table_data
):
    """Join decrements availableSeats by one and adds one id."""
    table = await table_service.create_table(creator, location.id, make_table_data(seats=4))

    joined = await table_service.join_table(participant, location.id, table.id)

    data = await read_table(store, table)
    assert data["availableSeats"] == 2
    assert data["joinedUsers"] == [creator.uid, participant.uid]
    assert joined.available_seats == 2

    entry = next(e for e in data["participationHistory"] if e["userId"] == participant.uid)
    assert entry["role"] == "participant"
    assert entry["status"] == "active"
    assert entry["displayName"] == "Bob"

    user = await read_user(store, participant.uid)
    assert user["currentTable"]["id"] == table.id
    assert user["currentTable"]["isCreator"] is False


@pytest.mark.asyncio
async def test_join_full_table_fails_without_writes(
    table_service, store, location, creator, participant, late_user, make_table_data
):
    """Joining a table with no free seat fails with TableFull and writes nothing."""
    table = await table_service.create_table(creator, location.id, make_table_data(seats=2))
    await table_service.join_table(participant, location.id, table.id)

    table_before = await read_table(store, table)
    user_before = await read_user(store, late_user.uid)

    with pytest.raises(TableFull):
        await table_service.join_table(late_user, location.id, table.id)

    assert await read_table(store, table) == table_before
    assert await read_user(store, late_user.uid) == user_before
    assert user_before["currentTable"] is None


@pytest.mark.asyncio
async def test_join_preconditions_first_failure_wins(
    table_service, location, creator, participant, make_table_data
):
    """Preconditions are checked in order."""
    table = await table_service.create_table(creator, location.id, make_table_data())

    with pytest.raises(NotAuthenticated):
        await table_service.join_table(None, location.id, table.id)

    with pytest.raises(MissingLocationInfo):
        await table_service.join_table(participant, None, table.id)

    with pytest.raises(TableNotFound):
        await table_service.join_table(participant, location.id, "missing-table")

    # Seated users get AlreadyInTable even for a missing table.
    with pytest.raises(AlreadyInTable):
        await table_service.join_table(creator, location.id, "missing-table")


@pytest.mark.asyncio
async def test_join_inactive_table(
    table_service, location, creator, participant, make_table_data
):
    """Ended tables cannot be joined."""
    table = await table_service.create_table(creator, location.id, make_table_data())
    await table_service.leave_table(creator, location.id, table.id)

    with pytest.raises(TableInactive):
        await table_service.join_table(participant, location.id, table.id)


@pytest.mark.asyncio
async def test_seated_user_cannot_create_or_join_until_leaving(
    table_service, location, creator, participant, late_user, make_table_data
):
    """A user with a current table is blocked until leave clears it."""
    first = await table_service.create_table(creator, location.id, make_table_data())
    second = await table_service.create_table(late_user, location.id, make_table_data())
    await table_service.join_table(participant, location.id, first.id)

    with pytest.raises(AlreadyInTable):
        await table_service.create_table(participant, location.id, make_table_data())
    with pytest.raises(AlreadyInTable):
        await table_service.join_table(participant, location.id, second.id)

    await table_service.leave_table(participant, location.id, first.id)

    joined = await table_service.join_table(participant, location.id, second.id)
    assert participant.uid in joined.joined_users


@pytest.mark.asyncio
async def test_stale_status_cache_does_not_allow_second_table(
    table_service, status_cache, location, creator, make_table_data
):
    """The transaction re-reads the pointer even when the cache says 'not seated'."""
    await table_service.create_table(creator, location.id, make_table_data())
    status_cache.set(creator.uid, False)

    with pytest.raises(AlreadyInTable):
        await table_service.create_table(creator, location.id, make_table_data())


@pytest.mark.asyncio
async def test_participant_leave_releases_seat_and_is_idempotent(
    table_service, store, location, creator, participant, make_table_data
):
    """Leave releases one seat; a second leave changes nothing."""
    table = await table_service.create_table(creator, location.id, make_table_data(seats=4))
    await table_service.join_table(participant, location.id, table.id)

    result = await table_service.leave_table(participant, location.id, table.id)

    assert result.seat_released is True
    assert result.ended_table is False
    data = await read_table(store, table)
    assert data["availableSeats"] == 3
    assert data["joinedUsers"] == [creator.uid]
    entry = next(e for e in data["participationHistory"] if e["userId"] == participant.uid)
    assert entry["status"] == "inactive"
    assert entry["leaveAt"] is not None

    user_after_first = await read_user(store, participant.uid)
    assert user_after_first["currentTable"] is None

    again = await table_service.leave_table(participant, location.id, table.id)

    assert again.seat_released is False
    assert await read_table(store, table) == data
    assert await read_user(store, participant.uid) == user_after_first


@pytest.mark.asyncio
async def test_leave_never_exceeds_capacity(
    table_service, store, location, creator, participant, make_table_data
):
    """Releasing a seat is clamped to the table's capacity."""
    table = await table_service.create_table(creator, location.id, make_table_data(seats=4))
    await table_service.join_table(participant, location.id, table.id)
    await store.update(table_path(location.id, table.id), {"availableSeats": 4})

    await table_service.leave_table(participant, location.id, table.id)

    data = await read_table(store, table)
    assert data["availableSeats"] == 4
    assert participant.uid not in data["joinedUsers"]


@pytest.mark.asyncio
async def test_creator_leave_ends_table_once(
    table_service, store, clock, location, creator, participant, make_table_data
):
    """The creator's leave ends the table; repeating it re-stamps nothing."""
    table = await table_service.create_table(creator, location.id, make_table_data())
    await table_service.join_table(participant, location.id, table.id)
    clock.advance(120)
    ended_at = clock()

    result = await table_service.leave_table(creator, location.id, table.id)

    assert result.ended_table is True
    data = await read_table(store, table)
    assert data["status"] == "inactive"
    assert data["endedAt"] == ended_at
    assert data["endedBy"] == creator.uid
    assert data["endReason"] == DEFAULT_CREATOR_END_REASON
    assert data["notifyParticipants"] is True
    assert data["participantsToNotify"] == [creator.uid, participant.uid]
    assert all(e["status"] == "inactive" for e in data["participationHistory"])
    assert all(e["leaveAt"] == ended_at for e in data["participationHistory"])

    user = await read_user(store, creator.uid)
    assert user["currentTable"] is None
    assert len(user["tableHistory"]) == 1
    assert user["tableHistory"][0]["role"] == "creator"

    clock.advance(60)
    again = await table_service.leave_table(creator, location.id, table.id, reason="Again")

    assert again.ended_table is False
    data_again = await read_table(store, table)
    assert data_again["endedAt"] == ended_at
    assert data_again["endReason"] == DEFAULT_CREATOR_END_REASON
    assert len((await read_user(store, creator.uid))["tableHistory"]) == 1


@pytest.mark.asyncio
async def test_creator_leave_uses_given_reason(
    table_service, store, location, creator, make_table_data
):
    table = await table_service.create_table(creator, location.id, make_table_data())

    await table_service.leave_table(creator, location.id, table.id, reason="Lunch is over")

    assert (await read_table(store, table))["endReason"] == "Lunch is over"


@pytest.mark.asyncio
async def test_join_then_leave_round_trip(
    table_service, store, location, creator, participant, make_table_data
):
    """Join followed by leave restores seats and roster; history gains one entry."""
    table = await table_service.create_table(creator, location.id, make_table_data(seats=5))
    before = await read_table(store, table)

    await table_service.join_table(participant, location.id, table.id)
    await table_service.leave_table(participant, location.id, table.id)

    after = await read_table(store, table)
    assert after["availableSeats"] == before["availableSeats"]
    assert after["joinedUsers"] == before["joinedUsers"]

    history = (await read_user(store, participant.uid))["tableHistory"]
    assert len(history) == 1
    assert history[0]["id"] == table.id
    assert history[0]["role"] == "participant"
    assert history[0]["title"] == "Coffee and code"


@pytest.mark.asyncio
async def test_rejoin_reuses_participation_entry(
    table_service, store, location, creator, participant, make_table_data
):
    """A returning participant keeps a single participation entry."""
    table = await table_service.create_table(creator, location.id, make_table_data())
    await table_service.join_table(participant, location.id, table.id)
    await table_service.leave_table(participant, location.id, table.id)
    await table_service.join_table(participant, location.id, table.id)

    data = await read_table(store, table)
    entries = [e for e in data["participationHistory"] if e["userId"] == participant.uid]
    assert len(entries) == 1
    assert entries[0]["status"] == "active"
    assert entries[0]["leaveAt"] is None
    assert data["joinedUsers"].count(participant.uid) == 1

    await table_service.leave_table(participant, location.id, table.id)
    history = (await read_user(store, participant.uid))["tableHistory"]
    assert len(history) == 1


@pytest.mark.asyncio
async def test_leave_rejects_contradicting_creator_flag(
    table_service, store, location, creator, participant, make_table_data
):
    """A participant cannot end a table by claiming to be its creator."""
    table = await table_service.create_table(creator, location.id, make_table_data())
    await table_service.join_table(participant, location.id, table.id)

    with pytest.raises(ForbiddenException):
        await table_service.leave_table(participant, location.id, table.id, is_creator=True)

    assert (await read_table(store, table))["status"] == "active"


@pytest.mark.asyncio
async def test_leave_requires_identifiers(table_service, creator):
    with pytest.raises(MissingLocationInfo):
        await table_service.leave_table(creator, None, "some-table")
    with pytest.raises(MissingLocationInfo):
        await table_service.leave_table(creator, "USN-Vestfold", None)
    with pytest.raises(NotAuthenticated):
        await table_service.leave_table(None, "USN-Vestfold", "some-table")


@pytest.mark.asyncio
async def test_leave_missing_table_clears_pointer(
    table_service, store, location, creator, make_table_data
):
    """Leaving a table that no longer exists only clears the pointer."""
    table = await table_service.create_table(creator, location.id, make_table_data())
    await store.delete(table_path(location.id, table.id))

    result = await table_service.leave_table(creator, location.id, table.id)

    assert result.ended_table is False
    assert (await read_user(store, creator.uid))["currentTable"] is None


@pytest.mark.asyncio
async def test_concurrent_joins_respect_capacity(
    table_service, store, location, creator, make_user, make_table_data
):
    """Concurrent joins never push availableSeats below zero."""
    table = await table_service.create_table(creator, location.id, make_table_data(seats=3))
    users = [await make_user(f"user-{i}", f"User {i}") for i in range(4)]

    results = await asyncio.gather(
        *(table_service.join_table(user, location.id, table.id) for user in users),
        return_exceptions=True,
    )

    joined = [r for r in results if isinstance(r, TableDocument)]
    full = [r for r in results if isinstance(r, TableFull)]
    assert len(joined) == 2
    assert len(full) == 2

    data = await read_table(store, table)
    assert data["availableSeats"] == 0
    assert len(data["joinedUsers"]) == 3


@pytest.mark.asyncio
async def test_concurrent_creates_by_same_user(
    table_service, store, location, creator, make_table_data
):
    """Two simultaneous creates by one user produce exactly one table."""
    results = await asyncio.gather(
        table_service.create_table(creator, location.id, make_table_data(title="First")),
        table_service.create_table(creator, location.id, make_table_data(title="Second")),
        return_exceptions=True,
    )

    assert len([r for r in results if isinstance(r, TableDocument)]) == 1
    assert len([r for r in results if isinstance(r, AlreadyInTable)]) == 1
    assert len(await store.query(tables_collection(location.id))) == 1


@pytest.mark.asyncio
async def test_update_conversation_prompt(
    table_service, store, location, creator, participant, make_table_data
):
    """Only the creator of an active table can set the prompt."""
    table = await table_service.create_table(creator, location.id, make_table_data())
    await table_service.join_table(participant, location.id, table.id)

    updated = await table_service.update_conversation_prompt(
        creator, location.id, table.id, "  What are you building?  "
    )
    assert updated.conversation_prompt == "What are you building?"
    data = await read_table(store, table)
    assert data["conversationPrompt"] == "What are you building?"
    assert data["promptUpdatedAt"] is not None

    with pytest.raises(ForbiddenException):
        await table_service.update_conversation_prompt(participant, location.id, table.id, "Hi")

    with pytest.raises(ValidationException):
        await table_service.update_conversation_prompt(creator, location.id, table.id, "x" * 201)

    await table_service.leave_table(creator, location.id, table.id)
    with pytest.raises(TableInactive):
        await table_service.update_conversation_prompt(creator, location.id, table.id, "Late")


@pytest.mark.asyncio
async def test_list_active_tables_newest_first(
    table_service, clock, location, creator, participant, late_user, make_table_data
):
    """Listing returns active tables only, newest first."""
    oldest = await table_service.create_table(creator, location.id, make_table_data(title="Old"))
    clock.advance(60)
    newest = await table_service.create_table(participant, location.id, make_table_data(title="New"))
    clock.advance(60)
    ended = await table_service.create_table(late_user, location.id, make_table_data(title="Ended"))
    await table_service.leave_table(late_user, location.id, ended.id)

    tables = await table_service.list_active_tables(location.id)

    assert [t.id for t in tables] == [newest.id, oldest.id]


@pytest.mark.asyncio
async def test_get_participants_in_seating_order(
    table_service, location, creator, participant, make_table_data
):
    table = await table_service.create_table(creator, location.id, make_table_data())
    table = await table_service.join_table(participant, location.id, table.id)

    participants = await table_service.get_participants(table)

    assert [p.id for p in participants] == [creator.uid, participant.uid]
    assert [p.display_name for p in participants] == ["Cora Creator", "Bob"]
    assert [p.is_creator for p in participants] == [True, False]


@pytest.mark.asyncio
async def test_check_user_table_status_cache_and_force(
    table_service, store, location, creator, participant, make_table_data
):
    """Cached answers are served until forced; lifecycle calls rewrite the cache."""
    assert await table_service.check_user_table_status(participant.uid) is False

    table = await table_service.create_table(creator, location.id, make_table_data())
    await table_service.join_table(participant, location.id, table.id)
    assert await table_service.check_user_table_status(participant.uid) is True

    # Another instance clears the pointer behind this one's back.
    await store.set(user_path(participant.uid), {"currentTable": None}, merge=True)
    assert await table_service.check_user_table_status(participant.uid) is True
    assert await table_service.check_user_table_status(participant.uid, force_check=True) is False

    assert await table_service.check_user_table_status(None) is False


@pytest.mark.asyncio
async def test_status_cache_expires(
    table_service, store, clock, location, creator, make_table_data
):
    await table_service.create_table(creator, location.id, make_table_data())
    await store.set(user_path(creator.uid), {"currentTable": None}, merge=True)
    assert await table_service.check_user_table_status(creator.uid) is True

    clock.advance(10)

    assert await table_service.check_user_table_status(creator.uid) is False


@pytest.mark.asyncio
async def test_acknowledge_table_end_touches_only_own_record(
    table_service, store, location, creator, participant, make_table_data
):
    """Acknowledging an end clears the pointer and merges history once."""
    table = await table_service.create_table(creator, location.id, make_table_data())
    await table_service.join_table(participant, location.id, table.id)
    await table_service.leave_table(creator, location.id, table.id)
    ended = await table_service.get_table(location.id, table.id)
    table_before = await read_table(store, table)

    assert await table_service.acknowledge_table_end(participant.uid, ended) is True
    assert await table_service.acknowledge_table_end(participant.uid, ended) is False

    user = await read_user(store, participant.uid)
    assert user["currentTable"] is None
    assert len(user["tableHistory"]) == 1
    assert user["tableHistory"][0]["endedBy"] == "creator"
    assert user["tableHistory"][0]["role"] == "participant"
    assert await read_table(store, table) == table_before


@pytest.mark.asyncio
async def test_rejoin_current_table(
    table_service, location, creator, participant, make_table_data
):
    table = await table_service.create_table(creator, location.id, make_table_data())
    await table_service.join_table(participant, location.id, table.id)

    rejoined = await table_service.rejoin_current_table(participant)

    assert rejoined.id == table.id


@pytest.mark.asyncio
async def test_rejoin_without_table(table_service, participant):
    with pytest.raises(NotFoundException):
        await table_service.rejoin_current_table(participant)


@pytest.mark.asyncio
async def test_rejoin_deleted_table_clears_pointer(
    table_service, store, location, creator, make_table_data
):
    table = await table_service.create_table(creator, location.id, make_table_data())
    await store.delete(table_path(location.id, table.id))

    with pytest.raises(TableNotFound):
        await table_service.rejoin_current_table(creator)

    assert (await read_user(store, creator.uid))["currentTable"] is None


@pytest.mark.asyncio
async def test_rejoin_ended_table_clears_pointer_and_records_history(
    table_service, store, location, creator, participant, make_table_data
):
    table = await table_service.create_table(creator, location.id, make_table_data())
    await table_service.join_table(participant, location.id, table.id)
    await table_service.leave_table(creator, location.id, table.id)

    with pytest.raises(TableInactive):
        await table_service.rejoin_current_table(participant)

    user = await read_user(store, participant.uid)
    assert user["currentTable"] is None
    assert [entry["id"] for entry in user["tableHistory"]] == [table.id]


@pytest.mark.asyncio
async def test_reconcile_clears_orphaned_pointer(
    table_service, store, location, creator, participant, make_table_data
):
    """A pointer to a table that no longer seats the user is cleared."""
    table = await table_service.create_table(creator, location.id, make_table_data())
    await table_service.join_table(participant, location.id, table.id)
    await store.update(
        table_path(location.id, table.id), {"joinedUsers": [creator.uid], "availableSeats": 3}
    )

    outcome, _ = await table_service.reconcile_user(participant.uid)

    assert outcome == ReconcileOutcome.CLEARED_ORPHAN
    assert (await read_user(store, participant.uid))["currentTable"] is None

    outcome, table_doc = await table_service.reconcile_user(creator.uid)
    assert outcome == ReconcileOutcome.VALID
    assert table_doc.id == table.id
